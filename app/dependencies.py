"""FastAPI dependency helpers."""

from __future__ import annotations

from fastapi import Request

from crate_builder.core.toolchain import Compiler  # type: ignore
from crate_builder.policy.profile import Profile  # type: ignore


def get_profile(request: Request) -> Profile:
    return request.app.state.profile  # type: ignore[attr-defined]


def get_compiler(request: Request) -> Compiler:
    return request.app.state.compiler  # type: ignore[attr-defined]
