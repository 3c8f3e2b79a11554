"""
Compile runner — top-level orchestration: archive → artifact.

Ties workspace provisioning, toolchain invocation and artifact
resolution together into a single ``run_compile`` function that the
API endpoint calls (from a worker thread) once per request.

The workspace wraps the whole body, so its directory is removed on
every exit path, including every CompileError raised below.
"""
import logging
import threading
from typing import Optional, Sequence

from crate_builder.core.artifacts import (
    DirectoryLister,
    SearchStrategy,
    resolve_artifact,
    strategies_for,
)
from crate_builder.core.toolchain import CargoCompiler, Compiler
from crate_builder.core.workspace import Workspace
from crate_builder.errors import BuildFailure
from crate_builder.io.schema import BuildRequest, CompileOutcome
from crate_builder.policy.profile import Profile

logger = logging.getLogger(__name__)


def run_compile(
    request: BuildRequest,
    compiler: Optional[Compiler] = None,
    profile: Optional[Profile] = None,
    lister: Optional[DirectoryLister] = None,
    strategies: Optional[Sequence[SearchStrategy]] = None,
    cancel: Optional[threading.Event] = None,
) -> CompileOutcome:
    """
    Build ``request.crate_name`` from ``request.payload``.

    Parameters
    ----------
    request : BuildRequest
        Validated crate name plus tar archive bytes.
    compiler : Compiler, optional
        Defaults to a CargoCompiler for *profile*.
    profile : Profile, optional
        Defaults to Profile.v0().
    lister, strategies : optional
        Overrides for the artifact search (tests).
    cancel : threading.Event, optional
        Set by the caller to abort a running build (client disconnect).

    Raises
    ------
    CompileError
        Any pipeline failure; see crate_builder.errors.
    """
    if profile is None:
        profile = Profile.v0()
    if compiler is None:
        compiler = CargoCompiler(profile)
    if strategies is None:
        strategies = strategies_for(profile)

    crate = request.crate_name

    with Workspace(crate, parent=profile.workspace_root) as ws:
        # ── Step 1: unpack ───────────────────────────────────────────
        members = ws.extract(request.payload)
        logger.info(
            "Unpacked %d members (%d bytes) for %s into %s",
            len(members), request.payload_size, crate, ws.path,
        )

        # ── Step 2: build ────────────────────────────────────────────
        result = compiler.build(ws.path, crate, cancel=cancel)
        if not result.succeeded:
            logger.error("Compilation failed for %s:\n%s", crate, result.stderr)
            raise BuildFailure(
                result.stderr,
                exit_code=result.exit_code,
                context={"crate_name": crate},
            )

        # ── Step 3: locate + read, before the workspace goes away ────
        artifact = resolve_artifact(result.output_root, crate, lister, strategies)

    logger.info(
        "Built %s: %s %s (%d bytes, %dms)",
        crate, artifact.kind.value, artifact.file_name,
        artifact.size_bytes, result.duration_ms,
    )
    return CompileOutcome(crate_name=crate, artifact=artifact, toolchain=result)
