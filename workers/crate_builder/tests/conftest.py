"""
Shared pytest fixtures for crate_builder tests.

Most fixtures are pure-Python: in-memory tar archives, fake compilers
that write canned outputs into the workspace, and a FastAPI TestClient
with the compiler dependency overridden.  Nothing here spawns cargo.

The ``cargo_ok`` fixture gates the few tests that drive a real
toolchain; they are skipped when cargo is not on PATH.
"""
from __future__ import annotations

import io
import shutil
import tarfile
import textwrap
import threading
from dataclasses import replace
from pathlib import Path
from typing import Callable, Dict, List, Optional, Union

import pytest

from crate_builder.io.schema import ToolchainResult
from crate_builder.policy.profile import Profile


# ═══════════════════════════════════════════════════════════════════════════════
# Sample cargo projects
# ═══════════════════════════════════════════════════════════════════════════════

HELLO_LIB_FILES: Dict[str, str] = {
    "Cargo.toml": textwrap.dedent("""\
        [package]
        name = "hello-lib"
        version = "0.1.0"
        edition = "2021"
    """),
    "src/lib.rs": textwrap.dedent("""\
        pub fn greet() -> &'static str {
            "hello"
        }
    """),
}

HELLO_BIN_FILES: Dict[str, str] = {
    "Cargo.toml": textwrap.dedent("""\
        [package]
        name = "hello-bin"
        version = "0.1.0"
        edition = "2021"
    """),
    "src/main.rs": textwrap.dedent("""\
        fn main() {
            println!("hello");
        }
    """),
}

RLIB_BYTES = b"!<arch>\nfake rlib contents\n"
ELF_BYTES = b"\x7fELF\x02\x01\x01fake executable"


def make_tar(files: Dict[str, Union[str, bytes]], gzip: bool = False) -> bytes:
    """Build a deterministic tar archive from {path: content}."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz" if gzip else "w") as tar:
        for name, content in sorted(files.items()):
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(name)
            info.size = len(data)
            info.mode = 0o644
            info.mtime = 0
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


# ═══════════════════════════════════════════════════════════════════════════════
# Fake compiler
# ═══════════════════════════════════════════════════════════════════════════════

class FakeCompiler:
    """
    Stands in for cargo.

    ``outputs`` maps paths relative to the workspace root to bytes; the
    literal ``{crate}`` / ``{stem}`` in a path is replaced by the crate
    name / library stem.  Every call records the workspace root and the
    files that were present before outputs were written.
    """

    def __init__(
        self,
        outputs: Optional[Dict[str, bytes]] = None,
        exit_code: int = 0,
        stderr: str = "",
        on_build: Optional[Callable[[Path, str], None]] = None,
    ):
        self.outputs = outputs or {}
        self.exit_code = exit_code
        self.stderr = stderr
        self.on_build = on_build
        self.calls: List[Dict[str, object]] = []

    def build(
        self,
        workspace_root: Path,
        crate_name: str,
        cancel: Optional[threading.Event] = None,
    ) -> ToolchainResult:
        seen = sorted(
            p.relative_to(workspace_root).as_posix()
            for p in workspace_root.rglob("*")
            if p.is_file()
        )
        self.calls.append({
            "root": workspace_root,
            "crate_name": crate_name,
            "files": seen,
            "cancel": cancel,
        })

        if self.on_build is not None:
            self.on_build(workspace_root, crate_name)

        if self.exit_code == 0:
            stem = crate_name.replace("-", "_")
            for rel, data in self.outputs.items():
                dest = workspace_root / rel.format(crate=crate_name, stem=stem)
                dest.parent.mkdir(parents=True, exist_ok=True)
                dest.write_bytes(data)

        return ToolchainResult(
            succeeded=self.exit_code == 0,
            exit_code=self.exit_code,
            stderr=self.stderr,
            output_root=workspace_root / "target" / "debug",
            command=["fake-cargo", "build", "-p", crate_name, "--offline"],
            duration_ms=7,
        )


@pytest.fixture
def tar_builder():
    return make_tar


@pytest.fixture
def fake_compiler():
    """The FakeCompiler class, for tests that need a custom one."""
    return FakeCompiler


@pytest.fixture
def library_compiler() -> FakeCompiler:
    return FakeCompiler(outputs={"target/debug/deps/lib{stem}-0123456789abcdef.rlib": RLIB_BYTES})


@pytest.fixture
def binary_compiler() -> FakeCompiler:
    return FakeCompiler(outputs={"target/debug/{crate}": ELF_BYTES})


@pytest.fixture
def failing_compiler() -> FakeCompiler:
    return FakeCompiler(
        exit_code=101,
        stderr="error: package ID specification `nonexistent` did not match any packages\n",
    )


@pytest.fixture
def silent_compiler() -> FakeCompiler:
    """Reports success but produces nothing."""
    return FakeCompiler()


# ═══════════════════════════════════════════════════════════════════════════════
# Archives and profiles
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def hello_lib_archive() -> bytes:
    return make_tar(HELLO_LIB_FILES)


@pytest.fixture
def hello_bin_archive() -> bytes:
    return make_tar(HELLO_BIN_FILES)


@pytest.fixture
def profile(tmp_path) -> Profile:
    """Default profile with workspaces under the test's tmp dir."""
    return replace(Profile.v0(), workspace_root=str(tmp_path / "workspaces"))


@pytest.fixture
def workspace_parent(profile) -> Path:
    return Path(profile.workspace_root)


# ═══════════════════════════════════════════════════════════════════════════════
# API client
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture
def api_factory(profile):
    """
    Yields ``make(compiler, profile=None)`` → TestClient with overrides.

    Clients are entered (lifespan runs) and closed at teardown.
    """
    from fastapi.testclient import TestClient

    from app.dependencies import get_compiler, get_profile
    from app.main import app

    clients = []

    def make(compiler, prof: Optional[Profile] = None) -> TestClient:
        app.dependency_overrides[get_compiler] = lambda: compiler
        app.dependency_overrides[get_profile] = lambda: prof or profile
        client = TestClient(app)
        client.__enter__()
        clients.append(client)
        return client

    yield make

    for client in clients:
        client.__exit__(None, None, None)
    app.dependency_overrides.clear()


# ═══════════════════════════════════════════════════════════════════════════════
# Real toolchain gate
# ═══════════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def cargo_ok():
    """Skip tests if cargo is not available."""
    if shutil.which("cargo") is None:
        pytest.skip("cargo not available - install a Rust toolchain to run these tests")
