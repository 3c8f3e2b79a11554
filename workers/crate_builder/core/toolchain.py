"""
Toolchain — run cargo against an extracted workspace.

``Compiler`` is the seam the pipeline depends on; ``CargoCompiler`` is
the real subprocess-backed implementation.  Tests swap in fakes that
never spawn a process.

Outcomes:
  - process could not start          → ToolchainLaunchError
  - process exceeded the timeout     → killed, then ToolchainTimeout
  - the cancel event was set         → killed, then BuildCancelled
  - process exited (any status)      → ToolchainResult
A non-zero exit is a normal build failure, not a system error; the
caller decides what to do with it.
"""
import logging
import os
import shutil
import signal
import subprocess
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Protocol

from crate_builder.errors import BuildCancelled, ToolchainLaunchError, ToolchainTimeout
from crate_builder.io.schema import ToolchainResult
from crate_builder.policy.profile import Profile

logger = logging.getLogger(__name__)

# Variables that would move outputs away from <workspace>/target/debug.
_SCRUBBED_ENV = ("CARGO_TARGET_DIR", "CARGO_BUILD_TARGET_DIR", "CARGO_BUILD_TARGET")

# Seconds between checks of the cancel event and the deadline.
POLL_INTERVAL = 0.25


class Compiler(Protocol):
    """Build one named package inside a workspace."""

    def build(
        self,
        workspace_root: Path,
        crate_name: str,
        cancel: Optional[threading.Event] = None,
    ) -> ToolchainResult:
        ...


# =============================================================================
# Toolchain Discovery
# =============================================================================

_cached_versions: Dict[str, str] = {}


def _run_quiet(cmd: List[str], timeout: int = 5) -> str:
    """Run a command and return stdout, or "unknown" on any failure."""
    try:
        r = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        return r.stdout.strip() or "unknown"
    except (OSError, subprocess.SubprocessError):
        return "unknown"


def capture_toolchain(cargo_bin: str = "cargo") -> Dict[str, object]:
    """Report whether *cargo_bin* is invocable, and its version.  Cached per binary."""
    resolved = shutil.which(cargo_bin)
    if resolved is None:
        return {"available": False, "path": None, "version": "unknown"}

    if cargo_bin not in _cached_versions:
        raw = _run_quiet([resolved, "--version"])
        _cached_versions[cargo_bin] = raw.splitlines()[0] if raw else "unknown"

    return {"available": True, "path": resolved, "version": _cached_versions[cargo_bin]}


# =============================================================================
# CargoCompiler
# =============================================================================

def _child_env() -> Dict[str, str]:
    env = {k: v for k, v in os.environ.items() if k not in _SCRUBBED_ENV}
    env["CARGO_TERM_COLOR"] = "never"
    return env


def _kill(proc: subprocess.Popen) -> None:
    """Kill cargo and, on POSIX, the rustc children in its process group."""
    if proc.poll() is not None:
        return
    try:
        if os.name == "posix":
            os.killpg(proc.pid, signal.SIGKILL)
        else:
            proc.kill()
    except ProcessLookupError:
        pass
    except OSError as e:
        logger.warning("Failed to kill toolchain process %s: %s", proc.pid, e)
        proc.kill()


def _kill_and_drain(proc: subprocess.Popen) -> str:
    """Kill *proc* and return whatever it wrote to stderr so far."""
    _kill(proc)
    _, stderr_raw = proc.communicate()
    return (stderr_raw or b"").decode("utf-8", errors="replace")


class CargoCompiler:
    """
    ``cargo build -p <crate> --offline`` with the workspace as cwd.

    stdout is discarded; stderr is decoded as UTF-8 with replacement
    characters so diagnostics always reach the caller.
    """

    def __init__(self, profile: Optional[Profile] = None):
        self.profile = profile or Profile.v0()

    def command(self, crate_name: str) -> List[str]:
        extra = [a for a in self.profile.extra_args if a != "--offline"]
        return [self.profile.cargo_bin, "build", "-p", crate_name, "--offline", *extra]

    def build(
        self,
        workspace_root: Path,
        crate_name: str,
        cancel: Optional[threading.Event] = None,
    ) -> ToolchainResult:
        cmd = self.command(crate_name)
        timeout = self.profile.build_timeout or None
        logger.info("Running %s in %s", " ".join(cmd), workspace_root)

        t0 = time.monotonic()
        deadline = None if timeout is None else t0 + timeout
        try:
            proc = subprocess.Popen(
                cmd,
                cwd=str(workspace_root),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=_child_env(),
                start_new_session=(os.name == "posix"),
            )
        except OSError as e:
            logger.error("Failed to run %s: %r", self.profile.cargo_bin, e)
            raise ToolchainLaunchError(
                f"Cargo execution failed: {e}",
                context={"command": " ".join(cmd)},
            ) from e

        try:
            while True:
                wait = POLL_INTERVAL
                if deadline is not None:
                    wait = max(0.0, min(wait, deadline - time.monotonic()))
                try:
                    _, stderr_raw = proc.communicate(timeout=wait)
                    break
                except subprocess.TimeoutExpired:
                    pass

                if cancel is not None and cancel.is_set():
                    stderr = _kill_and_drain(proc)
                    logger.warning("cargo build -p %s cancelled: client disconnected", crate_name)
                    raise BuildCancelled(
                        "Build cancelled: client disconnected",
                        context={"command": " ".join(cmd), "stderr": stderr},
                    )
                if deadline is not None and time.monotonic() >= deadline:
                    stderr = _kill_and_drain(proc)
                    duration = int((time.monotonic() - t0) * 1000)
                    logger.error("cargo build -p %s timed out after %ss", crate_name, timeout)
                    raise ToolchainTimeout(
                        f"Build timed out after {timeout}s",
                        stderr=stderr,
                        context={"command": " ".join(cmd), "duration_ms": str(duration)},
                    )
        finally:
            # Covers exceptions other than the two above (e.g. interpreter shutdown).
            if proc.poll() is None:
                _kill(proc)
                proc.wait()

        duration = int((time.monotonic() - t0) * 1000)
        stderr = (stderr_raw or b"").decode("utf-8", errors="replace")
        result = ToolchainResult(
            succeeded=proc.returncode == 0,
            exit_code=proc.returncode,
            stderr=stderr,
            output_root=self.profile.output_root(workspace_root),
            command=cmd,
            duration_ms=duration,
        )
        logger.info(
            "cargo build -p %s finished: exit=%d duration=%dms",
            crate_name, result.exit_code, duration,
        )
        return result
