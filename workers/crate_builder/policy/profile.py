"""
Profile — toolchain descriptor and tunable limits.

The profile holds every policy knob (tool binary, output layout,
timeouts, body cap) so the pipeline stages contain no opinions.
Pointing the worker at a different cargo, or at a release build
directory, is a profile change, not a code change.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Tuple

from crate_builder import PROFILE_ID


@dataclass(frozen=True)
class Profile:
    """Describes how one compile request is carried out."""

    # Identity
    profile_id: str

    # Toolchain
    cargo_bin: str = "cargo"
    extra_args: Tuple[str, ...] = ()
    build_timeout: Optional[int] = 600     # seconds; None waits forever

    # Output layout, relative to the workspace root
    target_dir: str = "target"
    build_dir: str = "debug"
    deps_dir: str = "deps"
    library_suffix: str = ".rlib"

    # Intake / workspace
    max_body_bytes: Optional[int] = None   # None = unlimited
    workspace_root: Optional[str] = None   # None = platform temp dir

    @classmethod
    def v0(cls) -> "Profile":
        """The default profile: debug build, offline, ten minute ceiling."""
        return cls(profile_id=PROFILE_ID)

    def output_root(self, workspace_root: Path) -> Path:
        """``<workspace>/target/debug``."""
        return Path(workspace_root) / self.target_dir / self.build_dir
