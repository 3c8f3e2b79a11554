"""
Schema — Pydantic models passed between pipeline stages.

  BuildRequest     — intake output (crate name + archive bytes)
  ToolchainResult  — what one cargo invocation reported
  Artifact         — the selected output file and its bytes
  CompileOutcome   — successful pipeline result, serialized by the API

All models are frozen: each is produced once and never mutated.
"""
import hashlib
from enum import Enum
from pathlib import Path
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field

from crate_builder.policy.naming import CRATE_NAME_PATTERN, MAX_CRATE_NAME_LENGTH


# ── Enums ────────────────────────────────────────────────────────────────────

class ArtifactKind(str, Enum):
    """Kind of file returned to the caller."""
    LIBRARY_ARCHIVE = "rlib"
    EXECUTABLE = "binary"


ARTIFACT_HEADERS: Dict[ArtifactKind, str] = {
    ArtifactKind.LIBRARY_ARCHIVE: "X-Rlib-File",
    ArtifactKind.EXECUTABLE: "X-Binary-File",
}


# ── Intake ───────────────────────────────────────────────────────────────────

class BuildRequest(BaseModel):
    """One inbound compile call."""
    model_config = ConfigDict(frozen=True)

    crate_name: str = Field(
        ...,
        min_length=1,
        max_length=MAX_CRATE_NAME_LENGTH,
        pattern=CRATE_NAME_PATTERN,
        description="cargo package to build (-p)",
    )
    payload: bytes = Field(..., repr=False, description="Tar archive of the source tree")

    @property
    def payload_size(self) -> int:
        return len(self.payload)


# ── Toolchain ────────────────────────────────────────────────────────────────

class ToolchainResult(BaseModel):
    """Outcome of a single toolchain invocation."""
    model_config = ConfigDict(frozen=True)

    succeeded: bool
    exit_code: int
    stderr: str = ""
    output_root: Path          # only meaningful when succeeded
    command: List[str] = Field(default_factory=list)
    duration_ms: int = 0


# ── Artifact ─────────────────────────────────────────────────────────────────

class Artifact(BaseModel):
    """The compiled file handed back to the caller."""
    model_config = ConfigDict(frozen=True)

    kind: ArtifactKind
    file_name: str
    header_value: str          # rlib file name, or the crate name for binaries
    data: bytes = Field(..., repr=False)

    @property
    def header_name(self) -> str:
        return ARTIFACT_HEADERS[self.kind]

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def sha256(self) -> str:
        return hashlib.sha256(self.data).hexdigest()


class CompileOutcome(BaseModel):
    """A successful compile: the artifact plus the toolchain record."""
    model_config = ConfigDict(frozen=True)

    crate_name: str
    artifact: Artifact
    toolchain: ToolchainResult

    def response_headers(self) -> Dict[str, str]:
        """Headers for the 200 response (content type is set by the caller)."""
        return {
            self.artifact.header_name: self.artifact.header_value,
            "X-Artifact-Sha256": self.artifact.sha256,
            "X-Build-Duration-Ms": str(self.toolchain.duration_ms),
        }
