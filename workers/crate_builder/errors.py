"""
Errors — typed failures of the compile pipeline.

Every failure carries a stable machine-readable code and the HTTP
status it maps to.  The API layer converts any ``CompileError`` into a
plain-text response; nothing here knows about HTTP frameworks.
"""
from __future__ import annotations

from enum import Enum, unique
from typing import Dict, Mapping, Optional


@unique
class ErrorCode(str, Enum):
    """Stable error identifiers returned in the ``X-Error-Code`` header."""
    INVALID_REQUEST = "E_INVALID_REQUEST"
    BODY_READ = "E_BODY_READ"
    PAYLOAD_TOO_LARGE = "E_PAYLOAD_TOO_LARGE"
    ARCHIVE_EXTRACTION = "E_ARCHIVE_EXTRACTION"
    WORKSPACE_ALLOCATION = "E_WORKSPACE_ALLOCATION"
    TOOLCHAIN_LAUNCH = "E_TOOLCHAIN_LAUNCH"
    TOOLCHAIN_TIMEOUT = "E_TOOLCHAIN_TIMEOUT"
    BUILD_CANCELLED = "E_BUILD_CANCELLED"
    BUILD_FAILURE = "E_BUILD_FAILURE"
    ARTIFACT_NOT_FOUND = "E_ARTIFACT_NOT_FOUND"
    ARTIFACT_READ = "E_ARTIFACT_READ"


class CompileError(Exception):
    """Base class: message, code, HTTP status and optional context."""

    code: ErrorCode = ErrorCode.INVALID_REQUEST
    status_code: int = 500

    def __init__(self, message: str, *, context: Optional[Mapping[str, str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, str] = dict(context or {})

    @property
    def is_client_error(self) -> bool:
        return 400 <= self.status_code < 500

    @property
    def body(self) -> str:
        """Plain-text response body."""
        return self.message

    def to_dict(self) -> Dict[str, object]:
        return {
            "code": self.code.value,
            "status": self.status_code,
            "message": self.message,
            "context": dict(self.context),
        }


# ── Client errors (4xx) ──────────────────────────────────────────────────────

class InvalidRequest(CompileError):
    code = ErrorCode.INVALID_REQUEST
    status_code = 400


class BodyReadError(CompileError):
    code = ErrorCode.BODY_READ
    status_code = 400


class PayloadTooLarge(CompileError):
    code = ErrorCode.PAYLOAD_TOO_LARGE
    status_code = 413


class ArchiveExtractionError(CompileError):
    code = ErrorCode.ARCHIVE_EXTRACTION
    status_code = 400


class BuildCancelled(CompileError):
    """The client went away mid-build; the toolchain was killed."""

    code = ErrorCode.BUILD_CANCELLED
    status_code = 499  # client closed request


# ── Server-side errors (500) ─────────────────────────────────────────────────

class WorkspaceAllocationError(CompileError):
    code = ErrorCode.WORKSPACE_ALLOCATION
    status_code = 500


class ToolchainLaunchError(CompileError):
    code = ErrorCode.TOOLCHAIN_LAUNCH
    status_code = 500


class ToolchainTimeout(CompileError):
    """The toolchain was killed at the deadline.  Body ends with its partial stderr."""

    code = ErrorCode.TOOLCHAIN_TIMEOUT
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        stderr: str = "",
        context: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(message, context=context)
        self.stderr = stderr

    @property
    def body(self) -> str:
        if not self.stderr.strip():
            return self.message
        return f"{self.message}\n\n{self.stderr}"


class BuildFailure(CompileError):
    """The toolchain ran and exited non-zero.  Body is its stderr, verbatim."""

    code = ErrorCode.BUILD_FAILURE
    status_code = 500

    def __init__(
        self,
        stderr: str,
        *,
        exit_code: int,
        context: Optional[Mapping[str, str]] = None,
    ) -> None:
        super().__init__(f"Build failed with exit code {exit_code}", context=context)
        self.stderr = stderr
        self.exit_code = exit_code

    @property
    def body(self) -> str:
        # An empty stderr still has to tell the caller something.
        return self.stderr if self.stderr.strip() else self.message


class ArtifactNotFound(CompileError):
    code = ErrorCode.ARTIFACT_NOT_FOUND
    status_code = 500


class ArtifactReadError(CompileError):
    code = ErrorCode.ARTIFACT_READ
    status_code = 500


__all__ = [
    "ArchiveExtractionError",
    "ArtifactNotFound",
    "ArtifactReadError",
    "BodyReadError",
    "BuildCancelled",
    "BuildFailure",
    "CompileError",
    "ErrorCode",
    "InvalidRequest",
    "PayloadTooLarge",
    "ToolchainLaunchError",
    "ToolchainTimeout",
    "WorkspaceAllocationError",
]
