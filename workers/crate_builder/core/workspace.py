"""
Workspace — a per-request temporary directory with guaranteed removal.

Usage::

    with Workspace(crate_name, parent=profile.workspace_root) as ws:
        ws.extract(payload)
        ...                     # ws.path is deleted on every exit path

Archive members are checked before anything touches the disk:
absolute paths, ``..`` components, links pointing outside the root and
device / FIFO entries are refused.  Extraction then runs through the
``"data"`` tarfile filter as a second line.
"""
import gzip
import io
import logging
import os
import re
import shutil
import tarfile
import tempfile
import zlib
from pathlib import Path, PurePosixPath
from typing import List, Optional

from crate_builder.errors import ArchiveExtractionError, WorkspaceAllocationError

logger = logging.getLogger(__name__)

_DRIVE_RE = re.compile(r"^[A-Za-z]:")
_GZIP_MAGIC = b"\x1f\x8b"


def _within(root: str, candidate: str) -> bool:
    root = os.path.normpath(root)
    candidate = os.path.normpath(candidate)
    return candidate == root or candidate.startswith(root + os.sep)


def decompress_payload(payload: bytes) -> bytes:
    """
    Gunzip *payload* if it carries the gzip magic, otherwise return it as-is.

    The whole stream is inflated up front so the CRC32 / length trailer
    is verified before any member is read.
    """
    if not payload.startswith(_GZIP_MAGIC):
        return payload
    try:
        return gzip.decompress(payload)
    except (OSError, EOFError, zlib.error) as e:
        logger.warning("Failed to gunzip archive payload: %r", e)
        raise ArchiveExtractionError(f"Unpack failed: corrupt gzip stream: {e}") from e


def check_end_of_archive(data: bytes, offset: int) -> None:
    """
    Require that everything from *offset* on is end-of-archive padding.

    tarfile stops listing members at the first unreadable header past
    the start of the archive without raising, so a damaged header would
    otherwise silently truncate the member list.
    """
    if data[offset:].strip(b"\0"):
        raise ArchiveExtractionError(
            "Unpack failed: corrupt member header",
            context={"offset": str(offset)},
        )


def check_member(member: tarfile.TarInfo, root: Path) -> None:
    """Raise ArchiveExtractionError if *member* would escape *root*."""
    name = member.name
    path = PurePosixPath(name)

    if not name or path.is_absolute() or name.startswith("\\") or _DRIVE_RE.match(name):
        raise ArchiveExtractionError(
            f"Unsafe archive member {name!r}: absolute path",
            context={"member": name},
        )
    if ".." in path.parts:
        raise ArchiveExtractionError(
            f"Unsafe archive member {name!r}: path traversal",
            context={"member": name},
        )
    if member.ischr() or member.isblk() or member.isfifo():
        raise ArchiveExtractionError(
            f"Unsupported archive member {name!r}: special file",
            context={"member": name},
        )

    dest = os.path.join(str(root), *path.parts)
    if member.issym():
        if os.path.isabs(member.linkname):
            raise ArchiveExtractionError(
                f"Unsafe symlink {name!r} -> {member.linkname!r}",
                context={"member": name},
            )
        target = os.path.join(os.path.dirname(dest), member.linkname)
        if not _within(str(root), target):
            raise ArchiveExtractionError(
                f"Unsafe symlink {name!r} -> {member.linkname!r}",
                context={"member": name},
            )
    elif member.islnk():
        target = os.path.join(str(root), member.linkname)
        if os.path.isabs(member.linkname) or not _within(str(root), target):
            raise ArchiveExtractionError(
                f"Unsafe hard link {name!r} -> {member.linkname!r}",
                context={"member": name},
            )


class Workspace:
    """Uniquely named temporary directory owned by one request."""

    def __init__(self, crate_name: str, parent: Optional[str] = None):
        self.crate_name = crate_name
        self.parent = parent
        self.root: Optional[Path] = None

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------

    def __enter__(self) -> "Workspace":
        try:
            if self.parent:
                Path(self.parent).mkdir(parents=True, exist_ok=True)
            self.root = Path(tempfile.mkdtemp(prefix=f"crate-{self.crate_name}-", dir=self.parent))
        except OSError as e:
            logger.error("Temp dir allocation failed (parent=%s): %s", self.parent, e)
            raise WorkspaceAllocationError(f"Temp dir error: {e}") from e

        logger.debug("Workspace allocated: %s", self.root)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.cleanup()

    def cleanup(self) -> None:
        """Remove the directory tree.  Failures are logged, not raised."""
        if self.root is None:
            return
        root, self.root = self.root, None
        try:
            shutil.rmtree(root)
            logger.debug("Workspace removed: %s", root)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Failed to remove workspace %s: %s", root, e)

    @property
    def path(self) -> Path:
        if self.root is None:
            raise RuntimeError("Workspace is not active")
        return self.root

    # -----------------------------------------------------------------
    # Extraction
    # -----------------------------------------------------------------

    def extract(self, payload: bytes) -> List[str]:
        """
        Unpack a tar archive (plain or gzip) into the workspace root.

        Returns the member names in archive order.
        """
        root = self.path
        if not payload:
            raise ArchiveExtractionError("Unpack failed: empty archive payload")

        data = decompress_payload(payload)
        try:
            with tarfile.open(fileobj=io.BytesIO(data), mode="r:") as tar:
                members = tar.getmembers()
                check_end_of_archive(data, tar.offset)
                for member in members:
                    check_member(member, root)
                tar.extractall(path=str(root), members=members, filter="data")
        except ArchiveExtractionError:
            raise
        except (tarfile.TarError, EOFError) as e:
            logger.warning("Failed to unpack archive: %r", e)
            raise ArchiveExtractionError(f"Unpack failed: {e}") from e
        except OSError as e:
            logger.warning("I/O error while unpacking archive into %s: %r", root, e)
            raise ArchiveExtractionError(f"Unpack failed: {e}") from e

        names = [m.name for m in members]
        logger.debug("Extracted %d archive members into %s", len(names), root)
        return names
