"""
Artifacts — locate and load the file cargo produced for a crate.

Search order is policy, not discovery order:

  1. LibraryArchiveSearch  target/debug/deps/lib<crate>[-<hash>].rlib
  2. ExecutableSearch      target/debug/<crate>

The first strategy that returns a match wins.  Filesystem access goes
through a ``DirectoryLister`` so strategies can be exercised against an
in-memory tree.
"""
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from crate_builder.errors import ArtifactNotFound, ArtifactReadError
from crate_builder.io.schema import Artifact, ArtifactKind
from crate_builder.policy.naming import library_file_pattern
from crate_builder.policy.profile import Profile

logger = logging.getLogger(__name__)


# ── Filesystem seam ──────────────────────────────────────────────────────────

class DirectoryLister(Protocol):
    def list_files(self, directory: Path) -> List[str]:
        """Names of regular files directly inside *directory* ([] if absent)."""
        ...

    def is_file(self, path: Path) -> bool:
        ...

    def read_bytes(self, path: Path) -> bytes:
        ...


class LocalDirectoryLister:
    """DirectoryLister backed by the real filesystem."""

    def list_files(self, directory: Path) -> List[str]:
        try:
            with os.scandir(directory) as it:
                return [e.name for e in it if e.is_file()]
        except (FileNotFoundError, NotADirectoryError):
            return []

    def is_file(self, path: Path) -> bool:
        return Path(path).is_file()

    def read_bytes(self, path: Path) -> bytes:
        return Path(path).read_bytes()


# ── Strategies ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ArtifactMatch:
    kind: ArtifactKind
    path: Path
    header_value: str

    @property
    def file_name(self) -> str:
        return self.path.name


class SearchStrategy(Protocol):
    kind: ArtifactKind

    def find(
        self,
        output_root: Path,
        crate_name: str,
        lister: DirectoryLister,
    ) -> Optional[ArtifactMatch]:
        ...


@dataclass(frozen=True)
class LibraryArchiveSearch:
    """``lib<crate>[-<hash>].rlib`` under the deps directory."""

    deps_dir: str = "deps"
    suffix: str = ".rlib"
    kind: ArtifactKind = ArtifactKind.LIBRARY_ARCHIVE

    def find(self, output_root, crate_name, lister):
        directory = Path(output_root) / self.deps_dir
        pattern = library_file_pattern(crate_name, self.suffix)
        candidates = sorted(n for n in lister.list_files(directory) if pattern.match(n))
        if not candidates:
            return None
        if len(candidates) > 1:
            logger.info(
                "%d library candidates for %s, selecting %s: %s",
                len(candidates), crate_name, candidates[0], candidates,
            )
        return ArtifactMatch(
            kind=self.kind,
            path=directory / candidates[0],
            header_value=candidates[0],
        )


@dataclass(frozen=True)
class ExecutableSearch:
    """A regular file named exactly ``<crate>`` in the output root."""

    kind: ArtifactKind = ArtifactKind.EXECUTABLE

    def find(self, output_root, crate_name, lister):
        path = Path(output_root) / crate_name
        if not lister.is_file(path):
            return None
        return ArtifactMatch(kind=self.kind, path=path, header_value=crate_name)


def strategies_for(profile: Profile) -> Sequence[SearchStrategy]:
    """The ordered search sequence for *profile*: library first."""
    return (
        LibraryArchiveSearch(deps_dir=profile.deps_dir, suffix=profile.library_suffix),
        ExecutableSearch(),
    )


DEFAULT_STRATEGIES: Sequence[SearchStrategy] = strategies_for(Profile.v0())


# ── Resolution ───────────────────────────────────────────────────────────────

def locate_artifact(
    output_root: Path,
    crate_name: str,
    lister: Optional[DirectoryLister] = None,
    strategies: Sequence[SearchStrategy] = DEFAULT_STRATEGIES,
) -> ArtifactMatch:
    """Run *strategies* in order and return the first match."""
    lister = lister or LocalDirectoryLister()
    for strategy in strategies:
        match = strategy.find(output_root, crate_name, lister)
        if match is not None:
            logger.debug("Artifact for %s found by %s: %s", crate_name, type(strategy).__name__, match.path)
            return match

    logger.error("No output file found for %s under %s", crate_name, output_root)
    raise ArtifactNotFound(
        f"No output file found for {crate_name}",
        context={"output_root": str(output_root)},
    )


def load_artifact(match: ArtifactMatch, lister: Optional[DirectoryLister] = None) -> Artifact:
    """Read the matched file fully into memory."""
    lister = lister or LocalDirectoryLister()
    try:
        data = lister.read_bytes(match.path)
    except OSError as e:
        logger.error("Failed to read artifact %s: %s", match.path, e)
        raise ArtifactReadError(
            f"Failed to read output file {match.file_name}: {e}",
            context={"path": str(match.path)},
        ) from e

    return Artifact(
        kind=match.kind,
        file_name=match.file_name,
        header_value=match.header_value,
        data=data,
    )


def resolve_artifact(
    output_root: Path,
    crate_name: str,
    lister: Optional[DirectoryLister] = None,
    strategies: Sequence[SearchStrategy] = DEFAULT_STRATEGIES,
) -> Artifact:
    """locate_artifact + load_artifact."""
    lister = lister or LocalDirectoryLister()
    match = locate_artifact(output_root, crate_name, lister, strategies)
    return load_artifact(match, lister)
