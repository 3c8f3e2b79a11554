"""
Naming — crate-name validation and output file-name conventions.

cargo package names are ASCII letters, digits, ``-`` and ``_``.  The
library target of a package is named after the package with ``-``
turned into ``_``; executables keep the package name as-is.
"""
import re
from typing import Optional, Pattern

CRATE_NAME_PATTERN = r"^[A-Za-z0-9_-]+$"
MAX_CRATE_NAME_LENGTH = 64

_CRATE_NAME_RE = re.compile(CRATE_NAME_PATTERN)


def is_valid_crate_name(name: Optional[str]) -> bool:
    if not name or len(name) > MAX_CRATE_NAME_LENGTH:
        return False
    return _CRATE_NAME_RE.match(name) is not None


def library_stem(crate_name: str) -> str:
    """``hello-lib`` → ``hello_lib``."""
    return crate_name.replace("-", "_")


def library_file_pattern(crate_name: str, suffix: str = ".rlib") -> Pattern[str]:
    """
    Match ``lib<stem><suffix>`` or ``lib<stem>-<hash><suffix>``.

    The hash is cargo's hex metadata suffix.  Anchoring both ends keeps
    ``foo`` from matching ``libfoo_bar-….rlib``.
    """
    stem = re.escape(library_stem(crate_name))
    return re.compile(rf"^lib{stem}(?:-[0-9a-f]+)?{re.escape(suffix)}$")
