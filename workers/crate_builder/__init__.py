"""
crate_builder — remote cargo build worker.

Accept a tar archive of a cargo workspace, build one named package
offline in a throwaway directory, and hand back the produced library
archive (.rlib) or executable.

No caching, no persistence, no admission control.
"""

__version__ = "0.1.0"
BUILDER_NAME = "crate_builder"
BUILDER_VERSION = "v0"
PROFILE_ID = "cargo-debug-offline"
