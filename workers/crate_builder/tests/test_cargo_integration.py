"""
test_cargo_integration — real cargo, real archives, through the API.

Skipped when cargo is not on PATH.  The sample crates have no
dependencies, so ``--offline`` never needs a registry.
"""
import re

from conftest import HELLO_BIN_FILES, HELLO_LIB_FILES, make_tar
from crate_builder.core.toolchain import CargoCompiler


def _post(client, files, crate_name):
    return client.post(
        "/compile",
        params={"crate_name": crate_name},
        content=make_tar(files),
        headers={"Content-Type": "application/x-tar"},
    )


class TestRealCargo:
    """End-to-end builds with the installed toolchain."""

    def test_library_crate(self, cargo_ok, api_factory, profile):
        """hello-lib → a real rlib archive named libhello_lib-<hash>.rlib."""
        resp = _post(api_factory(CargoCompiler(profile)), HELLO_LIB_FILES, "hello-lib")
        assert resp.status_code == 200, resp.text
        assert re.fullmatch(r"libhello_lib-[0-9a-f]+\.rlib", resp.headers["x-rlib-file"])
        assert resp.content.startswith(b"!<arch>\n")

    def test_binary_crate(self, cargo_ok, api_factory, profile):
        """hello-bin → a non-empty executable under X-Binary-File."""
        resp = _post(api_factory(CargoCompiler(profile)), HELLO_BIN_FILES, "hello-bin")
        assert resp.status_code == 200, resp.text
        assert resp.headers["x-binary-file"] == "hello-bin"
        assert len(resp.content) > 0

    def test_unknown_package(self, cargo_ok, api_factory, profile):
        """An unknown -p target → 500 with cargo's complaint in the body."""
        resp = _post(api_factory(CargoCompiler(profile)), HELLO_LIB_FILES, "nonexistent")
        assert resp.status_code == 500
        assert resp.headers["x-error-code"] == "E_BUILD_FAILURE"
        assert "nonexistent" in resp.text

    def test_workspace_removed(self, cargo_ok, api_factory, profile, workspace_parent):
        """A real build leaves nothing under the workspace parent."""
        _post(api_factory(CargoCompiler(profile)), HELLO_LIB_FILES, "hello-lib")
        assert list(workspace_parent.iterdir()) == []
