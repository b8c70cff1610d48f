"""Tests for the virtual node_modules installer."""

import asyncio
import json

import pytest

from common.vfs import MemoryFileSystem
from errors import FileSystemWriteError, InvalidPackageName
from installer.virtual_installer import (
    VirtualInstaller,
    build_entry_module,
    build_package_json,
    dependency_identifiers,
    dump_json,
    mangle_name,
)
from versioning.models import ResolutionGraph, ResolvedPackage


def _chain_graph():
    return ResolutionGraph(
        {
            "pkg-a": ResolvedPackage(name="pkg-a", version="1.0.0", dependencies={"pkg-b": "^2.0.0"}),
            "pkg-b": ResolvedPackage(name="pkg-b", version="2.1.0", dependencies={"pkg-c": "~3.0.0"}),
            "pkg-c": ResolvedPackage(name="pkg-c", version="3.0.4"),
        }
    )


class _FailingFileSystem(MemoryFileSystem):
    def __init__(self, fail_on):
        super().__init__()
        self.fail_on = fail_on

    async def write_file(self, path, data):
        if path.endswith(self.fail_on):
            raise PermissionError(f"read-only: {path}")
        await super().write_file(path, data)


class TestMangleName:
    """Test JavaScript identifier mangling."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            ("lodash", "lodash"),
            ("pkg-b", "pkg_b"),
            ("@types/node", "_types_node"),
            ("lodash.merge", "lodash_merge"),
            ("7zip-bin", "_7zip_bin"),
            ("$jquery", "$jquery"),
            ("delete", "_delete"),
            ("class", "_class"),
            ("require", "_require"),
        ],
    )
    def test_mangle(self, name, expected):
        assert mangle_name(name) == expected

    def test_colliding_names_get_distinct_identifiers(self):
        idents = dependency_identifiers(["a-b", "a.b", "a_b"])
        assert idents == {"a-b": "a_b", "a.b": "a_b_2", "a_b": "a_b_3"}

    def test_entry_module_declares_each_identifier_once(self):
        pkg = ResolvedPackage(name="host", version="1.0.0", dependencies={"a-b": "*", "a.b": "*", "delete": "*"})
        source = build_entry_module(pkg)

        declared = [line.split()[1] for line in source.splitlines() if line.startswith("const ")]
        assert declared == ["a_b", "a_b_2", "_delete"]
        assert 'const a_b_2 = require("a.b");' in source
        assert "  a_b_2,\n" in source


class TestGeneratedFiles:
    """Test package.json and entry module content."""

    def test_package_json_uses_resolved_versions(self):
        graph = _chain_graph()
        data = build_package_json(graph["pkg-a"], graph)
        assert data == {
            "name": "pkg-a",
            "version": "1.0.0",
            "main": "index.js",
            "exports": {},
            "dependencies": {"pkg-b": "2.1.0"},
        }

    def test_package_json_keeps_range_for_unresolved(self):
        pkg = ResolvedPackage(name="a", version="1.0.0", dependencies={"gone": "^1.2.3"})
        data = build_package_json(pkg, ResolutionGraph({"a": pkg}))
        assert data["dependencies"] == {"gone": "^1.2.3"}

    def test_package_json_passes_main_and_exports(self):
        pkg = ResolvedPackage(name="a", version="1.0.0", main="lib/a.js", exports={".": "./lib/a.js"})
        data = build_package_json(pkg, ResolutionGraph({"a": pkg}))
        assert data["main"] == "lib/a.js"
        assert data["exports"] == {".": "./lib/a.js"}

    def test_dump_json_is_stable(self):
        assert dump_json({"b": 1, "a": [1]}) == b'{\n  "a": [\n    1\n  ],\n  "b": 1\n}\n'

    def test_entry_module_requires_dependencies(self):
        pkg = ResolvedPackage(name="app", version="1.0.0", dependencies={"pkg-b": "*", "@s/x": "*"})
        source = build_entry_module(pkg)
        assert source.startswith("// vnpm virtual package: app@1.0.0\n")
        assert 'const _s_x = require("@s/x");' in source
        assert 'const pkg_b = require("pkg-b");' in source
        assert source.index("_s_x = require") < source.index("pkg_b = require")
        assert "module.exports = {\n  _s_x,\n  pkg_b,\n};" in source
        assert source.endswith("module.exports.default = module.exports;\n")

    def test_entry_module_without_dependencies(self):
        source = build_entry_module(ResolvedPackage(name="leaf", version="1.0.0"))
        assert "require(" not in source
        assert "module.exports = {\n};" in source


class TestVirtualInstaller:
    """Test VirtualInstaller.install."""

    def test_install_writes_tree(self):
        fs = MemoryFileSystem()

        async def _run():
            await VirtualInstaller(fs).install("/project", _chain_graph())
            return (
                await fs.readdir("/project/node_modules"),
                json.loads(await fs.read_file("/project/node_modules/pkg-a/package.json")),
                await fs.exists("/project/node_modules/pkg-c/index.js"),
            )

        listing, manifest, has_entry = asyncio.run(_run())
        assert listing == ["pkg-a", "pkg-b", "pkg-c"]
        assert manifest["dependencies"] == {"pkg-b": "2.1.0"}
        assert has_entry is True

    def test_install_scoped_and_nested_main(self):
        fs = MemoryFileSystem()
        pkg = ResolvedPackage(name="@scope/pkg", version="1.0.0", main="dist/main.js")

        async def _run():
            await VirtualInstaller(fs).install("/", ResolutionGraph({"@scope/pkg": pkg}))
            return await fs.exists("/node_modules/@scope/pkg/dist/main.js")

        assert asyncio.run(_run()) is True

    def test_main_outside_package_falls_back_to_index(self):
        fs = MemoryFileSystem()
        pkg = ResolvedPackage(name="evil", version="1.0.0", main="../../escape.js")

        async def _run():
            await VirtualInstaller(fs).install("/", ResolutionGraph({"evil": pkg}))
            return await fs.exists("/node_modules/evil/index.js"), await fs.exists("/escape.js")

        assert asyncio.run(_run()) == (True, False)

    def test_install_is_deterministic(self):
        async def _snapshot():
            fs = MemoryFileSystem()
            await VirtualInstaller(fs).install("/", _chain_graph())
            return {name: await fs.read_file(f"/node_modules/{name}/package.json") for name in ("pkg-a", "pkg-b", "pkg-c")}

        assert asyncio.run(_snapshot()) == asyncio.run(_snapshot())

    def test_write_failure_is_wrapped(self):
        fs = _FailingFileSystem("pkg-b/package.json")
        with pytest.raises(FileSystemWriteError) as excinfo:
            asyncio.run(VirtualInstaller(fs).install("/", _chain_graph()))
        assert excinfo.value.path == "/node_modules/pkg-b/package.json"
        assert isinstance(excinfo.value.cause, PermissionError)

    def test_main_naming_package_json_keeps_manifest(self):
        fs = MemoryFileSystem()
        pkg = ResolvedPackage(name="selfish", version="1.0.0", main="./package.json")

        async def _run():
            await VirtualInstaller(fs).install("/", ResolutionGraph({"selfish": pkg}))
            return (
                json.loads(await fs.read_file("/node_modules/selfish/package.json")),
                await fs.exists("/node_modules/selfish/index.js"),
            )

        manifest, has_index = asyncio.run(_run())
        assert manifest["name"] == "selfish"
        assert manifest["version"] == "1.0.0"
        assert has_index is True

    @pytest.mark.parametrize("bad_name", ["..", "../../etc", "a/../../b", "/abs"])
    def test_name_escaping_node_modules_is_rejected(self, bad_name):
        fs = MemoryFileSystem()
        pkg = ResolvedPackage(name=bad_name, version="1.0.0")

        with pytest.raises(FileSystemWriteError) as excinfo:
            asyncio.run(VirtualInstaller(fs).install("/app", ResolutionGraph({bad_name: pkg})))

        assert isinstance(excinfo.value.cause, InvalidPackageName)
        assert asyncio.run(fs.exists("/app/package.json")) is False
        assert asyncio.run(fs.readdir("/app/node_modules")) == []
