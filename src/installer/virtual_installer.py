"""Materializes a resolution graph as a virtual node_modules tree."""

from __future__ import annotations

import json
import logging
import posixpath
import re
from typing import Any, Dict, List

from common.logging_utils import Timer, extra_context
from common.vfs import FileSystem, join_path
from constants import Constants
from errors import FileSystemWriteError, InvalidPackageName
from versioning.models import ResolutionGraph, ResolvedPackage
from versioning.parser import is_valid_package_name

logger = logging.getLogger(__name__)

_INVALID_IDENTIFIER_CHARS = re.compile(r"[^A-Za-z0-9_$]")

_RESERVED_WORDS = frozenset(
    """
    await break case catch class const continue debugger default delete do else enum
    export extends false finally for function if implements import in instanceof
    interface let new null package private protected public return static super
    switch this throw true try typeof var void while with yield
    arguments eval undefined NaN Infinity module exports require
    """.split()
)


def mangle_name(name: str) -> str:
    """Turn a package name into a valid JavaScript identifier."""
    ident = _INVALID_IDENTIFIER_CHARS.sub("_", name)
    if not ident or ident[0].isdigit() or ident in _RESERVED_WORDS:
        ident = "_" + ident
    return ident


def dependency_identifiers(dep_names: List[str]) -> Dict[str, str]:
    """Map each dependency name to a distinct identifier.

    Names that mangle to the same identifier get ``_2``, ``_3``, ... in
    the order given.
    """
    taken = set()
    idents: Dict[str, str] = {}
    for dep in dep_names:
        base = mangle_name(dep)
        ident = base
        counter = 2
        while ident in taken:
            ident = f"{base}_{counter}"
            counter += 1
        taken.add(ident)
        idents[dep] = ident
    return idents


def dump_json(data: Any) -> bytes:
    """Stable JSON encoding used for every generated file."""
    return (json.dumps(data, indent=2, sort_keys=True, ensure_ascii=False) + "\n").encode("utf-8")


def build_package_json(package: ResolvedPackage, graph: ResolutionGraph) -> Dict[str, Any]:
    """package.json content for an installed package.

    Dependencies point at the version resolved in ``graph``; a dependency
    that was not resolved keeps its declared range.
    """
    dependencies = {}
    for dep_name, declared in sorted(package.dependencies.items()):
        dependencies[dep_name] = graph.resolved_version(dep_name) or declared
    return {
        "name": package.name,
        "version": package.version,
        "main": package.main or Constants.DEFAULT_MAIN,
        "exports": package.exports if package.exports is not None else {},
        "dependencies": dependencies,
    }


def build_entry_module(package: ResolvedPackage) -> str:
    """CommonJS entry module that re-exports the package's dependencies."""
    dep_names = sorted(package.dependency_names)
    idents = dependency_identifiers(dep_names)
    lines = [
        f"// vnpm virtual package: {package.name}@{package.version}",
        "// Generated automatically - do not edit",
        "",
    ]
    lines.extend(f"const {idents[dep]} = require({json.dumps(dep)});" for dep in dep_names)
    if dep_names:
        lines.append("")
    lines.append("module.exports = {")
    lines.extend(f"  {idents[dep]}," for dep in dep_names)
    lines.append("};")
    lines.append("module.exports.default = module.exports;")
    return "\n".join(lines) + "\n"


class VirtualInstaller:
    """Writes ``node_modules/{name}/package.json`` and an entry module per package.

    Packages are written in sorted name order so equal graphs produce
    identical trees. The first failing write aborts the install.
    """

    def __init__(self, fs: FileSystem):
        self._fs = fs

    async def install(self, root_path: str, graph: ResolutionGraph) -> None:
        """Materialize ``graph`` under ``{root_path}/node_modules``.

        Raises:
            FileSystemWriteError: On the first failing mkdir or write.
        """
        node_modules = join_path(root_path, Constants.NODE_MODULES_DIR)
        with Timer() as timer:
            await self._mkdir(node_modules)
            for name in graph.names():
                await self._install_package(node_modules, graph[name], graph)

        logger.info(
            "Installed %d package(s) into %s",
            len(graph),
            node_modules,
            extra=extra_context(event="install", component="installer", duration_ms=timer.duration_ms()),
        )

    async def _install_package(self, node_modules: str, package: ResolvedPackage, graph: ResolutionGraph) -> None:
        package_dir = join_path(node_modules, package.name)
        if not is_valid_package_name(package.name) or not package_dir.startswith(node_modules + "/"):
            raise FileSystemWriteError(package_dir, InvalidPackageName(package.name))
        manifest_path = join_path(package_dir, Constants.PACKAGE_JSON_FILE)
        await self._mkdir(package_dir)
        await self._write(manifest_path, dump_json(build_package_json(package, graph)))

        entry_path = join_path(package_dir, package.main or Constants.DEFAULT_MAIN)
        if not entry_path.startswith(package_dir + "/") or entry_path == manifest_path:
            entry_path = join_path(package_dir, Constants.DEFAULT_MAIN)
        entry_dir = posixpath.dirname(entry_path)
        if entry_dir != package_dir:
            await self._mkdir(entry_dir)
        await self._write(entry_path, build_entry_module(package).encode("utf-8"))

    async def _mkdir(self, path: str) -> None:
        try:
            await self._fs.mkdir(path, recursive=True)
        except OSError as exc:
            raise FileSystemWriteError(path, exc) from exc

    async def _write(self, path: str, data: bytes) -> None:
        try:
            await self._fs.write_file(path, data)
        except OSError as exc:
            raise FileSystemWriteError(path, exc) from exc
