"""package-lock.json generation and loading.

``generate`` is a pure function of the graph content: the same packages
always produce the same lockfile, whatever order they were resolved in.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from common.vfs import FileSystem, join_path
from constants import Constants
from errors import FileSystemWriteError, InvalidPackageName
from versioning.models import ResolutionGraph, ResolvedPackage
from versioning.parser import is_valid_package_name

logger = logging.getLogger(__name__)

_PACKAGE_PREFIX = Constants.NODE_MODULES_DIR + "/"


def generate(
    graph: ResolutionGraph,
    name: Optional[str] = None,
    version: Optional[str] = None,
) -> Dict[str, Any]:
    """Build the lockfile dict for ``graph``.

    Args:
        graph: Resolution graph to record.
        name: Root project name; defaults to a generated name.
        version: Root project version.
    """
    packages: Dict[str, Any] = {}
    dependencies: Dict[str, str] = {}
    for pkg_name in graph.names():
        pkg = graph[pkg_name]
        packages[_PACKAGE_PREFIX + pkg_name] = {
            "version": pkg.version,
            "resolved": pkg.tarball_url,
            "integrity": pkg.integrity or Constants.UNKNOWN_INTEGRITY,
            "dependencies": dict(sorted(pkg.dependencies.items())),
        }
        dependencies[pkg_name] = pkg.version

    return {
        "name": name or Constants.LOCKFILE_DEFAULT_NAME,
        "version": version or Constants.LOCKFILE_DEFAULT_VERSION,
        "lockfileVersion": Constants.LOCKFILE_VERSION,
        "packages": packages,
        "dependencies": dependencies,
    }


def serialize(lockfile: Dict[str, Any]) -> bytes:
    """Encode a lockfile with sorted keys and a trailing newline."""
    return (json.dumps(lockfile, indent=2, sort_keys=True) + "\n").encode("utf-8")


async def write(
    fs: FileSystem,
    root_path: str,
    graph: ResolutionGraph,
    name: Optional[str] = None,
    version: Optional[str] = None,
) -> Dict[str, Any]:
    """Generate the lockfile for ``graph`` and write it to ``{root_path}/package-lock.json``.

    Raises:
        FileSystemWriteError: If the write fails.
    """
    lockfile = generate(graph, name=name, version=version)
    path = join_path(root_path, Constants.LOCKFILE_NAME)
    try:
        await fs.write_file(path, serialize(lockfile))
    except OSError as exc:
        raise FileSystemWriteError(path, exc) from exc
    logger.debug("Wrote lockfile with %d package(s) to %s", len(graph), path)
    return lockfile


def _name_from_path(pkg_path: str) -> str:
    """``node_modules/a/node_modules/@s/b`` -> ``@s/b``."""
    path_parts = pkg_path.split("/")
    if len(path_parts) >= 2 and path_parts[-2].startswith("@"):
        return f"{path_parts[-2]}/{path_parts[-1]}"
    return path_parts[-1]


def graph_from_lockfile(data: Any) -> ResolutionGraph:
    """Rebuild a ResolutionGraph from a decoded lockfile.

    Reads the ``packages`` map written by ``generate`` (and by npm for
    lockfileVersion 2/3), falling back to npm's nested v1 ``dependencies``
    map. Only the first entry per name is kept. Entries whose name is not a
    valid package name are left out and recorded as skipped.

    Raises:
        ValueError: If ``data`` is not a lockfile.
    """
    if not isinstance(data, dict):
        raise ValueError("lockfile is not a JSON object")

    resolved: Dict[str, ResolvedPackage] = {}
    skipped: Dict[str, str] = {}

    def _accept(name: Any) -> bool:
        if is_valid_package_name(name):
            return True
        logger.warning("Ignoring lockfile entry with invalid package name %r", name)
        skipped[str(name)] = str(InvalidPackageName(str(name)))
        return False

    packages = data.get("packages")
    if isinstance(packages, dict):
        for pkg_path in sorted(packages, key=lambda p: (p.count("/node_modules/"), p)):
            info = packages[pkg_path]
            # Skip root package (empty path)
            if not pkg_path or not isinstance(info, dict) or "version" not in info:
                continue
            name = info.get("name") or _name_from_path(pkg_path)
            if name in resolved or not _accept(name):
                continue
            resolved[name] = ResolvedPackage(
                name=name,
                version=str(info["version"]),
                tarball_url=info.get("resolved"),
                dependencies=dict(info.get("dependencies") or {}),
                integrity=_known_integrity(info.get("integrity")),
            )

    if not resolved and isinstance(data.get("dependencies"), dict):
        def _extract_from_deps(deps: Dict[str, Any]) -> None:
            """Recursively extract packages from nested v1 dependencies."""
            for pkg_name, pkg_info in sorted(deps.items()):
                if not isinstance(pkg_info, dict) or pkg_name in resolved or not _accept(pkg_name):
                    continue
                requires = pkg_info.get("requires") or {}
                resolved[pkg_name] = ResolvedPackage(
                    name=pkg_name,
                    version=str(pkg_info.get("version", "")),
                    tarball_url=pkg_info.get("resolved"),
                    dependencies=dict(requires) if isinstance(requires, dict) else {},
                    integrity=_known_integrity(pkg_info.get("integrity")),
                )
            for pkg_info in (v for _, v in sorted(deps.items())):
                if isinstance(pkg_info, dict) and isinstance(pkg_info.get("dependencies"), dict):
                    _extract_from_deps(pkg_info["dependencies"])

        _extract_from_deps(data["dependencies"])

    return ResolutionGraph(resolved, skipped)


def _known_integrity(value: Any) -> Optional[str]:
    if not value or value == Constants.UNKNOWN_INTEGRITY:
        return None
    return str(value)
