"""Filesystem collaborator contract and two implementations.

Paths are POSIX-style strings. ``MemoryFileSystem`` keeps everything in
process memory (the sandboxed container case); ``LocalFileSystem`` maps the
same contract onto a host directory.
"""
from __future__ import annotations

import asyncio
import posixpath
from pathlib import Path
from typing import Dict, List, Protocol, Set, Union


class FileSystem(Protocol):
    """Byte-oriented async filesystem used for manifests and node_modules."""

    async def read_file(self, path: str) -> bytes:
        ...

    async def write_file(self, path: str, data: bytes) -> None:
        ...

    async def mkdir(self, path: str, recursive: bool = False) -> None:
        ...

    async def readdir(self, path: str) -> List[str]:
        ...

    async def exists(self, path: str) -> bool:
        ...


def normalize_path(path: str) -> str:
    """Collapse ``path`` to an absolute, normalized POSIX path."""
    normalized = posixpath.normpath("/" + path.lstrip("/"))
    # normpath keeps a leading '//' as-is
    return "/" + normalized.lstrip("/")


def join_path(*parts: str) -> str:
    """Join path segments and normalize the result."""
    return normalize_path(posixpath.join(*parts))


class MemoryFileSystem:
    """In-memory FileSystem."""

    def __init__(self) -> None:
        self._files: Dict[str, bytes] = {}
        self._dirs: Set[str] = {"/"}

    def _require_parent(self, path: str) -> None:
        parent = posixpath.dirname(path)
        if parent not in self._dirs:
            raise FileNotFoundError(f"No such directory: {parent}")

    async def read_file(self, path: str) -> bytes:
        path = normalize_path(path)
        try:
            return self._files[path]
        except KeyError:
            raise FileNotFoundError(f"No such file: {path}") from None

    async def write_file(self, path: str, data: bytes) -> None:
        path = normalize_path(path)
        if path in self._dirs:
            raise IsADirectoryError(f"Is a directory: {path}")
        self._require_parent(path)
        self._files[path] = bytes(data)

    async def mkdir(self, path: str, recursive: bool = False) -> None:
        path = normalize_path(path)
        if path in self._files:
            raise FileExistsError(f"File exists: {path}")
        if path in self._dirs:
            if recursive:
                return
            raise FileExistsError(f"Directory exists: {path}")
        if recursive:
            parent = posixpath.dirname(path)
            if parent != path:
                await self.mkdir(parent, recursive=True)
        else:
            self._require_parent(path)
        self._dirs.add(path)

    async def readdir(self, path: str) -> List[str]:
        path = normalize_path(path)
        if path not in self._dirs:
            raise FileNotFoundError(f"No such directory: {path}")
        prefix = path.rstrip("/") + "/"
        children = set()
        for entry in list(self._dirs) + list(self._files):
            if entry != path and entry.startswith(prefix):
                children.add(entry[len(prefix):].split("/", 1)[0])
        return sorted(children)

    async def exists(self, path: str) -> bool:
        path = normalize_path(path)
        return path in self._files or path in self._dirs


class LocalFileSystem:
    """FileSystem rooted at a host directory.

    Blocking file calls run in the default executor so the event loop is
    never stalled by disk I/O.
    """

    def __init__(self, root: Union[str, Path]):
        self._root = Path(root).resolve()

    def _host_path(self, path: str) -> Path:
        relative = normalize_path(path).lstrip("/")
        host = (self._root / relative).resolve()
        if host != self._root and self._root not in host.parents:
            raise PermissionError(f"Path escapes filesystem root: {path}")
        return host

    async def _run(self, func, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def read_file(self, path: str) -> bytes:
        return await self._run(self._host_path(path).read_bytes)

    async def write_file(self, path: str, data: bytes) -> None:
        await self._run(self._host_path(path).write_bytes, bytes(data))

    async def mkdir(self, path: str, recursive: bool = False) -> None:
        host = self._host_path(path)
        await self._run(lambda: host.mkdir(parents=recursive, exist_ok=recursive))

    async def readdir(self, path: str) -> List[str]:
        host = self._host_path(path)
        return await self._run(lambda: sorted(p.name for p in host.iterdir()))

    async def exists(self, path: str) -> bool:
        return await self._run(self._host_path(path).exists)
