"""Data models for package requests and resolution results."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional


class ResolutionMode(Enum):
    """Resolution strategy derived from the version hint."""
    EXACT = "exact"
    RANGE = "range"
    LATEST = "latest"


@dataclass(frozen=True)
class VersionSpec:
    """Normalized representation of a version hint."""
    raw: str
    mode: ResolutionMode


@dataclass(frozen=True)
class PackageRequest:
    """Resolution input across sources."""
    name: str
    requested_spec: Optional[VersionSpec] = None
    source: str = "list"  # "list" | "manifest" | "dev-manifest" | "lockfile"
    raw_token: Optional[str] = None

    @property
    def version_hint(self) -> Optional[str]:
        return self.requested_spec.raw if self.requested_spec else None


@dataclass(frozen=True)
class ResolvedPackage:
    """One concrete package version chosen for a name."""
    name: str
    version: str
    tarball_url: Optional[str] = None
    dependencies: Dict[str, str] = field(default_factory=dict)
    integrity: Optional[str] = None
    main: Optional[str] = None
    exports: Optional[Any] = None
    resolved_at: float = 0.0

    @property
    def dependency_names(self) -> frozenset:
        return frozenset(self.dependencies)

    def to_dict(self) -> Dict[str, Any]:
        """Plain-dict form used for the package-level cache."""
        return {
            "name": self.name,
            "version": self.version,
            "tarball": self.tarball_url,
            "dependencies": dict(sorted(self.dependencies.items())),
            "integrity": self.integrity,
            "main": self.main,
            "exports": self.exports,
            "resolved": self.resolved_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ResolvedPackage":
        return cls(
            name=data["name"],
            version=data["version"],
            tarball_url=data.get("tarball"),
            dependencies=dict(data.get("dependencies") or {}),
            integrity=data.get("integrity"),
            main=data.get("main"),
            exports=data.get("exports"),
            resolved_at=float(data.get("resolved") or 0.0),
        )


class ResolutionGraph(Mapping):
    """Read-only mapping of package name to ResolvedPackage.

    Holds at most one version per name. Iteration follows insertion
    (resolution) order; ``names()`` and ``serialize()`` are sorted.
    """

    def __init__(
        self,
        packages: Optional[Dict[str, ResolvedPackage]] = None,
        skipped: Optional[Dict[str, str]] = None,
        from_cache: Optional[Iterable[str]] = None,
    ):
        self._packages: Dict[str, ResolvedPackage] = dict(packages or {})
        self._skipped: Dict[str, str] = dict(skipped or {})
        self._from_cache = frozenset(from_cache or ())

    @property
    def skipped(self) -> Dict[str, str]:
        """Names that could not be resolved, with the reason."""
        return dict(self._skipped)

    @property
    def from_cache(self) -> List[str]:
        """Names served from the resolved-package cache, sorted."""
        return sorted(self._from_cache)

    def __getitem__(self, name: str) -> ResolvedPackage:
        return self._packages[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._packages)

    def __len__(self) -> int:
        return len(self._packages)

    def __repr__(self) -> str:
        return f"ResolutionGraph({self.names()!r})"

    def names(self) -> List[str]:
        return sorted(self._packages)

    def resolved_version(self, name: str) -> Optional[str]:
        pkg = self._packages.get(name)
        return pkg.version if pkg else None

    def to_dict(self) -> Dict[str, Dict[str, Any]]:
        """Name-sorted plain form of the graph, without resolution timestamps."""
        content = {}
        for name in self.names():
            data = self._packages[name].to_dict()
            data.pop("resolved")
            content[name] = data
        return content

    def serialize(self) -> bytes:
        """Canonical JSON bytes of ``to_dict()``.

        Equal graphs serialize identically regardless of when they were
        computed.
        """
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":")).encode("utf-8")
