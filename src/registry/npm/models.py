"""Parsed npm registry documents (packuments)."""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


@dataclass(frozen=True)
class VersionRecord:
    """One entry of a packument's ``versions`` map."""

    version: str
    dependencies: Mapping[str, str] = field(default_factory=dict)
    tarball_url: Optional[str] = None
    integrity: Optional[str] = None
    main: Optional[str] = None
    exports: Optional[Any] = None
    scripts: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_json(cls, version: str, data: Dict[str, Any]) -> "VersionRecord":
        dist = data.get("dist") or {}
        deps = data.get("dependencies") or {}
        scripts = data.get("scripts") or {}
        return cls(
            version=version,
            dependencies=MappingProxyType(
                {str(k): str(v) for k, v in deps.items()} if isinstance(deps, dict) else {}
            ),
            tarball_url=dist.get("tarball") if isinstance(dist, dict) else None,
            integrity=(dist.get("integrity") or dist.get("shasum")) if isinstance(dist, dict) else None,
            main=data.get("main") if isinstance(data.get("main"), str) else None,
            exports=data.get("exports"),
            scripts=MappingProxyType(
                {str(k): str(v) for k, v in scripts.items()} if isinstance(scripts, dict) else {}
            ),
        )


@dataclass(frozen=True)
class PackageMetadata:
    """Per-package registry response."""

    name: str
    dist_tags: Mapping[str, str]
    versions: Mapping[str, VersionRecord]

    @classmethod
    def from_json(cls, name: str, data: Any) -> "PackageMetadata":
        """Build metadata from a decoded registry document.

        Raises:
            ValueError: If the document is not a packument.
        """
        if not isinstance(data, dict):
            raise ValueError("registry document is not a JSON object")
        tags = data.get("dist-tags") or {}
        versions = data.get("versions") or {}
        if not isinstance(tags, dict) or not isinstance(versions, dict):
            raise ValueError("malformed dist-tags or versions")
        records = {
            str(v): VersionRecord.from_json(str(v), info)
            for v, info in versions.items()
            if isinstance(info, dict)
        }
        return cls(
            name=str(data.get("name") or name),
            dist_tags=MappingProxyType({str(k): str(v) for k, v in tags.items()}),
            versions=MappingProxyType(records),
        )

    def get_version(self, version: Optional[str]) -> Optional[VersionRecord]:
        if version is None:
            return None
        return self.versions.get(version)
