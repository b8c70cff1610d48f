"""Token and manifest parsing into PackageRequest objects."""

import re
from typing import Any, Dict, List, Optional, Tuple

from .models import PackageRequest, ResolutionMode, VersionSpec

# npm name rules; uppercase is tolerated for legacy packages.
_PACKAGE_NAME_RE = re.compile(r"^(?:@[a-z0-9-~][a-z0-9-._~]*/)?[a-z0-9-~][a-z0-9-._~]*$", re.IGNORECASE)
_MAX_NAME_LENGTH = 214


def is_valid_package_name(name: str) -> bool:
    """True when ``name`` is safe to use as a ``node_modules`` directory."""
    if not isinstance(name, str) or not name or len(name) > _MAX_NAME_LENGTH:
        return False
    return _PACKAGE_NAME_RE.fullmatch(name) is not None


def tokenize_rightmost_at(s: str) -> Tuple[str, Optional[str]]:
    """Return (name, spec or None) using npm's ``name@spec`` syntax.

    A leading ``@`` belongs to a scoped name and is never a separator.
    """
    s = s.strip()
    at = s.rfind('@')
    if at <= 0:
        return s, None
    name = s[:at].strip()
    spec_part = s[at + 1:].strip()
    return name, spec_part or None


def _determine_resolution_mode(spec: str) -> ResolutionMode:
    """Determine resolution mode from spec string."""
    range_ops = ['^', '~', '*', 'x', 'X', ' - ', '<', '>', '=', '||', ' ']
    if any(op in spec for op in range_ops):
        return ResolutionMode.RANGE
    return ResolutionMode.EXACT


def _build_spec(raw_spec: Optional[str]) -> Optional[VersionSpec]:
    if raw_spec is None:
        return None
    spec = raw_spec.strip()
    if spec == '':
        return None
    if spec.lower() == 'latest':
        return VersionSpec(raw=spec, mode=ResolutionMode.LATEST)
    return VersionSpec(raw=spec, mode=_determine_resolution_mode(spec))


def parse_cli_token(token: str) -> PackageRequest:
    """Parse a package-list token such as ``lodash``, ``lodash@^4`` or ``@types/node@18``."""
    name, spec = tokenize_rightmost_at(token)
    return PackageRequest(
        name=name,
        requested_spec=_build_spec(spec),
        source="list",
        raw_token=token,
    )


def parse_manifest_entry(name: str, raw_spec: Optional[str], source: str) -> PackageRequest:
    """Construct a PackageRequest from manifest fields.

    Preserves raw spec for logging while normalizing the spec mode.
    """
    return PackageRequest(
        name=name.strip(),
        requested_spec=_build_spec(raw_spec if isinstance(raw_spec, str) else None),
        source=source,
        raw_token=None,
    )


def extract_manifest_requests(manifest: Optional[Dict[str, Any]], dev: bool = False) -> List[PackageRequest]:
    """Requests for a package.json's dependencies, plus devDependencies when ``dev``.

    A name listed in both sections is requested once, from ``dependencies``.
    """
    if not manifest:
        return []

    sections = [("dependencies", "manifest")]
    if dev:
        sections.append(("devDependencies", "dev-manifest"))

    requests: List[PackageRequest] = []
    seen = set()
    for key, source in sections:
        deps = manifest.get(key) or {}
        if not isinstance(deps, dict):
            continue
        for name, spec in deps.items():
            if name in seen:
                continue
            seen.add(name)
            requests.append(parse_manifest_entry(name, spec, source))
    return requests
