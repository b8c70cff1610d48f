"""NPM version selection: the ``latest`` dist-tag wins."""

import logging
from typing import List, Optional

import semantic_version

from constants import Constants
from errors import VersionNotFound
from registry.npm.models import PackageMetadata, VersionRecord

from ..models import PackageRequest, ResolutionMode

logger = logging.getLogger(__name__)


class NpmVersionSelector:
    """Selects the version to install for a package document.

    Only the ``latest`` dist-tag is honoured; version hints are checked and
    logged but never solved against the available versions.
    """

    def pick(self, metadata: PackageMetadata, request: Optional[PackageRequest] = None) -> VersionRecord:
        """Return the record for the selected version.

        Raises:
            VersionNotFound: If the selected version is not in ``versions``.
        """
        version = metadata.dist_tags.get(Constants.LATEST_TAG)
        if version is None:
            version = self._pick_highest(list(metadata.versions))
            if version is not None:
                logger.debug("No latest dist-tag for %s; using highest version %s", metadata.name, version)

        record = metadata.get_version(version)
        if record is None:
            raise VersionNotFound(metadata.name, version or Constants.LATEST_TAG)

        if request is not None and not self.satisfies_hint(request, record.version):
            logger.info(
                "%s@%s selected from latest; requested %s is not satisfied",
                metadata.name,
                record.version,
                request.version_hint,
            )
        return record

    def _pick_highest(self, candidates: List[str]) -> Optional[str]:
        """Pick the highest stable semantic version, else the highest pre-release."""
        parsed = []
        for v in candidates:
            try:
                parsed.append(semantic_version.Version(v))
            except ValueError:
                continue  # Skip invalid versions
        if not parsed:
            return None
        stable = [v for v in parsed if not v.prerelease]
        pool = stable or parsed
        return str(max(pool))

    def satisfies_hint(self, request: PackageRequest, version: str) -> bool:
        """Whether ``version`` meets the request's hint; unknown syntax counts as met."""
        spec = request.requested_spec
        if spec is None or spec.mode == ResolutionMode.LATEST:
            return True
        if spec.mode == ResolutionMode.EXACT:
            if spec.raw.lstrip("v=") == version:
                return True
            try:
                semantic_version.Version(spec.raw.lstrip("v="))
            except ValueError:
                # a dist-tag or URL-like spec; not checkable
                return True
            return False
        try:
            return semantic_version.NpmSpec(spec.raw).match(semantic_version.Version(version))
        except ValueError:
            return True
