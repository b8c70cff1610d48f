"""Package manager facade: manifest -> resolve -> node_modules -> lockfile."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from cache.store import CacheStore, MemoryCacheStore, MetadataCache
from common.http_client import AiohttpFetcher, HttpFetcher
from common.logging_utils import extra_context
from common.vfs import FileSystem, join_path
from constants import Constants
from errors import InstallerError, NoManifestError
from registry.npm.client import RegistryClient
from resolver.dependency_resolver import DependencyResolver
from versioning.models import PackageRequest, ResolutionGraph
from versioning.parser import extract_manifest_requests, parse_cli_token

from . import lockfile
from .config import InstallerConfig
from .policy import PolicyGate
from .virtual_installer import VirtualInstaller

logger = logging.getLogger(__name__)


@dataclass
class InstallResult:
    """Outcome of an install; failures are reported here, never raised."""

    success: bool
    installed: List[str] = field(default_factory=list)
    duration: float = 0.0
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "success": self.success,
            "installed": list(self.installed),
            "duration": self.duration,
        }
        if self.error is not None:
            result["error"] = self.error
        if self.warnings:
            result["warnings"] = list(self.warnings)
        if self.metadata:
            result["metadata"] = dict(self.metadata)
        return result


class PackageManager:
    """Installs npm packages into a virtual filesystem.

    Metadata and resolved-package caches live as long as the instance and
    are shared by every ``install()`` call on it.
    """

    def __init__(
        self,
        fs: FileSystem,
        config: Optional[InstallerConfig] = None,
        fetcher: Optional[HttpFetcher] = None,
        cache_store: Optional[CacheStore] = None,
    ):
        """Initialize the package manager.

        Args:
            fs: Filesystem collaborator holding manifests and node_modules.
            config: Installer configuration; defaults apply when omitted.
            fetcher: HTTP collaborator; an aiohttp fetcher is created when omitted.
            cache_store: Backing store for the shared caches.
        """
        self._fs = fs
        self._config = config or InstallerConfig()
        self._owns_fetcher = fetcher is None
        self._fetcher: HttpFetcher = fetcher if fetcher is not None else AiohttpFetcher(timeout=self._config.timeout)
        store = cache_store if cache_store is not None else MemoryCacheStore(max_entries=self._config.max_cache_entries)
        self._cache = MetadataCache(store, metadata_ttl=self._config.metadata_ttl)
        self._client = RegistryClient(self._fetcher, self._cache, registry_url=self._config.registry_url)
        self._resolver = DependencyResolver(self._client, self._cache, detect_cycles=self._config.detect_cycles)
        self._installer = VirtualInstaller(fs)
        self._policy = PolicyGate(self._config.policy)

    @property
    def registry(self) -> RegistryClient:
        return self._client

    @property
    def resolver(self) -> DependencyResolver:
        return self._resolver

    async def install(
        self,
        cwd: str = "/",
        packages: Optional[Sequence[str]] = None,
        dev: bool = False,
        lockfile_data: Optional[Dict[str, Any]] = None,
        frozen_lockfile: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> InstallResult:
        """Install ``packages`` (or the manifest's dependencies) under ``cwd``.

        Args:
            cwd: Project directory containing package.json.
            packages: Explicit package tokens (``name`` or ``name@range``);
                overrides the manifest's dependency lists.
            dev: Include devDependencies from the manifest.
            lockfile_data: Decoded lockfile to install from without resolving.
            frozen_lockfile: Install from ``{cwd}/package-lock.json``.
            cancel_event: Set to stop resolution early.

        Returns:
            InstallResult; ``success`` is False on any error.
        """
        start = time.perf_counter()
        fetches_before = self._client.network_fetches

        def _elapsed() -> float:
            return round((time.perf_counter() - start) * 1000.0, 3)

        try:
            manifest = await self._read_manifest(cwd)
            if manifest is None and packages is None and lockfile_data is None and not frozen_lockfile:
                raise NoManifestError(cwd)

            if packages is not None:
                requests: List[PackageRequest] = [parse_cli_token(p) for p in packages]
            else:
                requests = extract_manifest_requests(manifest, dev=dev)

            self._policy.enforce(self._policy.evaluate(manifest, [r.name for r in requests]))

            if frozen_lockfile and lockfile_data is None:
                lockfile_data = await self._read_lockfile(cwd)

            if lockfile_data is not None:
                graph = lockfile.graph_from_lockfile(lockfile_data)
                logger.info("Installing %d package(s) from lockfile", len(graph))
            elif not requests:
                return InstallResult(success=True, installed=[], duration=_elapsed())
            else:
                graph = await self._resolver.resolve(requests, cancel_event=cancel_event)

            self._policy.enforce(self._policy.evaluate_graph(graph))

            await self._installer.install(cwd, graph)
            await lockfile.write(
                self._fs,
                cwd,
                graph,
                name=(manifest or {}).get("name"),
                version=(manifest or {}).get("version"),
            )

            result = InstallResult(
                success=True,
                installed=graph.names(),
                duration=_elapsed(),
                warnings=[f"{name}: {reason}" for name, reason in sorted(graph.skipped.items())],
                metadata={
                    "packages": len(requests),
                    "resolved": len(graph),
                    "skipped": len(graph.skipped),
                    "from_cache": len(graph.from_cache),
                    "network_fetches": self._client.network_fetches - fetches_before,
                },
            )
            logger.info(
                "Installed %d package(s) in %.1f ms",
                len(result.installed),
                result.duration,
                extra=extra_context(event="install", component="package_manager", outcome="success"),
            )
            return result

        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-exception-caught
            level = logging.WARNING if isinstance(exc, InstallerError) else logging.ERROR
            logger.log(
                level,
                "Install failed: %s",
                exc,
                exc_info=logger.isEnabledFor(logging.DEBUG),
                extra=extra_context(event="install", component="package_manager", outcome="failure"),
            )
            return InstallResult(success=False, installed=[], duration=_elapsed(), error=str(exc))

    async def _read_manifest(self, cwd: str) -> Optional[Dict[str, Any]]:
        path = join_path(cwd, Constants.PACKAGE_JSON_FILE)
        if not await self._fs.exists(path):
            return None
        try:
            data = json.loads((await self._fs.read_file(path)).decode("utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable manifest %s: %s", path, exc)
            return None
        return data if isinstance(data, dict) else None

    async def _read_lockfile(self, cwd: str) -> Dict[str, Any]:
        path = join_path(cwd, Constants.LOCKFILE_NAME)
        if not await self._fs.exists(path):
            raise InstallerError(f"Frozen lockfile install requested but {path} does not exist")
        data = json.loads((await self._fs.read_file(path)).decode("utf-8"))
        if not isinstance(data, dict):
            raise InstallerError(f"{path} is not a lockfile")
        return data

    async def resolve(self, packages: Sequence[str]) -> ResolutionGraph:
        """Resolve package tokens without touching the filesystem."""
        return await self._resolver.resolve([parse_cli_token(p) for p in packages])

    def clear_cache(self) -> None:
        """Drop cached metadata and resolved packages."""
        self._cache.clear()

    def get_cache_stats(self) -> Dict[str, Any]:
        """Cache statistics: ``entries``, ``size`` (payload bytes) and ``hit_rate``."""
        return self._cache.stats()

    async def close(self) -> None:
        """Close the HTTP session when this instance created it."""
        if self._owns_fetcher and isinstance(self._fetcher, AiohttpFetcher):
            await self._fetcher.stop()

    async def __aenter__(self) -> "PackageManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def create_package_manager(
    fs: FileSystem,
    config: Optional[InstallerConfig] = None,
    fetcher: Optional[HttpFetcher] = None,
) -> PackageManager:
    """Create a package manager, reading ``VNPM_*`` settings when no config is given."""
    return PackageManager(fs, config=config or InstallerConfig.from_env(), fetcher=fetcher)
