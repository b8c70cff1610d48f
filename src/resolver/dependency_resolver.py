"""Breadth-first dependency resolution into a flat, one-version-per-name graph."""

from __future__ import annotations

import asyncio
import json
import logging
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Set, Union

from cache.store import MetadataCache
from common.logging_utils import Timer, extra_context, is_debug_enabled
from errors import CircularDependencyError, InstallCancelled, InvalidPackageName, RegistryUnavailable, VersionNotFound
from registry.npm.client import RegistryClient
from versioning.models import PackageRequest, ResolutionGraph, ResolvedPackage
from versioning.parser import is_valid_package_name, parse_cli_token
from versioning.resolvers.npm import NpmVersionSelector

logger = logging.getLogger(__name__)


def find_cycle(graph: ResolutionGraph) -> Optional[List[str]]:
    """Return the first dependency cycle as ``[a, b, ..., a]``, or None.

    Walks names and dependencies in sorted order so the reported cycle is
    stable for a given graph.
    """
    done: Set[str] = set()

    for root in graph.names():
        if root in done:
            continue
        stack: List[str] = [root]
        on_stack: Set[str] = {root}
        iters = [iter(sorted(graph[root].dependency_names))]
        while iters:
            child = next(iters[-1], None)
            if child is None:
                iters.pop()
                finished = stack.pop()
                on_stack.discard(finished)
                done.add(finished)
                continue
            if child not in graph or child in done:
                continue
            if child in on_stack:
                return stack[stack.index(child):] + [child]
            stack.append(child)
            on_stack.add(child)
            iters.append(iter(sorted(graph[child].dependency_names)))
    return None


class DependencyResolver:
    """Computes the transitive closure of requested package names.

    The first version resolved for a name wins; later requests for the same
    name are ignored. Packages that fail to resolve are skipped and recorded
    on the returned graph's ``skipped`` map.
    """

    def __init__(
        self,
        client: RegistryClient,
        cache: Optional[MetadataCache] = None,
        selector: Optional[NpmVersionSelector] = None,
        detect_cycles: bool = False,
    ):
        """Initialize the resolver.

        Args:
            client: Registry client used for cache misses.
            cache: Package-level cache; defaults to the client's cache.
            selector: Version selection strategy.
            detect_cycles: Raise CircularDependencyError instead of silently
                flattening cycles.
        """
        self._client = client
        self._cache = cache if cache is not None else client.cache
        self._selector = selector or NpmVersionSelector()
        self._detect_cycles = detect_cycles

    async def resolve(
        self,
        requests: Iterable[Union[PackageRequest, str]],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ResolutionGraph:
        """Resolve ``requests`` and everything they depend on.

        Raises:
            InstallCancelled: ``cancel_event`` was set before the queue drained.
            CircularDependencyError: A cycle exists and detection is enabled.
        """
        normalized = [parse_cli_token(r) if isinstance(r, str) else r for r in requests]
        hints: Dict[str, PackageRequest] = {}
        queue: Deque[str] = deque()
        for req in normalized:
            hints.setdefault(req.name, req)
            queue.append(req.name)

        resolved: Dict[str, ResolvedPackage] = {}
        skipped: Dict[str, str] = {}
        visited: Set[str] = set()
        cached_names: Set[str] = set()

        with Timer() as timer:
            while queue:
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Resolution cancelled with %d package(s) resolved", len(resolved))
                    raise InstallCancelled(ResolutionGraph(resolved, skipped, cached_names))

                name = queue.popleft()
                if name in visited:
                    continue
                visited.add(name)

                if not is_valid_package_name(name):
                    logger.warning(
                        "Skipping invalid package name %r",
                        name,
                        extra=extra_context(event="resolve", component="resolver", outcome="skipped", package=name),
                    )
                    skipped[name] = str(InvalidPackageName(name))
                    continue

                cached = self._cached_package(name)
                if cached is not None:
                    resolved[name] = cached
                    cached_names.add(name)
                    queue.extend(sorted(cached.dependency_names))
                    continue

                try:
                    package = await self._resolve_one(name, hints.get(name))
                except (RegistryUnavailable, VersionNotFound) as exc:
                    logger.warning(
                        "Failed to resolve package %s: %s",
                        name,
                        exc,
                        extra=extra_context(event="resolve", component="resolver", outcome="skipped", package=name),
                    )
                    skipped[name] = str(exc)
                    continue

                queue.extend(sorted(package.dependency_names))
                resolved[name] = package
                self._cache.put_resolved(name, json.dumps(package.to_dict(), sort_keys=True).encode("utf-8"))

        graph = ResolutionGraph(resolved, skipped, cached_names)
        if is_debug_enabled(logger):
            logger.debug(
                "Resolved dependency graph",
                extra=extra_context(
                    event="resolve",
                    component="resolver",
                    outcome="success",
                    resolved=len(graph),
                    skipped=len(skipped),
                    duration_ms=timer.duration_ms(),
                ),
            )

        if self._detect_cycles:
            cycle = find_cycle(graph)
            if cycle:
                raise CircularDependencyError(cycle)
        return graph

    def _cached_package(self, name: str) -> Optional[ResolvedPackage]:
        payload = self._cache.get_resolved(name)
        if payload is None:
            return None
        try:
            return ResolvedPackage.from_dict(json.loads(payload.decode("utf-8")))
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable cache entry for %s", name)
            self._cache.invalidate(name)
            return None

    async def _resolve_one(self, name: str, request: Optional[PackageRequest]) -> ResolvedPackage:
        metadata = await self._client.fetch_metadata(name)
        record = self._selector.pick(metadata, request)
        return ResolvedPackage(
            name=name,
            version=record.version,
            tarball_url=record.tarball_url,
            dependencies=dict(record.dependencies),
            integrity=record.integrity,
            main=record.main,
            exports=record.exports,
            resolved_at=self._cache.store.now(),
        )

