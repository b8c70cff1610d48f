"""Test doubles for the registry and clock."""

import asyncio
import json
import urllib.parse
from typing import Any, Dict, List, Optional

from common.http_client import HttpResponse

REGISTRY = "https://registry.test"


def packument(name: str, version: str = "1.0.0", dependencies: Optional[Dict[str, str]] = None, **fields: Any) -> Dict[str, Any]:
    """Minimal registry document with a single version tagged latest."""
    record: Dict[str, Any] = {
        "name": name,
        "version": version,
        "dependencies": dependencies or {},
        "dist": {
            "tarball": f"{REGISTRY}/{name}/-/{name.split('/')[-1]}-{version}.tgz",
            "integrity": f"sha512-{name}-{version}",
        },
    }
    record.update(fields)
    return {"name": name, "dist-tags": {"latest": version}, "versions": {version: record}}


class FakeFetcher:
    """Serves canned registry documents and records every requested name."""

    def __init__(self, documents: Optional[Dict[str, Dict[str, Any]]] = None, delay: float = 0.0):
        self.documents: Dict[str, Dict[str, Any]] = dict(documents or {})
        self.statuses: Dict[str, int] = {}
        self.errors: Dict[str, BaseException] = {}
        self.calls: List[str] = []
        self.delay = delay

    def add(self, name: str, version: str = "1.0.0", dependencies: Optional[Dict[str, str]] = None, **fields: Any) -> None:
        self.documents[name] = packument(name, version, dependencies, **fields)

    async def fetch(self, url: str, headers=None) -> HttpResponse:
        name = urllib.parse.unquote(url.rsplit("/", 1)[1])
        self.calls.append(name)
        if self.delay:
            await asyncio.sleep(self.delay)
        if name in self.errors:
            raise self.errors[name]
        if name in self.statuses:
            return HttpResponse(status=self.statuses[name], body=b"")
        if name not in self.documents:
            return HttpResponse(status=404, body=b'{"error":"Not found"}')
        return HttpResponse(status=200, body=json.dumps(self.documents[name]).encode("utf-8"))


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def chain_registry() -> FakeFetcher:
    """pkg-a -> pkg-b -> pkg-c."""
    fetcher = FakeFetcher()
    fetcher.add("pkg-a", "1.0.0", {"pkg-b": "^2.0.0"})
    fetcher.add("pkg-b", "2.1.0", {"pkg-c": "~3.0.0"})
    fetcher.add("pkg-c", "3.0.4")
    return fetcher
