"""Shared fixtures: a fake GitHub served through ``httpx.MockTransport``."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx
import pytest

from kepler.cache.store import PersistentCache
from kepler.config import AppConfig
from kepler.net.ratelimit import RateLimitState
from kepler.net.transport import RateLimitedTransport
from kepler.service import Kepler

API = "https://api.github.com"
RAW = "https://raw.githubusercontent.com"
KEP_RAW = f"{RAW}/kubernetes/enhancements/master"
GEP_RAW = f"{RAW}/kubernetes-sigs/gateway-api/main"
KEP_TREE = f"{API}/repos/kubernetes/enhancements/git/trees/HEAD"
GEP_TREE = f"{API}/repos/kubernetes-sigs/gateway-api/git/trees/HEAD"
KEP_COMMITS = f"{API}/repos/kubernetes/enhancements/commits"


class FakeClock:
    """Epoch-millis clock advanced by hand."""

    def __init__(self, now: int = 1_700_000_000_000) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FakeGitHub:
    """Canned responses keyed by URL (query string ignored), with traffic stats."""

    def __init__(self) -> None:
        self.routes: Dict[str, List[Dict[str, Any]]] = {}
        self.requests: List[httpx.Request] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def add(self, url: str, status: int = 200, **kwargs: Any) -> None:
        """Serve ``url``; repeated calls queue responses, the last one sticks."""
        self.routes.setdefault(url, []).append({"status": status, **kwargs})

    def replace(self, url: str, status: int = 200, **kwargs: Any) -> None:
        """Serve ``url`` with a single response, dropping anything queued."""
        self.routes[url] = [{"status": status, **kwargs}]

    def add_text(self, url: str, text: str, status: int = 200) -> None:
        self.add(url, status, text=text)

    def add_json(self, url: str, data: Any, status: int = 200, headers: Optional[dict] = None) -> None:
        self.add(url, status, json=data, headers=headers or {})

    def calls(self, url: str) -> int:
        return sum(1 for request in self.requests if _route_key(request) == url)

    async def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            queue = self.routes.get(_route_key(request))
            if not queue:
                return httpx.Response(404, text="Not Found")
            canned = dict(queue.pop(0) if len(queue) > 1 else queue[0])
            return httpx.Response(canned.pop("status"), **canned)
        finally:
            self.in_flight -= 1

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self.handler))


def _route_key(request: httpx.Request) -> str:
    return f"{request.url.scheme}://{request.url.host}{request.url.path}"


def kep_path(number: int | str, sig: str = "sig-node", slug: Optional[str] = None) -> str:
    return f"keps/{sig}/{number}-{slug or f'feature-{number}'}/kep.yaml"


def kep_yaml(number: int | str, **fields: Any) -> str:
    values = {
        "title": f"Feature {number}",
        "status": "implementable",
        "stage": "beta",
        "authors": ["@alice"],
        "creation-date": "2023-01-15",
        "last-updated": "2024-02-01",
    }
    values.update(fields)
    lines = []
    for key, value in values.items():
        if isinstance(value, list):
            lines.append(f"{key}:")
            lines.extend(f'  - "{item}"' for item in value)
        elif isinstance(value, dict):
            lines.append(f"{key}:")
            lines.extend(f'  {k}: "{v}"' for k, v in value.items())
        else:
            lines.append(f"{key}: {value}")
    return "\n".join(lines) + "\n"


def tree_payload(paths: List[str]) -> Dict[str, Any]:
    return {"tree": [{"path": path, "type": "blob"} for path in paths]}


def serve_keps(github: FakeGitHub, numbers: List[int], sig: str = "sig-node") -> List[str]:
    paths = [kep_path(number, sig) for number in numbers]
    github.add_json(KEP_TREE, tree_payload(paths))
    for number, path in zip(numbers, paths):
        github.add_text(f"{KEP_RAW}/{path}", kep_yaml(number))
    return paths


@pytest.fixture
def github() -> FakeGitHub:
    return FakeGitHub()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sleeps() -> List[float]:
    return []


@pytest.fixture
def store(clock: FakeClock):
    cache = PersistentCache(":memory:", clock=clock)
    yield cache
    cache.close()


@pytest.fixture
def transport(github: FakeGitHub, sleeps: List[float]) -> RateLimitedTransport:
    async def record_sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return RateLimitedTransport(
        github.client(),
        rate_limit=RateLimitState(),
        sleep=record_sleep,
        clock=lambda: 1_700_000_000.0,
    )


@pytest.fixture
def kepler(store: PersistentCache, transport: RateLimitedTransport) -> Kepler:
    return Kepler(AppConfig(cache_path=None), store=store, transport=transport)
