"""Shared fixtures for warming tests."""

from collections.abc import Callable
from datetime import UTC, datetime, timedelta

import httpx
import pytest

from sitewarm.storage import MemoryStore

BASE_URL = "http://backend.test"


class RecordingBackend:
    """A scriptable fake backend for ``httpx.MockTransport``.

    Routes map a path to a list of responses (or exceptions) served in
    order; the last entry repeats once the list is exhausted.
    """

    def __init__(self) -> None:
        self.routes: dict[str, list[httpx.Response | Exception]] = {}
        self.requests: list[httpx.Request] = []

    def route(self, path: str, *responses: httpx.Response | Exception) -> None:
        self.routes[path] = list(responses)

    def calls(self, path: str) -> list[httpx.Request]:
        return [request for request in self.requests if request.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        queue = self.routes.get(request.url.path)
        if not queue:
            return httpx.Response(404, json={"error": "not found"})

        outcome = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(outcome, Exception):
            raise outcome
        # Fresh copy, since a repeating route may be served many times
        return httpx.Response(
            outcome.status_code, headers=outcome.headers, content=outcome.content
        )


class ManualClock:
    """A settable UTC clock for freshness tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 15, 12, 0, tzinfo=UTC)

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def backend() -> RecordingBackend:
    return RecordingBackend()


@pytest.fixture
async def client(backend):
    """An AsyncClient whose requests are served by the fake backend."""
    async with httpx.AsyncClient(
        base_url=BASE_URL, transport=httpx.MockTransport(backend)
    ) as client:
        yield client


@pytest.fixture
def store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def listing() -> Callable[..., dict]:
    """Build a content listing payload in the nested API shape."""

    def build(*items: dict, total: int | None = None) -> dict:
        return {
            "data": {
                "blogs": list(items),
                "pagination": {"total": len(items) if total is None else total},
            }
        }

    return build
