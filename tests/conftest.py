# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import json
from datetime import datetime
from typing import Callable, Dict, List, Optional

import httpx
import pytest
import pytest_asyncio

from pharmacare_core.offline.availability_monitor import AvailabilityMonitor
from pharmacare_core.offline.event_bus import ChangeNotificationBus
from pharmacare_core.offline.local_store import LocalStore
from pharmacare_core.offline.persistence_router import PersistenceRouter
from pharmacare_core.offline.remote_client import RemoteStoreClient
from pharmacare_core.offline.sequence_generator import SequenceGenerator
from pharmacare_core.offline.storage_backend import MemoryKeyValueStore


BASE_URL = "https://api.test/make-server"


# =============================================================================
# CLOCK FIXTURES
# =============================================================================

class FakeClock:
    """Settable clock returning naive local datetimes"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    """Clock fixed at 2024-11-15 09:30 local time"""
    return FakeClock(datetime(2024, 11, 15, 9, 30))


# =============================================================================
# STORAGE FIXTURES
# =============================================================================

@pytest.fixture
def backend():
    return MemoryKeyValueStore()


@pytest.fixture
def bus():
    return ChangeNotificationBus()


@pytest.fixture
def local_store(backend, bus):
    return LocalStore(backend, bus)


@pytest.fixture
def generator(local_store, clock):
    return SequenceGenerator(local_store, clock=clock)


@pytest.fixture
def recorder(bus):
    """Collects (topic, payload) for the given topics"""

    class Recorder:
        def __init__(self):
            self.events: List = []

        def watch(self, *topics: str) -> "Recorder":
            for topic in topics:
                bus.subscribe(topic, lambda payload, t=topic: self.events.append((t, payload)))
            return self

        def payloads(self, topic: str) -> List:
            return [p for t, p in self.events if t == topic]

    return Recorder()


# =============================================================================
# REMOTE STORE FIXTURES
# =============================================================================

class FakeRemoteStore:
    """
    In-memory stand-in for the collection API, served through httpx.MockTransport.

    Set ``fail_with`` to an HTTP status or to an httpx exception class to make
    every request fail that way. Set ``reject`` to a predicate on the request
    to answer only the matching requests with HTTP 500.
    """

    def __init__(self):
        self.collections: Dict[str, List[dict]] = {}
        self.requests: List[httpx.Request] = []
        self.fail_with = None
        self.reject: Optional[Callable[[httpx.Request], bool]] = None
        self._next_id = 100

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if isinstance(self.fail_with, int):
            return httpx.Response(self.fail_with, json={"error": "unavailable"})
        if self.fail_with is not None:
            raise self.fail_with("simulated failure", request=request)
        if self.reject is not None and self.reject(request):
            return httpx.Response(500, json={"error": "rejected"})

        parts = request.url.path.split("/")[2:]   # drop "" and "make-server"
        collection = parts[0]
        record_id = parts[1] if len(parts) > 1 else None
        items = self.collections.setdefault(collection, [])

        if request.method == "HEAD":
            return httpx.Response(200)
        if request.method == "GET":
            return httpx.Response(200, json=items)
        if request.method == "POST":
            body = json.loads(request.content)
            record = {**body, "id": str(self._next_id)}
            self._next_id += 1
            items.append(record)
            return httpx.Response(201, json=record)

        for index, item in enumerate(items):
            if item["id"] == record_id:
                if request.method == "PUT":
                    items[index] = {**item, **json.loads(request.content), "id": record_id}
                    return httpx.Response(200, json=items[index])
                del items[index]
                return httpx.Response(200, json={"success": True})
        return httpx.Response(404, json={"error": "not found"})

    def methods(self) -> List[str]:
        return [f"{r.method} {r.url.path}" for r in self.requests]


@pytest.fixture
def fake_remote():
    return FakeRemoteStore()


@pytest_asyncio.fixture
async def remote_client(fake_remote):
    http_client = httpx.AsyncClient(transport=httpx.MockTransport(fake_remote.handler))
    client = RemoteStoreClient(BASE_URL, access_token="test-token", http_client=http_client)
    yield client
    await http_client.aclose()


@pytest.fixture
def monitor(remote_client, bus, clock):
    return AvailabilityMonitor(remote_client, bus, clock=clock)


@pytest.fixture
def router(remote_client, local_store, bus, monitor):
    return PersistenceRouter(remote_client, local_store, bus, monitor)


@pytest.fixture
def make_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], RemoteStoreClient]:
    """Build a RemoteStoreClient around an arbitrary request handler"""

    def factory(handler, **kwargs) -> RemoteStoreClient:
        http_client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return RemoteStoreClient(BASE_URL, http_client=http_client, **kwargs)

    return factory
