# =============================================================================
# pharmacare_core/offline/services.py
# Wired-Up Offline Services - Single API for Feature Modules
# =============================================================================
"""
OfflineServices - builds and owns every offline component.

This is the entry point feature modules use. It wires:
- the durable key-value backend and the Local Store
- the remote client, Availability Monitor and Persistence Router
- the Sequence Generator, Dashboard Cache and Sync Engine

Usage:
------
from pharmacare_core.offline import get_services

services = get_services()
medicines = await services.medicines.get_all()
rx = await services.prescriptions.create({
    "prescription_number": services.generator.next_prescription_number(),
    "patient_id": "1",
})
"""

from __future__ import annotations
from datetime import datetime
from typing import Any, Callable, Dict, List, Mapping, Optional
import logging

import httpx
import pandas as pd

from pharmacare_core.config import OfflineSettings, get_settings
from pharmacare_core.offline.availability_monitor import AvailabilityMonitor
from pharmacare_core.offline.dashboard_cache import DashboardCache
from pharmacare_core.offline.event_bus import ChangeNotificationBus, CONNECTION_STATUS_CHANGED
from pharmacare_core.offline.local_store import LocalStore, Record
from pharmacare_core.offline.persistence_router import PersistenceRouter
from pharmacare_core.offline.polling import ChangeCallback, PollingHandle
from pharmacare_core.offline.remote_client import RemoteStoreClient, TokenSource
from pharmacare_core.offline.sequence_generator import SequenceGenerator
from pharmacare_core.offline.storage_backend import KeyValueStore, SQLiteKeyValueStore
from pharmacare_core.offline.sync_engine import SyncEngine

logger = logging.getLogger(__name__)

COLLECTIONS = ("medicines", "patients", "prescriptions", "sales", "suppliers")

# Demo data stored the first time the remote store is found unreachable
DEFAULT_SEED_DATA: Dict[str, List[Record]] = {
    "medicines": [
        {
            "id": "1",
            "name": "Paracetamol 500mg",
            "category": "Pain Relief",
            "price": 15.99,
            "stock": 450,
            "minStock": 50,
            "expiry": "2025-12-31",
            "supplier": "MedSupply Co",
            "batchNumber": "PAR2024001",
        },
        {
            "id": "2",
            "name": "Ibuprofen 400mg",
            "category": "Anti-inflammatory",
            "price": 22.50,
            "stock": 320,
            "minStock": 40,
            "expiry": "2025-10-15",
            "supplier": "PharmaCorp",
            "batchNumber": "IBU2024002",
        },
    ],
    "patients": [
        {
            "id": "1",
            "name": "John Smith",
            "phone": "+1 (555) 123-4567",
            "dateOfBirth": "1985-03-15",
            "allergies": "Penicillin",
        },
        {
            "id": "2",
            "name": "Sarah Johnson",
            "phone": "+1 (555) 987-6543",
            "dateOfBirth": "1990-07-22",
            "allergies": "None known",
        },
    ],
    "suppliers": [
        {
            "id": "1",
            "name": "MedSupply Co",
            "contact": "John Johnson",
            "paymentTerms": "Net 30",
            "status": "Active",
        },
    ],
    "prescriptions": [],
    "sales": [],
}


class ResourceAPI:
    """CRUD bound to one collection."""

    def __init__(self, router: PersistenceRouter, collection: str):
        self._router = router
        self.collection = collection

    async def get_all(self) -> List[Record]:
        return await self._router.read_all(self.collection)

    async def create(self, payload: Mapping[str, Any]) -> Record:
        return await self._router.create(self.collection, payload)

    async def update(self, record_id: str, patch: Mapping[str, Any]) -> Optional[Record]:
        return await self._router.update(self.collection, record_id, patch)

    async def delete(self, record_id: str) -> bool:
        return await self._router.delete(self.collection, record_id)

    async def fetch_dataframe(self) -> pd.DataFrame:
        """Current contents as a DataFrame, one row per record."""
        return pd.DataFrame(await self.get_all())

    def subscribe(self, callback: ChangeCallback, interval: Optional[float] = None) -> PollingHandle:
        return self._router.subscribe_to_updates(self.collection, callback, interval)


class OfflineServices:
    """Owns the wired offline components for one device profile."""

    def __init__(
        self,
        settings: OfflineSettings,
        backend: KeyValueStore,
        remote: RemoteStoreClient,
        clock: Callable[[], datetime] = datetime.now,
        seed_data: Optional[Mapping[str, List[Record]]] = None,
    ):
        self.settings = settings
        self.backend = backend
        self.remote = remote
        self.seed_data = DEFAULT_SEED_DATA if seed_data is None else seed_data

        self.bus = ChangeNotificationBus()
        self.store = LocalStore(backend, self.bus, key_prefix=settings.key_prefix)
        self.monitor = AvailabilityMonitor(
            remote, self.bus, recheck_interval=settings.recheck_interval, clock=clock
        )
        self.router = PersistenceRouter(
            remote, self.store, self.bus, self.monitor, poll_interval=settings.poll_interval
        )
        self.generator = SequenceGenerator(
            self.store, clock=clock, max_attempts=settings.max_sequence_attempts
        )
        self.dashboard_cache = DashboardCache(self.store, ttl=settings.dashboard_cache_ttl)
        self.sync_engine = SyncEngine(self.router, remote, self.store, self.bus, self.monitor)
        self.resources = {name: ResourceAPI(self.router, name) for name in COLLECTIONS}

        self._initialized = False
        self._unsubscribers: List[Callable[[], None]] = []

    @classmethod
    def from_settings(
        cls,
        settings: Optional[OfflineSettings] = None,
        backend: Optional[KeyValueStore] = None,
        access_token: TokenSource = None,
        http_client: Optional[httpx.AsyncClient] = None,
        **kwargs: Any,
    ) -> OfflineServices:
        """
        Build services from settings.

        Args:
            settings: Defaults to get_settings()
            backend: Defaults to SQLite at settings.storage_path
            access_token: Token or provider; defaults to settings.access_token
            http_client: Injected HTTP client (tests)
        """
        settings = settings or get_settings()
        remote = RemoteStoreClient(
            settings.api_base_url,
            access_token=access_token if access_token is not None else settings.access_token,
            timeout=settings.request_timeout,
            probe_timeout=settings.probe_timeout,
            probe_path=settings.probe_path,
            headers=settings.extra_headers,
            http_client=http_client,
        )
        if backend is None:
            backend = SQLiteKeyValueStore(settings.storage_path)
        return cls(settings, backend, remote, **kwargs)

    def __getattr__(self, name: str) -> ResourceAPI:
        resources = self.__dict__.get("resources", {})
        if name in resources:
            return resources[name]
        raise AttributeError(name)

    def initialize(self) -> None:
        """Hook up automatic sync, cache invalidation and offline seeding."""
        if self._initialized:
            return
        self.sync_engine.attach()
        self._unsubscribers.extend(self.dashboard_cache.invalidate_on(self.bus))
        self._unsubscribers.append(
            self.bus.subscribe(CONNECTION_STATUS_CHANGED, self._on_connection_change)
        )
        self._initialized = True
        logger.info("Offline services initialized")

    def _on_connection_change(self, status: Dict[str, Any]) -> None:
        if not status.get("is_online"):
            self.ensure_offline_data()

    def ensure_offline_data(self) -> List[str]:
        """Seed demo data for collections never stored locally."""
        return self.store.seed_defaults(self.seed_data)

    def get_status(self) -> Dict[str, Any]:
        return {
            **self.router.status(),
            "today": self.generator.today_stats(),
            "remote_configured": self.settings.remote_configured,
        }

    async def close(self) -> None:
        """Stop background work and release the HTTP client and storage."""
        await self.monitor.stop_monitoring()
        await self.sync_engine.wait_idle()
        self.sync_engine.detach()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        await self.remote.aclose()
        self.backend.close()
        self._initialized = False


# Singleton accessor
_services: Optional[OfflineServices] = None


def get_services() -> OfflineServices:
    """
    Get the global OfflineServices instance.

    Returns:
        OfflineServices built from get_settings()
    """
    global _services
    if _services is None:
        _services = OfflineServices.from_settings()
        _services.initialize()
    return _services


def reset_services() -> None:
    """Forget the global instance (it is not closed)."""
    global _services
    _services = None
