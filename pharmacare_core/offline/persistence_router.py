# =============================================================================
# pharmacare_core/offline/persistence_router.py
# Offline-First CRUD Facade
# =============================================================================
"""
PersistenceRouter - single entry point for reading and writing collections.

Routing Logic:
1. Try the remote store once, with a short deadline
2. On any failure, service the call from the Local Store instead
3. Publish every mutation on the bus, whichever store handled it

Reads that reach the remote store replace the local copy, so the Local Store
always holds the last snapshot the remote confirmed plus local-only edits
made since.
"""

from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional
import logging

from pharmacare_core.errors import LocalStorageError, RemoteStoreError
from pharmacare_core.offline.availability_monitor import AvailabilityMonitor
from pharmacare_core.offline.event_bus import (
    ChangeNotificationBus,
    PRESCRIPTION_CREATED,
    collection_topic,
)
from pharmacare_core.offline.local_store import LocalStore, Record
from pharmacare_core.offline.polling import ChangeCallback, CollectionPoller, PollingHandle
from pharmacare_core.offline.remote_client import RemoteStoreClient

logger = logging.getLogger(__name__)

# Collections with a more specific creation topic
CREATION_TOPICS = {
    "prescriptions": PRESCRIPTION_CREATED,
}


class PersistenceRouter:
    """
    Usage:
        router = PersistenceRouter(remote, local_store, bus, monitor)
        medicines = await router.read_all("medicines")
        record = await router.create("prescriptions", {...})
        if record.get("localOnly"):
            ...  # saved offline, will sync later
    """

    def __init__(
        self,
        remote: RemoteStoreClient,
        store: LocalStore,
        bus: ChangeNotificationBus,
        monitor: Optional[AvailabilityMonitor] = None,
        poll_interval: float = 3.0,
    ):
        self._remote = remote
        self._store = store
        self._bus = bus
        self._monitor = monitor
        self.poll_interval = poll_interval

    @property
    def store(self) -> LocalStore:
        return self._store

    @property
    def bus(self) -> ChangeNotificationBus:
        return self._bus

    def _record(self, reachable: bool) -> None:
        if self._monitor is not None:
            self._monitor.record_result(reachable)

    def _fallback(self, action: str, collection: str, error: RemoteStoreError) -> None:
        self._record(False)
        logger.debug(f"{action} {collection}: remote failed ({error}), using local store")

    def _publish_mutation(self, collection: str, payload: Any) -> None:
        self._bus.publish(collection_topic(collection), payload)

    # =========================================================================
    # GENERIC CRUD OPERATIONS
    # =========================================================================

    async def read_all(self, collection: str) -> List[Record]:
        """
        Authoritative list when reachable, cached list otherwise.

        Never raises; a collection never held locally reads as [].
        """
        try:
            records = await self._remote.get_all(collection)
        except RemoteStoreError as e:
            self._fallback("read_all", collection, e)
            return self._store.get_all(collection)

        self._record(True)
        try:
            self._store.set_all(collection, records, skip_dirty_mark=True)
        except LocalStorageError as e:
            logger.warning(f"Could not cache {collection} locally: {e}")
        return records

    async def create(self, collection: str, payload: Mapping[str, Any]) -> Record:
        """Create remotely, or locally with ``localOnly`` set."""
        try:
            record = await self._remote.create(collection, dict(payload))
        except RemoteStoreError as e:
            self._fallback("create", collection, e)
            record = self._store.create(collection, payload)
            logger.warning(f"Created {collection}/{record['id']} offline; pending sync")
        else:
            self._record(True)

        self._publish_mutation(collection, record)
        if collection in CREATION_TOPICS:
            self._bus.publish(CREATION_TOPICS[collection], record)
        return record

    async def update(
        self,
        collection: str,
        record_id: str,
        patch: Mapping[str, Any],
    ) -> Optional[Record]:
        """Apply patch; None if the servicing store has no such id."""
        try:
            record = await self._remote.update(collection, record_id, dict(patch))
        except RemoteStoreError as e:
            self._fallback("update", collection, e)
            record = self._store.update(collection, record_id, patch)
        else:
            self._record(True)

        if record is None:
            logger.debug(f"update {collection}/{record_id}: not found")
            return None
        self._publish_mutation(collection, record)
        return record

    async def delete(self, collection: str, record_id: str) -> bool:
        """Delete by id; False if the servicing store has no such id."""
        try:
            await self._remote.delete(collection, record_id)
            deleted = True
        except RemoteStoreError as e:
            self._fallback("delete", collection, e)
            deleted = self._store.delete(collection, record_id)
        else:
            self._record(True)

        if deleted:
            self._publish_mutation(collection, {"id": record_id, "deleted": True})
        return deleted

    # =========================================================================
    # SUBSCRIPTIONS
    # =========================================================================

    def subscribe_to_updates(
        self,
        collection: str,
        callback: ChangeCallback,
        interval: Optional[float] = None,
    ) -> PollingHandle:
        """
        Poll read_all(collection) and call back when the contents change.

        Must be called from within a running event loop.
        """
        poller = CollectionPoller(
            lambda: self.read_all(collection),
            callback,
            interval=interval if interval is not None else self.poll_interval,
            name=collection,
        )
        return poller.start()

    def status(self) -> Dict[str, Any]:
        """Connection and sync status for display."""
        return {
            "connection": self._monitor.get_status_display() if self._monitor else None,
            "sync": self._store.get_sync_status(),
        }
