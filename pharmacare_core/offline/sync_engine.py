# =============================================================================
# pharmacare_core/offline/sync_engine.py
# Reconciliation of Offline Changes
# =============================================================================
"""
SyncEngine - pushes records saved offline once the remote store is back.

For every collection marked pending in the SyncState:
- records with a ``local-`` id are POSTed (without the local id and flag)
- other ``localOnly`` records are PUT under their existing id
- each confirmed push replaces its local record with the server copy
  (server id, no ``localOnly``) without marking the collection pending
- once no ``localOnly`` record is left, the pending mark is cleared and the
  collection is re-read through the router

A collection with a failed push keeps its mark; only the records that did
not reach the remote store are retried. Deletes made offline are not replayed.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set
import logging

from pharmacare_core.errors import LocalStorageError, RemoteStoreError
from pharmacare_core.logging import LogContext
from pharmacare_core.offline.availability_monitor import AvailabilityMonitor
from pharmacare_core.offline.event_bus import (
    ChangeNotificationBus,
    CONNECTION_STATUS_CHANGED,
    SYNC_COMPLETE,
    SYNC_START,
    Unsubscribe,
)
from pharmacare_core.offline.local_store import (
    LOCAL_ID_PREFIX,
    LOCAL_ONLY_FLAG,
    LocalStore,
    Record,
    iso_now,
)
from pharmacare_core.offline.persistence_router import PersistenceRouter
from pharmacare_core.offline.remote_client import RemoteStoreClient

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Outcome of one sync_now() run."""
    pushed: int = 0
    failed: int = 0
    synced_collections: List[str] = field(default_factory=list)
    failed_collections: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.failed == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "pushed": self.pushed,
            "failed": self.failed,
            "synced_collections": self.synced_collections,
            "failed_collections": self.failed_collections,
        }


def push_payload(record: Record) -> Record:
    """Record as sent to the remote store on create."""
    return {k: v for k, v in record.items() if k not in ("id", LOCAL_ONLY_FLAG)}


class SyncEngine:
    """
    Usage:
        engine = SyncEngine(router, remote, local_store, bus, monitor)
        engine.attach()          # sync automatically when back online
        await engine.sync_now()  # or force one run
    """

    def __init__(
        self,
        router: PersistenceRouter,
        remote: RemoteStoreClient,
        store: LocalStore,
        bus: ChangeNotificationBus,
        monitor: AvailabilityMonitor,
    ):
        self._router = router
        self._remote = remote
        self._store = store
        self._bus = bus
        self._monitor = monitor
        self._unsubscribe: Optional[Unsubscribe] = None
        self._tasks: Set[asyncio.Task] = set()
        self.last_report: Optional[SyncReport] = None

    @property
    def is_syncing(self) -> bool:
        return self._store.sync_state.is_syncing

    # =========================================================================
    # AUTOMATIC TRIGGER
    # =========================================================================

    def attach(self) -> None:
        """Run a sync whenever the monitor reports the remote store is back."""
        if self._unsubscribe is None:
            self._unsubscribe = self._bus.subscribe(
                CONNECTION_STATUS_CHANGED, self._on_connection_change
            )

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_connection_change(self, status: Dict[str, Any]) -> None:
        if not status.get("is_online"):
            return
        if not self._store.get_pending_sync():
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("Connection restored outside an event loop, sync deferred")
            return
        logger.info("Connection restored, triggering sync")
        task = loop.create_task(self.sync_now(), name="SyncEngine")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def wait_idle(self) -> None:
        """Wait for automatically triggered syncs to finish."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # SYNCHRONIZATION
    # =========================================================================

    async def sync_now(self) -> bool:
        """
        Push pending collections if the remote store is reachable.

        Returns:
            True if every pending record reached the remote store
        """
        if self.is_syncing:
            logger.debug("Sync already in progress")
            return False
        if not await self._monitor.is_online():
            logger.debug("Cannot sync: offline")
            return False

        pending = self._store.get_pending_sync()
        if not pending:
            return True

        report = SyncReport()
        self._store.update_sync_status(is_syncing=True)
        self._bus.publish(SYNC_START, {"collections": pending})
        logger.info(f"Syncing {len(pending)} collection(s): {', '.join(pending)}")

        try:
            for collection in pending:
                with LogContext(logger, f"Syncing {collection}"):
                    pushed, failed = await self._push_collection(collection)
                report.pushed += pushed
                report.failed += failed
                if failed:
                    report.failed_collections.append(collection)
                    continue
                report.synced_collections.append(collection)
                if self._store.has_local_only(collection):
                    # changed again during the push; next run picks it up
                    continue
                self._store.clear_pending_sync(collection)
                await self._router.read_all(collection)
        finally:
            changes: Dict[str, Any] = {"is_syncing": False}
            if report.success:
                changes["last_sync_timestamp"] = iso_now()
                changes["last_error"] = None
            else:
                changes["last_error"] = (
                    f"{report.failed} record(s) could not be synced: "
                    f"{', '.join(report.failed_collections)}"
                )
            self._store.update_sync_status(**changes)
            self.last_report = report
            self._bus.publish(SYNC_COMPLETE, report.to_dict())

        logger.info(f"Sync complete: {report.pushed} pushed, {report.failed} failed")
        return report.success

    async def _push_collection(self, collection: str) -> tuple:
        """
        Push the collection's local-only records.

        Each confirmed record is swapped into the Local Store straight away,
        so a later failure in the same collection cannot cause it to be
        pushed twice.

        Returns:
            (pushed, failed) counts
        """
        pushed = failed = 0
        for record in self._store.get_all(collection):
            if not isinstance(record, dict) or not record.get(LOCAL_ONLY_FLAG):
                continue
            record_id = str(record.get("id", ""))
            try:
                if record_id.startswith(LOCAL_ID_PREFIX):
                    confirmed = await self._remote.create(collection, push_payload(record))
                else:
                    confirmed = await self._remote.update(collection, record_id, push_payload(record))
            except RemoteStoreError as e:
                logger.warning(f"Could not sync {collection}/{record_id}: {e}")
                self._monitor.record_result(False)
                failed += 1
            else:
                pushed += 1
                self._mark_pushed(collection, record, confirmed)
        return pushed, failed

    def _mark_pushed(self, collection: str, sent: Record, confirmed: Any) -> None:
        record_id = sent["id"]
        server_id = confirmed.get("id") if isinstance(confirmed, dict) else None
        current = self._store.get_by_id(collection, record_id)
        if current is None:
            return

        if current != sent:
            # edited while the push was in flight: keep the edit, adopt the server id
            synced = {**current, "id": server_id or record_id}
        elif server_id:
            synced = {k: v for k, v in confirmed.items() if k != LOCAL_ONLY_FLAG}
        else:
            synced = {k: v for k, v in current.items() if k != LOCAL_ONLY_FLAG}

        try:
            self._store.replace_record(collection, record_id, synced)
        except LocalStorageError as e:
            logger.error(f"Pushed {collection}/{record_id} but could not record it locally: {e}")
