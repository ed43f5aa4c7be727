# =============================================================================
# pharmacare_core/offline/local_store.py
# Local Collection Store for Offline Operations
# =============================================================================
"""
LocalStore - JSON collections kept in a durable key-value partition.

Features:
- Generic CRUD over named collections
- Records created or changed here are tagged ``localOnly``
- Dirty-collection tracking (SyncState) republished on every change
- pandas integration for tabular views of a collection

Each collection lives under ``<prefix><collection>`` as a JSON array. A value
that does not parse as an array is treated as an empty collection.
"""

from __future__ import annotations
import json
import secrets
import string
import time
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set
import logging

import numpy as np
import pandas as pd

from pharmacare_core.offline.event_bus import ChangeNotificationBus, SYNC_STATUS_CHANGED
from pharmacare_core.offline.storage_backend import KeyValueStore

logger = logging.getLogger(__name__)

Record = Dict[str, Any]

LOCAL_ONLY_FLAG = "localOnly"
LOCAL_ID_PREFIX = "local-"

_ID_ALPHABET = string.digits + string.ascii_lowercase


def iso_now() -> str:
    """UTC timestamp in the format the remote API emits."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class SyncState:
    """Which collections hold changes the remote store has not confirmed."""
    last_sync_timestamp: Optional[str] = None
    pending_collections: Set[str] = field(default_factory=set)
    is_syncing: bool = False
    last_error: Optional[str] = None

    @property
    def pending_changes(self) -> int:
        return len(self.pending_collections)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["pending_collections"] = sorted(self.pending_collections)
        data["pending_changes"] = self.pending_changes
        return data


class LocalStore:
    """
    Durable cache of every collection the application uses.

    Only the PersistenceRouter and the SyncEngine should call the mutating
    methods; feature code goes through the router.

    Usage:
        store = LocalStore(MemoryKeyValueStore(), bus)
        record = store.create("medicines", {"name": "Paracetamol 500mg"})
        store.get_all("medicines")
    """

    SYNC_STATUS_KEY = "sync_status"
    PENDING_SYNC_KEY = "pending_sync"

    def __init__(
        self,
        backend: KeyValueStore,
        bus: Optional[ChangeNotificationBus] = None,
        key_prefix: str = "pharmacare_",
    ):
        self._backend = backend
        self._bus = bus
        self._prefix = key_prefix
        self._known_collections: Set[str] = set()
        self._state = self._load_sync_state()

    # =========================================================================
    # KEYS & SERIALIZATION
    # =========================================================================

    def storage_key(self, name: str) -> str:
        """Backend key for a collection or internal document."""
        return f"{self._prefix}{name}"

    def read_json(self, name: str, default: Any = None) -> Any:
        """
        Load a JSON document; missing or malformed values yield default.
        """
        key = self.storage_key(name)
        try:
            raw = self._backend.get(key)
        except Exception as e:
            logger.error(f"Error reading local storage ({key}): {e}")
            return default
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            logger.warning(f"Corrupt JSON under {key}, treating as empty: {e}")
            return default

    def write_json(self, name: str, value: Any) -> None:
        """Serialize and persist a JSON document (raises LocalStorageError)."""
        self._backend.set(self.storage_key(name), json.dumps(value, default=str))

    def remove_json(self, name: str) -> None:
        self._backend.remove(self.storage_key(name))

    def has_collection(self, collection: str) -> bool:
        return self._backend.get(self.storage_key(collection)) is not None

    # =========================================================================
    # GENERIC CRUD OPERATIONS
    # =========================================================================

    def get_all(self, collection: str) -> List[Record]:
        """All records of a collection, in insertion order."""
        items = self.read_json(collection, default=[])
        if not isinstance(items, list):
            logger.warning(f"Collection '{collection}' is not an array, treating as empty")
            return []
        return items

    def get_by_id(self, collection: str, record_id: str) -> Optional[Record]:
        for item in self.get_all(collection):
            if isinstance(item, dict) and item.get("id") == record_id:
                return item
        return None

    def set_all(
        self,
        collection: str,
        records: List[Record],
        skip_dirty_mark: bool = False,
    ) -> None:
        """
        Replace a collection wholesale.

        Args:
            collection: Collection name
            records: New contents
            skip_dirty_mark: True when caching a snapshot confirmed by the remote store
        """
        self.write_json(collection, list(records))
        self._known_collections.add(collection)
        if not skip_dirty_mark:
            self.mark_pending_sync(collection)

    def create(self, collection: str, payload: Mapping[str, Any]) -> Record:
        """
        Append a record that the remote store has not seen.

        A caller-supplied id is kept unless it already exists in the collection.
        """
        items = self.get_all(collection)
        existing = {item.get("id") for item in items if isinstance(item, dict)}

        record_id = payload.get("id")
        if not record_id or record_id in existing:
            if record_id:
                logger.warning(f"Id {record_id} already used in '{collection}', assigning a local id")
            record_id = self.generate_local_id(existing)

        now = iso_now()
        record = {
            **payload,
            "id": record_id,
            "created_at": now,
            "updated_at": now,
            LOCAL_ONLY_FLAG: True,
        }

        items.append(record)
        self.set_all(collection, items)
        return record

    def update(
        self,
        collection: str,
        record_id: str,
        patch: Mapping[str, Any],
    ) -> Optional[Record]:
        """Merge patch into a record; None if the id is unknown."""
        items = self.get_all(collection)
        for index, item in enumerate(items):
            if isinstance(item, dict) and item.get("id") == record_id:
                changes = {k: v for k, v in patch.items() if k != "id"}
                items[index] = {
                    **item,
                    **changes,
                    "updated_at": iso_now(),
                    LOCAL_ONLY_FLAG: True,
                }
                self.set_all(collection, items)
                return items[index]
        return None

    def delete(self, collection: str, record_id: str) -> bool:
        """Remove a record; False if the id is unknown."""
        items = self.get_all(collection)
        remaining = [
            item for item in items
            if not (isinstance(item, dict) and item.get("id") == record_id)
        ]
        if len(remaining) == len(items):
            return False
        self.set_all(collection, remaining)
        return True

    def replace_record(self, collection: str, record_id: str, record: Record) -> bool:
        """
        Swap one record for the copy the remote store confirmed.

        Does not mark the collection pending. False if the id is gone.
        """
        items = self.get_all(collection)
        for index, item in enumerate(items):
            if isinstance(item, dict) and item.get("id") == record_id:
                items[index] = record
                self.set_all(collection, items, skip_dirty_mark=True)
                return True
        return False

    def has_local_only(self, collection: str) -> bool:
        return any(
            isinstance(item, dict) and item.get(LOCAL_ONLY_FLAG)
            for item in self.get_all(collection)
        )

    @staticmethod
    def generate_local_id(existing: Iterable[Any] = ()) -> str:
        """``local-<epoch ms>-<9 base36 chars>``, regenerated until unused."""
        taken = set(existing)
        while True:
            suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(9))
            candidate = f"{LOCAL_ID_PREFIX}{time.time_ns() // 1_000_000}-{suffix}"
            if candidate not in taken:
                return candidate

    # =========================================================================
    # SYNC STATE
    # =========================================================================

    def _load_sync_state(self) -> SyncState:
        stored = self.read_json(self.SYNC_STATUS_KEY, default={})
        if not isinstance(stored, dict):
            stored = {}
        pending = self.read_json(self.PENDING_SYNC_KEY, default=[])
        if not isinstance(pending, list):
            pending = []
        return SyncState(
            last_sync_timestamp=stored.get("last_sync_timestamp"),
            pending_collections=set(pending),
            is_syncing=False,
            last_error=stored.get("last_error"),
        )

    @property
    def sync_state(self) -> SyncState:
        return self._state

    def get_sync_status(self) -> Dict[str, Any]:
        return self._state.to_dict()

    def get_pending_sync(self) -> List[str]:
        """Collections with changes not known to be on the remote store."""
        return sorted(self._state.pending_collections)

    def mark_pending_sync(self, collection: str) -> None:
        self._state.pending_collections.add(collection)
        self._persist_sync_state()

    def clear_pending_sync(self, collection: str) -> None:
        """Called once the remote store has confirmed a collection's changes."""
        self._state.pending_collections.discard(collection)
        self._persist_sync_state()

    def update_sync_status(self, **changes: Any) -> SyncState:
        """Set SyncState fields (is_syncing, last_error, last_sync_timestamp)."""
        for name, value in changes.items():
            if name == "pending_collections" or not hasattr(self._state, name):
                raise AttributeError(f"Unknown sync status field: {name}")
            setattr(self._state, name, value)
        self._persist_sync_state()
        return self._state

    def _persist_sync_state(self) -> None:
        try:
            self.write_json(self.PENDING_SYNC_KEY, sorted(self._state.pending_collections))
            self.write_json(self.SYNC_STATUS_KEY, self._state.to_dict())
        except Exception as e:
            logger.error(f"Error persisting sync status: {e}")
        if self._bus is not None:
            self._bus.publish(SYNC_STATUS_CHANGED, self._state.to_dict())

    # =========================================================================
    # MAINTENANCE
    # =========================================================================

    def seed_defaults(self, defaults: Mapping[str, List[Record]]) -> List[str]:
        """
        Store demo contents for collections never held locally.

        Seeded data is not marked dirty, so it is never pushed upstream.

        Returns:
            Names of the collections that were seeded
        """
        seeded = []
        for collection, records in defaults.items():
            if self.has_collection(collection):
                continue
            self.set_all(collection, records, skip_dirty_mark=True)
            seeded.append(collection)
        if seeded:
            logger.info(f"Seeded offline data for: {', '.join(seeded)}")
        return seeded

    def clear_all(self, collections: Iterable[str] = ()) -> None:
        """Remove the given collections plus every one touched by this store."""
        names = set(collections) | self._known_collections | self._state.pending_collections
        for name in names:
            self._backend.remove(self.storage_key(name))
        self._backend.remove(self.storage_key(self.PENDING_SYNC_KEY))
        self._backend.remove(self.storage_key(self.SYNC_STATUS_KEY))
        self._known_collections.clear()
        self._state = SyncState()
        logger.info("Local data cleared")

    # =========================================================================
    # PANDAS INTEGRATION
    # =========================================================================

    def to_dataframe(self, collection: str) -> pd.DataFrame:
        """Load a collection into a pandas DataFrame (one row per record)."""
        return pd.DataFrame(self.get_all(collection))

    def from_dataframe(
        self,
        collection: str,
        df: pd.DataFrame,
        skip_dirty_mark: bool = False,
    ) -> int:
        """
        Replace a collection with the rows of a DataFrame.

        Returns:
            Number of records stored
        """
        df = df.astype(object).replace({np.nan: None})
        records = df.to_dict(orient="records")
        self.set_all(collection, records, skip_dirty_mark=skip_dirty_mark)
        return len(records)
