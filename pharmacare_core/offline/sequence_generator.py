# =============================================================================
# pharmacare_core/offline/sequence_generator.py
# Daily Prescription / Order Number Generator
# =============================================================================
"""
SequenceGenerator - human-readable identifiers for prescriptions and walk-in orders.

Format:
    RX-YYYYMMDD-NNNN   prescriptions
    ORD-YYYYMMDD-NNNN  walk-in orders

The sequence restarts at 0001 on the first request after local midnight.
Before an identifier is handed out, the prescriptions collection is scanned
for a record already carrying it; a match bumps the sequence and retries.

Two callers interleaving between "increment" and "persist" can still receive
the same number: the scan only sees records that were already stored.
"""

from __future__ import annotations
import json
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional
import logging

from pharmacare_core.errors import SequenceExhaustedError
from pharmacare_core.offline.local_store import LocalStore

logger = logging.getLogger(__name__)

PRESCRIPTION_PREFIX = "RX"
ORDER_PREFIX = "ORD"

IDENTIFIER_PATTERN = re.compile(r"(RX|ORD)-([0-9]{8})-([0-9]{4})")
MAX_SEQUENCE = 9999

# Record fields that may hold an issued identifier
IDENTIFIER_FIELDS = ("prescription_number", "orderNumber")


@dataclass
class DailyCounter:
    """Sequences issued so far on one calendar day."""
    date: str
    prescription_sequence: int = 0
    order_sequence: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "prescriptionCounter": self.prescription_sequence,
            "orderCounter": self.order_sequence,
        }

    @classmethod
    def from_dict(cls, data: Any) -> Optional[DailyCounter]:
        """Validate a stored counter; None if the structure is wrong."""
        if not isinstance(data, dict):
            return None
        date = data.get("date")
        rx = data.get("prescriptionCounter")
        orders = data.get("orderCounter")
        if not isinstance(date, str) or not date:
            return None
        for value in (rx, orders):
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                return None
        return cls(date=date, prescription_sequence=rx, order_sequence=orders)


@dataclass(frozen=True)
class ParsedIdentifier:
    type: str                       # "prescription", "order" or "unknown"
    date: Optional[str]
    sequence: Optional[int]
    is_valid: bool


INVALID_IDENTIFIER = ParsedIdentifier(type="unknown", date=None, sequence=None, is_valid=False)


def format_identifier(prefix: str, date: str, sequence: int) -> str:
    return f"{prefix}-{date}-{sequence:04d}"


def parse_identifier(identifier: Any) -> ParsedIdentifier:
    """Split an identifier into its parts; never raises."""
    if not isinstance(identifier, str):
        return INVALID_IDENTIFIER
    match = IDENTIFIER_PATTERN.fullmatch(identifier)
    if not match:
        return INVALID_IDENTIFIER
    prefix, date, sequence = match.groups()
    return ParsedIdentifier(
        type="prescription" if prefix == PRESCRIPTION_PREFIX else "order",
        date=date,
        sequence=int(sequence),
        is_valid=True,
    )


class SequenceGenerator:
    """
    Owns the DailyCounter and issues identifiers from it.

    Usage:
        generator = SequenceGenerator(local_store)
        generator.next_prescription_number()   # "RX-20241115-0001"
        generator.parse("ORD-20241115-0007").sequence   # 7
    """

    COUNTER_KEY = "order_counters"
    TARGET_COLLECTION = "prescriptions"

    def __init__(
        self,
        store: LocalStore,
        clock: Callable[[], datetime] = datetime.now,
        max_attempts: int = 100,
    ):
        """
        Args:
            store: Local Store holding the counter and the scanned collection
            clock: Returns the current local time
            max_attempts: Uniqueness retries before giving up
        """
        self._store = store
        self._clock = clock
        self.max_attempts = max_attempts

    def today(self) -> str:
        return self._clock().strftime("%Y%m%d")

    # =========================================================================
    # COUNTER PERSISTENCE
    # =========================================================================

    def _load_counter(self) -> DailyCounter:
        """Today's counter, starting from zero on a new day or unreadable data."""
        today = self.today()
        raw = self._store.read_json(self.COUNTER_KEY)
        stored = DailyCounter.from_dict(raw)
        if stored is None:
            if raw is not None:
                logger.warning("Stored order counter is malformed, starting from zero")
            return DailyCounter(date=today)
        if stored.date != today:
            logger.info(f"New day {today}, resetting sequences (was {stored.date})")
            return DailyCounter(date=today)
        return stored

    def _save_counter(self, counter: DailyCounter) -> None:
        self._store.write_json(self.COUNTER_KEY, counter.to_dict())

    # =========================================================================
    # ISSUING
    # =========================================================================

    def _identifier_exists(self, identifier: str) -> bool:
        for item in self._store.get_all(self.TARGET_COLLECTION):
            if isinstance(item, dict) and any(item.get(f) == identifier for f in IDENTIFIER_FIELDS):
                return True
        return False

    def _find_free(self, prefix: str, date: str, start: int) -> tuple:
        """
        First unused sequence at or after start.

        Returns:
            (sequence, identifier, found)
        """
        sequence = start
        identifier = format_identifier(prefix, date, sequence)
        attempts = 0
        while self._identifier_exists(identifier) and attempts < self.max_attempts:
            sequence += 1
            identifier = format_identifier(prefix, date, sequence)
            attempts += 1
        found = sequence <= MAX_SEQUENCE and not self._identifier_exists(identifier)
        return sequence, identifier, found

    def _next(self, prefix: str, field_name: str) -> str:
        counter = self._load_counter()
        start = getattr(counter, field_name) + 1

        sequence, identifier, found = self._find_free(prefix, counter.date, start)
        if not found:
            logger.error(f"No free {prefix} number for {counter.date} after {self.max_attempts} attempts")
            raise SequenceExhaustedError(
                f"Could not allocate a unique {prefix} number",
                prefix=prefix,
                date=counter.date,
                attempts=self.max_attempts,
            )

        setattr(counter, field_name, sequence)
        self._save_counter(counter)
        return identifier

    def next_prescription_number(self) -> str:
        """Issue the next ``RX-YYYYMMDD-NNNN``."""
        return self._next(PRESCRIPTION_PREFIX, "prescription_sequence")

    def next_order_number(self) -> str:
        """Issue the next ``ORD-YYYYMMDD-NNNN``."""
        return self._next(ORDER_PREFIX, "order_sequence")

    def preview_next(self) -> Dict[str, str]:
        """
        Identifiers the next calls would most likely return.

        Nothing is persisted, so a concurrent caller may consume them first.
        """
        counter = self._load_counter()
        _, next_rx, _ = self._find_free(
            PRESCRIPTION_PREFIX, counter.date, counter.prescription_sequence + 1
        )
        _, next_order, _ = self._find_free(
            ORDER_PREFIX, counter.date, counter.order_sequence + 1
        )
        return {"next_prescription": next_rx, "next_order": next_order}

    # =========================================================================
    # PARSING & DISPLAY
    # =========================================================================

    @staticmethod
    def parse(identifier: Any) -> ParsedIdentifier:
        return parse_identifier(identifier)

    @staticmethod
    def is_valid(identifier: Any) -> bool:
        return parse_identifier(identifier).is_valid

    @staticmethod
    def format_date(identifier: Any) -> str:
        """Date embedded in an identifier as DD/MM/YYYY."""
        parsed = parse_identifier(identifier)
        if not parsed.is_valid:
            return "Invalid Date"
        date = parsed.date
        return f"{date[6:8]}/{date[4:6]}/{date[0:4]}"

    def today_stats(self) -> Dict[str, Any]:
        counter = self._load_counter()
        return {
            "date": counter.date,
            "total_prescriptions": counter.prescription_sequence,
            "total_orders": counter.order_sequence,
            "total": counter.prescription_sequence + counter.order_sequence,
        }

    # =========================================================================
    # ADMINISTRATION
    # =========================================================================

    def export_counter(self) -> str:
        """Today's counter as JSON, for backups."""
        return json.dumps(self._load_counter().to_dict(), indent=2)

    def import_counter(self, json_data: str) -> bool:
        """Restore a counter exported by export_counter; False if invalid."""
        try:
            counter = DailyCounter.from_dict(json.loads(json_data))
        except (TypeError, ValueError) as e:
            logger.error(f"Error importing counter data: {e}")
            return False
        if counter is None:
            logger.error("Invalid counter data structure")
            return False
        self._save_counter(counter)
        logger.info("Counter data imported successfully")
        return True

    def reset(self) -> None:
        """Delete the stored counter; the next identifier restarts at 0001."""
        self._store.remove_json(self.COUNTER_KEY)
        logger.warning("Order counters reset")
