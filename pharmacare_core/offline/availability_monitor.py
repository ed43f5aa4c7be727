# =============================================================================
# pharmacare_core/offline/availability_monitor.py
# Remote Store Reachability Detection
# =============================================================================
"""
AvailabilityMonitor - tracks whether the remote store answers.

Features:
- On-demand HEAD probe with its own deadline
- Cached answer, re-probed once older than the recheck interval
- Router outcomes folded into the same state
- Optional background monitoring task
- connectionStatusChanged published on every transition

A probe that is refused (401, 500...) and one that never arrives are both
reported as offline.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional
import logging

from pharmacare_core.offline.event_bus import ChangeNotificationBus, CONNECTION_STATUS_CHANGED
from pharmacare_core.offline.remote_client import RemoteStoreClient

logger = logging.getLogger(__name__)


class ConnectionStatus(Enum):
    """Connection status states."""
    ONLINE = "online"
    OFFLINE = "offline"


@dataclass
class ConnectionState:
    """Current reachability with metadata."""
    online: bool = True                         # Optimistic until the first check
    last_checked_at: Optional[datetime] = None
    last_online_at: Optional[datetime] = None
    consecutive_failures: int = 0

    @property
    def status(self) -> ConnectionStatus:
        return ConnectionStatus.ONLINE if self.online else ConnectionStatus.OFFLINE


class AvailabilityMonitor:
    """
    Usage:
        monitor = AvailabilityMonitor(remote_client, bus)
        if await monitor.is_online():
            ...
        handle = monitor.start_monitoring()
        ...
        await monitor.stop_monitoring()
    """

    RECHECK_INTERVAL = 30.0     # Seconds a probe result stays fresh

    def __init__(
        self,
        remote: RemoteStoreClient,
        bus: Optional[ChangeNotificationBus] = None,
        recheck_interval: float = RECHECK_INTERVAL,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self._remote = remote
        self._bus = bus
        self.recheck_interval = recheck_interval
        self._clock = clock
        self._state = ConnectionState()
        self._monitor_task: Optional[asyncio.Task] = None

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def online(self) -> bool:
        """Last known answer, without probing."""
        return self._state.online

    def is_stale(self) -> bool:
        """True when the last check is older than the recheck interval."""
        if self._state.last_checked_at is None:
            return True
        elapsed = (self._clock() - self._state.last_checked_at).total_seconds()
        return elapsed > self.recheck_interval

    # =========================================================================
    # CHECKS
    # =========================================================================

    async def probe(self) -> bool:
        """Probe the remote store now and record the outcome."""
        reachable = await self._remote.probe()
        self.record_result(reachable)
        return reachable

    async def is_online(self) -> bool:
        """Cached reachability, re-probed when stale."""
        if self.is_stale():
            return await self.probe()
        return self._state.online

    def record_result(self, reachable: bool) -> None:
        """
        Fold an observed outcome into the state.

        Called by probe() and by the router after every remote attempt.
        """
        now = self._clock()
        was_online = self._state.online

        self._state.online = reachable
        self._state.last_checked_at = now
        if reachable:
            self._state.last_online_at = now
            self._state.consecutive_failures = 0
        else:
            self._state.consecutive_failures += 1

        if was_online != reachable:
            logger.info(
                f"Connection status changed: "
                f"{'online' if was_online else 'offline'} -> {self._state.status.value}"
            )
            if self._bus is not None:
                self._bus.publish(CONNECTION_STATUS_CHANGED, self.get_status_display())

    def force_offline(self) -> None:
        """Treat the remote store as unreachable until the next check."""
        self.record_result(False)
        logger.info("Forced offline mode")

    # =========================================================================
    # BACKGROUND MONITORING
    # =========================================================================

    def start_monitoring(self, interval: Optional[float] = None) -> asyncio.Task:
        """
        Probe periodically on the running loop.

        Returns:
            The monitoring task; cancel it or call stop_monitoring()
        """
        if self._monitor_task is not None and not self._monitor_task.done():
            return self._monitor_task

        period = interval if interval is not None else self.recheck_interval
        self._monitor_task = asyncio.get_running_loop().create_task(
            self._monitoring_loop(period), name="AvailabilityMonitor"
        )
        logger.debug("Connection monitoring started")
        return self._monitor_task

    async def stop_monitoring(self) -> None:
        task, self._monitor_task = self._monitor_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Connection monitoring stopped")

    async def _monitoring_loop(self, period: float) -> None:
        while True:
            await self.probe()
            await asyncio.sleep(period)

    def get_status_display(self) -> dict:
        """Get status information for UI display."""
        state = self._state
        return {
            "status": state.status.value,
            "is_online": state.online,
            "last_check": state.last_checked_at.isoformat() if state.last_checked_at else None,
            "last_online": state.last_online_at.isoformat() if state.last_online_at else None,
            "failures": state.consecutive_failures,
        }
