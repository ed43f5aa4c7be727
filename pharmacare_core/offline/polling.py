# =============================================================================
# pharmacare_core/offline/polling.py
# Change Polling for Collections
# =============================================================================
"""
CollectionPoller - repeatedly fetch a collection and report real changes.

The fetch runs once immediately, then every ``interval`` seconds. The callback
fires only when the md5 of the canonical JSON differs from the last one seen.
"""

from __future__ import annotations
import asyncio
import hashlib
import json
from typing import Any, Awaitable, Callable, Optional
import logging

logger = logging.getLogger(__name__)

Fetch = Callable[[], Awaitable[Any]]
ChangeCallback = Callable[[Any], None]


def content_hash(data: Any) -> str:
    """md5 of the canonical JSON encoding (sorted keys, no whitespace)."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()


class PollingHandle:
    """Cancel handle returned by CollectionPoller.start()."""

    def __init__(self, task: asyncio.Task):
        self._task = task

    @property
    def active(self) -> bool:
        return not self._task.done()

    def cancel(self) -> None:
        self._task.cancel()

    async def wait_closed(self) -> None:
        """Cancel and wait for the polling task to finish."""
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class CollectionPoller:
    """
    Usage:
        poller = CollectionPoller(lambda: router.read_all("prescriptions"), on_change, 3.0)
        handle = poller.start()
        ...
        handle.cancel()
    """

    def __init__(
        self,
        fetch: Fetch,
        callback: ChangeCallback,
        interval: float = 3.0,
        name: str = "collection",
    ):
        self._fetch = fetch
        self._callback = callback
        self.interval = interval
        self.name = name
        self._last_hash: Optional[str] = None

    async def poll_once(self) -> bool:
        """
        Fetch once; invoke the callback when the data changed.

        Returns:
            True if the callback fired
        """
        try:
            data = await self._fetch()
        except Exception as e:
            logger.warning(f"Polling {self.name} failed: {e}")
            return False

        digest = content_hash(data)
        if digest == self._last_hash:
            return False
        self._last_hash = digest

        try:
            self._callback(data)
        except Exception as e:
            logger.error(f"Polling callback for {self.name} failed: {e}")
        return True

    async def _run(self) -> None:
        while True:
            await self.poll_once()
            await asyncio.sleep(self.interval)

    def start(self) -> PollingHandle:
        """Schedule polling on the running loop."""
        task = asyncio.get_running_loop().create_task(
            self._run(), name=f"poll-{self.name}"
        )
        logger.debug(f"Polling {self.name} every {self.interval}s")
        return PollingHandle(task)
