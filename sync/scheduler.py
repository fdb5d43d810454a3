"""
Background auto-sync: periodically syncs every connected user.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from sync.errors import SyncError
from sync.trigger import SyncTrigger

logger = logging.getLogger(__name__)


class AutoSyncScheduler:
    def __init__(
        self,
        trigger: SyncTrigger,
        list_users: Callable[[], Awaitable[List[str]]],
        interval: float,
    ) -> None:
        self._trigger = trigger
        self._list_users = list_users
        self._interval = interval
        self._task: Optional[asyncio.Task] = None

    async def run_once(self) -> int:
        """Run one automatic round. Returns the number of users actually synced."""
        synced = 0
        for user_id in await self._list_users():
            try:
                summary = await self._trigger.sync(user_id, manual=False)
            except SyncError as exc:
                logger.warning("Auto-sync failed for user %s at %s: %s", user_id, exc.stage, exc.message)
                continue
            except Exception:
                logger.exception("Auto-sync crashed for user %s", user_id)
                continue
            if not summary.throttled:
                synced += 1
        return synced

    async def _loop(self) -> None:
        while True:
            try:
                count = await self.run_once()
                logger.debug("Auto-sync round finished: %d users synced", count)
            except Exception:
                logger.exception("Auto-sync round failed")
            await asyncio.sleep(self._interval)

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._loop())
            logger.info("Auto-sync scheduler started (every %ss)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Auto-sync scheduler stopped")
