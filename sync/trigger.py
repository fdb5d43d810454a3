"""
Sync trigger — the entry point that runs fetch → reconcile for one user.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Dict, Optional

from config.settings import config
from sync.fetcher import CalendarFetcher
from sync.reconciler import EventReconciler
from utils.schemas import SyncSummary

logger = logging.getLogger(__name__)


class SyncTrigger:
    """
    Runs Outlook syncs and throttles automatic ones.

    Automatic syncs for a user are skipped within ``min_interval`` seconds of
    that user's last successful sync; manual syncs always run. The throttle is
    in-process only.
    """

    def __init__(
        self,
        fetcher: CalendarFetcher,
        reconciler: EventReconciler,
        *,
        min_interval: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._fetcher = fetcher
        self._reconciler = reconciler
        self._min_interval = config.auto_sync_min_interval_seconds if min_interval is None else min_interval
        self._clock = clock
        self._last_success: Dict[str, float] = {}

    def is_throttled(self, user_id: str) -> bool:
        last = self._last_success.get(user_id)
        return last is not None and self._clock() - last < self._min_interval

    async def sync(self, user_id: str, manual: bool = True) -> SyncSummary:
        if not manual and self.is_throttled(user_id):
            logger.debug("Auto-sync for user %s throttled", user_id)
            return SyncSummary(throttled=True)

        logger.info("Syncing Outlook meetings for user %s (manual=%s)", user_id, manual)
        fetched = await self._fetcher.fetch(user_id)
        summary = await self._reconciler.reconcile(user_id, fetched.events)
        self._last_success[user_id] = self._clock()
        return summary
