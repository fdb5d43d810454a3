"""
FastAPI dependencies — process-wide sync components.

The trigger and refresher hold in-memory throttle / rate-limit state, so a
single instance of each is shared by every request and the scheduler.
"""

from __future__ import annotations

from typing import Optional

from config.settings import config
from connectors.encryption import get_cipher
from connectors.microsoft import MicrosoftConnector
from connectors.registry import ConnectorRegistry
from connectors.token_manager import TokenRefresher
from connectors.token_store import SqlTokenStore
from database.meetings import SqlMeetingStore
from database.session import async_session_factory
from sync.fetcher import CalendarFetcher
from sync.reconciler import EventReconciler
from sync.trigger import SyncTrigger

_token_store: Optional[SqlTokenStore] = None
_meeting_store: Optional[SqlMeetingStore] = None
_sync_trigger: Optional[SyncTrigger] = None


def get_token_store() -> SqlTokenStore:
    global _token_store
    if _token_store is None:
        _token_store = SqlTokenStore(async_session_factory, get_cipher())
    return _token_store


def get_meeting_store() -> SqlMeetingStore:
    global _meeting_store
    if _meeting_store is None:
        _meeting_store = SqlMeetingStore(async_session_factory)
    return _meeting_store


def get_sync_trigger() -> SyncTrigger:
    global _sync_trigger
    if _sync_trigger is None:
        token_store = get_token_store()
        connector = ConnectorRegistry().get("microsoft") or MicrosoftConnector(
            timeout=config.http_timeout_seconds,
        )
        refresher = TokenRefresher(token_store, connector)
        _sync_trigger = SyncTrigger(
            CalendarFetcher(token_store, refresher),
            EventReconciler(get_meeting_store()),
        )
    return _sync_trigger
