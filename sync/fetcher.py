"""
Calendar fetcher — read upcoming events from Microsoft Graph.

A 401 triggers exactly one token refresh and one retry of the same query;
there is no further retry loop.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

import httpx

from config.settings import config
from connectors.token_manager import TokenRefresher
from connectors.token_store import TokenStore
from sync.errors import AuthenticationExpired, FetchFailed, NotConnected
from utils.schemas import FetchResult, RemoteEvent

logger = logging.getLogger(__name__)

_SELECT_FIELDS = "id,subject,bodyPreview,start,end,location,onlineMeeting,isAllDay"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CalendarFetcher:
    def __init__(
        self,
        token_store: TokenStore,
        refresher: TokenRefresher,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        base_url: Optional[str] = None,
        page_size: Optional[int] = None,
        timeout: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = token_store
        self._refresher = refresher
        self._transport = transport
        self._base_url = (base_url or config.graph_base_url).rstrip("/")
        self._page_size = page_size or config.calendar_page_size
        self._timeout = timeout or config.http_timeout_seconds
        self._clock = clock

    def _params(self, now: datetime) -> dict:
        start = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        return {
            "$filter": f"start/dateTime ge '{start}'",
            "$orderby": "start/dateTime",
            "$top": str(self._page_size),
            "$select": _SELECT_FIELDS,
        }

    async def _query(self, client: httpx.AsyncClient, access_token: str, params: dict) -> httpx.Response:
        try:
            return await client.get(
                f"{self._base_url}/me/calendar/events",
                params=params,
                headers={
                    "Authorization": f"Bearer {access_token}",
                    "Accept": "application/json",
                    "Prefer": 'outlook.timezone="UTC"',
                },
            )
        except httpx.HTTPError as exc:
            logger.error("Microsoft Graph request failed: %s", exc)
            raise FetchFailed(None, str(exc)) from exc

    async def fetch(self, user_id: str) -> FetchResult:
        """
        Fetch up to one page of events starting at or after now.

        Raises NotConnected, AuthenticationExpired, FetchFailed, or any
        error of ``TokenRefresher.refresh``.
        """
        record = await self._store.get(user_id)
        if record is None or not record.access_token:
            raise NotConnected()

        now = self._clock()
        access_token = record.access_token
        refreshed = False
        if record.is_expired(now):
            logger.info("Stored token for user %s is past its expiry, refreshing first", user_id)
            access_token = await self._refresher.refresh(user_id)
            refreshed = True

        params = self._params(now)
        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            resp = await self._query(client, access_token, params)

            if resp.status_code == 401:
                if refreshed:
                    raise AuthenticationExpired()
                logger.info("Graph returned 401 for user %s, refreshing token", user_id)
                access_token = await self._refresher.refresh(user_id)
                resp = await self._query(client, access_token, params)
                if resp.status_code == 401:
                    logger.error("Graph still unauthorized after refresh for user %s", user_id)
                    raise AuthenticationExpired()

        if not resp.is_success:
            logger.error(
                "Microsoft Graph API error for user %s: status=%s body=%s",
                user_id, resp.status_code, resp.text,
            )
            raise FetchFailed(resp.status_code, resp.text)

        try:
            items = resp.json().get("value") or []
        except (ValueError, AttributeError) as exc:
            raise FetchFailed(resp.status_code, f"malformed response body: {exc}") from exc

        events = [RemoteEvent.from_graph(item) for item in items if isinstance(item, dict)]
        logger.info("Found %d meetings in Outlook for user %s", len(events), user_id)
        return FetchResult(events=events, total_found=len(events))
