"""
Test doubles — in-memory stores, a scripted connector, a fake clock.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Set

from connectors.base import BaseConnector
from connectors.token_store import TokenStore
from database.meetings import MeetingStore
from utils.schemas import NewMeeting, TokenRecord

NOW = datetime(2030, 1, 1, 9, 0, tzinfo=timezone.utc)
USER_ID = "2b7c4f1e-8d4a-4c59-9a55-0f4b1f6f3d21"


class FakeClock:
    def __init__(self, start: datetime = NOW) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeTokenStore(TokenStore):
    def __init__(self) -> None:
        self.records: Dict[str, TokenRecord] = {}
        self.statuses: Dict[str, str] = {}
        self.saves: List[TokenRecord] = []
        self.gets = 0

    async def get(self, user_id: str) -> Optional[TokenRecord]:
        self.gets += 1
        return self.records.get(user_id)

    async def save(self, user_id: str, record: TokenRecord) -> None:
        self.records[user_id] = record
        self.saves.append(record)

    async def mark_status(self, user_id: str, status: str, error_message: Optional[str] = None) -> None:
        self.statuses[user_id] = status

    async def list_connected_users(self) -> List[str]:
        return list(self.records)


class FakeMeetingStore(MeetingStore):
    def __init__(self) -> None:
        self.meetings: Dict[str, Dict[str, Any]] = {}
        self.fail_on: Set[str] = set()
        self.existing_queries = 0

    async def existing_remote_ids(self, user_id: str) -> Set[str]:
        self.existing_queries += 1
        return {
            m["outlook_event_id"]
            for m in self.meetings.values()
            if m["created_by"] == user_id and m["outlook_event_id"]
        }

    async def insert(self, user_id: str, meeting: NewMeeting) -> Optional[str]:
        if meeting.outlook_event_id in self.fail_on:
            raise RuntimeError("insert failed")
        for m in self.meetings.values():
            if m["created_by"] == user_id and m["outlook_event_id"] == meeting.outlook_event_id:
                return None
        meeting_id = str(uuid.uuid4())
        self.meetings[meeting_id] = {"created_by": user_id, **meeting.model_dump()}
        return meeting_id

    def by_remote_id(self, remote_id: str) -> List[Dict[str, Any]]:
        return [m for m in self.meetings.values() if m["outlook_event_id"] == remote_id]

    def delete_by_remote_id(self, remote_id: str) -> None:
        for meeting_id, m in list(self.meetings.items()):
            if m["outlook_event_id"] == remote_id:
                del self.meetings[meeting_id]


class ScriptedConnector(BaseConnector):
    """Connector whose refresh results are popped from ``script`` (dicts or exceptions)."""

    def __init__(self, script: Optional[list] = None) -> None:
        super().__init__()
        self.script = list(script or [])
        self.refresh_calls: List[str] = []

    @property
    def provider_name(self) -> str:
        return "microsoft"

    @property
    def display_name(self) -> str:
        return "Microsoft Outlook"

    @property
    def scopes(self) -> List[str]:
        return ["offline_access"]

    def get_auth_url(self, state: str) -> str:
        return f"https://login.example/authorize?state={state}"

    async def handle_callback(self, code: str) -> Dict[str, Any]:
        raise NotImplementedError

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        self.refresh_calls.append(refresh_token)
        result = self.script.pop(0) if self.script else {"access_token": "new-token", "expires_in": 3600}
        if isinstance(result, BaseException):
            raise result
        return result


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def graph_event(
    remote_id: str,
    start: str = "2030-01-01T10:00:00.0000000",
    end: str = "2030-01-01T11:00:00.0000000",
    *,
    subject: str = "Board meeting",
    is_all_day: bool = False,
    join_url: Optional[str] = None,
) -> Dict[str, Any]:
    """A Graph calendar event payload as returned with ``Prefer: outlook.timezone="UTC"``."""
    return {
        "id": remote_id,
        "subject": subject,
        "bodyPreview": "Agenda attached",
        "start": {"dateTime": start, "timeZone": "UTC"} if start else None,
        "end": {"dateTime": end, "timeZone": "UTC"} if end else None,
        "isAllDay": is_all_day,
        "location": {"displayName": "Temple hall"},
        "onlineMeeting": {"joinUrl": join_url, "conferenceId": "123"} if join_url else None,
    }


