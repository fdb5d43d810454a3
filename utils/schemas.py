"""
Pydantic schemas shared by the connectors, the sync pipeline and the API.
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

# Graph returns up to 7 fractional digits ("2024-05-01T10:00:00.0000000").
_FRACTION_RE = re.compile(r"\.(\d{6})\d+")


def parse_graph_datetime(value: Any) -> Optional[datetime]:
    """
    Parse a Graph ``dateTimeTimeZone.dateTime`` string as UTC.

    Returns None for missing or unparseable values.
    """
    if not value or not isinstance(value, str):
        return None
    text = _FRACTION_RE.sub(r".\1", value.strip())
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


# ═══════════════════════════════════════════════════════════════════════════════
# Credentials
# ═══════════════════════════════════════════════════════════════════════════════


class TokenRecord(BaseModel):
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at is not None and self.expires_at <= now


# ═══════════════════════════════════════════════════════════════════════════════
# Calendar sync
# ═══════════════════════════════════════════════════════════════════════════════


class RemoteEvent(BaseModel):
    """A calendar entry as returned by Microsoft Graph, not yet imported."""

    remote_id: str
    subject: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    is_all_day: bool = False
    online_meeting_url: Optional[str] = None
    online_meeting_id: Optional[str] = None
    location: Optional[str] = None
    body_preview: Optional[str] = None

    @classmethod
    def from_graph(cls, payload: Dict[str, Any]) -> "RemoteEvent":
        online = payload.get("onlineMeeting") or {}
        location = payload.get("location") or {}
        body = payload.get("body") or {}
        return cls(
            remote_id=str(payload.get("id") or ""),
            subject=payload.get("subject"),
            start_time=parse_graph_datetime((payload.get("start") or {}).get("dateTime")),
            end_time=parse_graph_datetime((payload.get("end") or {}).get("dateTime")),
            is_all_day=bool(payload.get("isAllDay", False)),
            online_meeting_url=online.get("joinUrl") or None,
            online_meeting_id=online.get("conferenceId") or None,
            location=location.get("displayName") or None,
            body_preview=payload.get("bodyPreview") or body.get("content") or None,
        )


class FetchResult(BaseModel):
    events: List[RemoteEvent] = Field(default_factory=list)
    total_found: int = 0


class NewMeeting(BaseModel):
    """Values for a LocalMeeting created from a RemoteEvent."""

    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    meeting_type: str = "physical"  # "online" | "physical"
    status: str = "scheduled"
    outlook_event_id: Optional[str] = None
    teams_join_url: Optional[str] = None
    teams_meeting_id: Optional[str] = None


class SyncSummary(BaseModel):
    synced_count: int = 0
    skipped_count: int = 0
    total_found: int = 0
    throttled: bool = False

    def to_response(self) -> Dict[str, Any]:
        return {
            "success": True,
            "syncedCount": self.synced_count,
            "skippedCount": self.skipped_count,
            "totalFound": self.total_found,
            "throttled": self.throttled,
        }


# ═══════════════════════════════════════════════════════════════════════════════
# API
# ═══════════════════════════════════════════════════════════════════════════════


class SyncRequest(BaseModel):
    user_id: Optional[str] = None
    manual: bool = True


class MeetingOut(BaseModel):
    meeting_id: str
    title: str
    description: Optional[str] = None
    start_time: datetime
    end_time: datetime
    location: Optional[str] = None
    meeting_type: str
    status: str
    outlook_event_id: Optional[str] = None
    teams_join_url: Optional[str] = None


class ConnectionStatus(BaseModel):
    connected: bool
    provider: str = "microsoft"
    account_label: Optional[str] = None
    status: Optional[str] = None
    expires_at: Optional[datetime] = None
    last_refreshed: Optional[datetime] = None
    error_message: Optional[str] = None
