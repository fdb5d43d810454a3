"""
Meeting store — persistence for LocalMeetings used by the reconciler and API.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Set

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.helpers import ensure_user_exists, to_uuid
from database.models import Meeting
from utils.schemas import MeetingOut, NewMeeting

logger = logging.getLogger(__name__)


class MeetingStore(ABC):
    @abstractmethod
    async def existing_remote_ids(self, user_id: str) -> Set[str]:
        """All non-null ``outlook_event_id`` values among the user's meetings."""
        ...

    @abstractmethod
    async def insert(self, user_id: str, meeting: NewMeeting) -> Optional[str]:
        """
        Insert if absent.

        Returns the new meeting id, or None when a meeting with the same
        ``outlook_event_id`` already exists for the user.
        """
        ...


class SqlMeetingStore(MeetingStore):
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def existing_remote_ids(self, user_id: str) -> Set[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Meeting.outlook_event_id).where(
                    Meeting.created_by == to_uuid(user_id),
                    Meeting.outlook_event_id.is_not(None),
                )
            )
            return set(result.scalars().all())

    async def insert(self, user_id: str, meeting: NewMeeting) -> Optional[str]:
        async with self._session_factory() as session:
            await ensure_user_exists(session, user_id)
            stmt = (
                pg_insert(Meeting)
                .values(created_by=to_uuid(user_id), **meeting.model_dump())
                .on_conflict_do_nothing(constraint="uq_meetings_owner_outlook_event")
                .returning(Meeting.meeting_id)
            )
            result = await session.execute(stmt)
            meeting_id = result.scalar_one_or_none()
            await session.commit()
        return str(meeting_id) if meeting_id is not None else None

    async def list_for_user(self, user_id: str, limit: int = 200) -> List[MeetingOut]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Meeting)
                .where(Meeting.created_by == to_uuid(user_id))
                .order_by(Meeting.start_time.asc())
                .limit(limit)
            )
            rows = result.scalars().all()
        return [
            MeetingOut(
                meeting_id=str(row.meeting_id),
                title=row.title,
                description=row.description,
                start_time=row.start_time,
                end_time=row.end_time,
                location=row.location,
                meeting_type=row.meeting_type,
                status=row.status,
                outlook_event_id=row.outlook_event_id,
                teams_join_url=row.teams_join_url,
            )
            for row in rows
        ]

    async def delete(self, user_id: str, meeting_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(Meeting).where(
                    Meeting.meeting_id == to_uuid(meeting_id),
                    Meeting.created_by == to_uuid(user_id),
                )
            )
            await session.commit()
        return (result.rowcount or 0) > 0
