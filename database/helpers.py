"""
Database helper functions — ensure parent records exist.
"""

from __future__ import annotations

import uuid

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.ext.asyncio import AsyncSession

from database.models import User


def to_uuid(value: str | uuid.UUID) -> uuid.UUID:
    return uuid.UUID(value) if isinstance(value, str) else value


async def ensure_user_exists(session: AsyncSession, user_id: str) -> None:
    """Create a ``User`` row if one does not already exist (idempotent)."""
    uid = to_uuid(user_id)
    stmt = (
        pg_insert(User)
        .values(
            user_id=uid,
            email=f"{uid}@meeting-sync.local",
            display_name=f"User {str(uid)[:8]}",
        )
        .on_conflict_do_nothing(index_elements=["user_id"])
    )
    await session.execute(stmt)
    await session.flush()
