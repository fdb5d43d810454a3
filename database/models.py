"""
SQLAlchemy ORM models for users, OAuth connections and meetings.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import ARRAY, JSONB, UUID
from sqlalchemy.orm import DeclarativeBase, relationship


class Base(DeclarativeBase):
    pass


class User(Base):
    __tablename__ = "users"

    user_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    display_name = Column(String(128))
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    connections = relationship("UserConnection", back_populates="user", cascade="all, delete-orphan")
    meetings = relationship("Meeting", back_populates="owner", cascade="all, delete-orphan")


class UserConnection(Base):
    """One OAuth token pair per (user, provider)."""

    __tablename__ = "user_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "provider", name="uq_user_connections_user_provider"),
    )

    connection_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    provider = Column(String(32), nullable=False)
    account_label = Column(String(256))
    account_id = Column(String(256))
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text)
    token_type = Column(String(32), default="Bearer")
    expires_at = Column(DateTime(timezone=True))
    scopes = Column(ARRAY(Text), default=list)
    provider_meta = Column(JSONB, default=dict)
    status = Column(String(16), nullable=False, default="active")
    connected_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    last_refreshed = Column(DateTime(timezone=True))
    error_message = Column(Text)

    user = relationship("User", back_populates="connections")


class Meeting(Base):
    __tablename__ = "meetings"
    __table_args__ = (
        # NULLs are distinct in PostgreSQL, so manually created meetings
        # (no outlook_event_id) are unaffected.
        UniqueConstraint("created_by", "outlook_event_id", name="uq_meetings_owner_outlook_event"),
        Index("ix_meetings_owner_start", "created_by", "start_time"),
    )

    meeting_id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    created_by = Column(UUID(as_uuid=True), ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False)
    title = Column(Text, nullable=False)
    description = Column(Text)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    location = Column(Text)
    meeting_type = Column(String(16), nullable=False, default="physical")
    status = Column(String(16), nullable=False, default="scheduled")
    outlook_event_id = Column(Text, nullable=True)
    teams_join_url = Column(Text)
    teams_meeting_id = Column(Text)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    owner = relationship("User", back_populates="meetings")
