"""
Token store — the single read/write interface for per-user Microsoft tokens.

The refresher and the calendar fetcher receive a ``TokenStore`` instead of
touching the database directly. ``SqlTokenStore`` persists records in
``user_connections`` with tokens encrypted by ``TokenCipher``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from connectors.encryption import TokenCipher
from database.helpers import ensure_user_exists, to_uuid
from database.models import UserConnection
from utils.schemas import ConnectionStatus, TokenRecord

logger = logging.getLogger(__name__)


class TokenStore(ABC):
    @abstractmethod
    async def get(self, user_id: str) -> Optional[TokenRecord]:
        """Return the stored record, or None if the user never connected."""
        ...

    @abstractmethod
    async def save(self, user_id: str, record: TokenRecord) -> None:
        """Overwrite the stored token pair (last write wins)."""
        ...

    @abstractmethod
    async def mark_status(self, user_id: str, status: str, error_message: Optional[str] = None) -> None:
        ...

    @abstractmethod
    async def list_connected_users(self) -> List[str]:
        """User ids with an active connection."""
        ...


class SqlTokenStore(TokenStore):
    """``TokenStore`` backed by the ``user_connections`` table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        cipher: TokenCipher,
        provider: str = "microsoft",
    ) -> None:
        self._session_factory = session_factory
        self._cipher = cipher
        self._provider = provider

    async def _load(self, session: AsyncSession, user_id: str) -> Optional[UserConnection]:
        result = await session.execute(
            select(UserConnection).where(
                UserConnection.user_id == to_uuid(user_id),
                UserConnection.provider == self._provider,
            )
        )
        return result.scalar_one_or_none()

    async def get(self, user_id: str) -> Optional[TokenRecord]:
        async with self._session_factory() as session:
            conn = await self._load(session, user_id)
        if conn is None or not conn.access_token:
            return None
        return TokenRecord(
            access_token=self._cipher.decrypt(conn.access_token),
            refresh_token=self._cipher.decrypt(conn.refresh_token) if conn.refresh_token else None,
            expires_at=conn.expires_at,
        )

    async def save(self, user_id: str, record: TokenRecord) -> None:
        async with self._session_factory() as session:
            conn = await self._load(session, user_id)
            if conn is None:
                logger.warning("No %s connection to update for user %s", self._provider, user_id)
                return
            conn.access_token = self._cipher.encrypt(record.access_token)
            if record.refresh_token:
                conn.refresh_token = self._cipher.encrypt(record.refresh_token)
            conn.expires_at = record.expires_at
            conn.last_refreshed = datetime.now(timezone.utc)
            conn.status = "active"
            conn.error_message = None
            await session.commit()

    async def mark_status(self, user_id: str, status: str, error_message: Optional[str] = None) -> None:
        async with self._session_factory() as session:
            conn = await self._load(session, user_id)
            if conn is None:
                return
            conn.status = status
            conn.error_message = error_message
            await session.commit()

    async def list_connected_users(self) -> List[str]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(UserConnection.user_id).where(
                    UserConnection.provider == self._provider,
                    UserConnection.status == "active",
                )
            )
            return [str(uid) for uid in result.scalars().all()]

    # ── Connection lifecycle (OAuth callback / settings page) ──────────

    async def store_connection(
        self,
        user_id: str,
        token_data: Dict[str, Any],
        expires_at: datetime,
    ) -> str:
        """
        Store a new connection or replace the tokens of an existing one.

        ``token_data`` is the output of ``connector.handle_callback()``.
        Returns the connection id.
        """
        async with self._session_factory() as session:
            try:
                await ensure_user_exists(session, user_id)
                conn = await self._load(session, user_id)
                refresh_token = token_data.get("refresh_token")
                if conn is None:
                    conn = UserConnection(
                        user_id=to_uuid(user_id),
                        provider=self._provider,
                        access_token=self._cipher.encrypt(token_data["access_token"]),
                        refresh_token=self._cipher.encrypt(refresh_token) if refresh_token else None,
                        token_type="Bearer",
                    )
                    session.add(conn)
                    logger.info("Created %s connection for user %s", self._provider, user_id)
                else:
                    conn.access_token = self._cipher.encrypt(token_data["access_token"])
                    if refresh_token:
                        conn.refresh_token = self._cipher.encrypt(refresh_token)
                    logger.info("Updated %s connection for user %s", self._provider, user_id)

                conn.expires_at = expires_at
                conn.account_id = token_data.get("account_id", "")
                conn.account_label = token_data.get("account_label") or conn.account_label
                conn.scopes = token_data.get("scopes", [])
                conn.provider_meta = token_data.get("provider_meta", {})
                conn.status = "active"
                conn.error_message = None
                conn.connected_at = datetime.now(timezone.utc)
                await session.flush()
                conn_id = str(conn.connection_id)
                await session.commit()
                return conn_id
            except Exception as exc:
                logger.error("store_connection error: %s", exc)
                await session.rollback()
                raise

    async def get_status(self, user_id: str) -> ConnectionStatus:
        """Connection summary for the settings page (no tokens exposed)."""
        async with self._session_factory() as session:
            conn = await self._load(session, user_id)
        if conn is None:
            return ConnectionStatus(connected=False, provider=self._provider)
        return ConnectionStatus(
            connected=conn.status == "active",
            provider=self._provider,
            account_label=conn.account_label,
            status=conn.status,
            expires_at=conn.expires_at,
            last_refreshed=conn.last_refreshed,
            error_message=conn.error_message,
        )

    async def delete(self, user_id: str) -> bool:
        """Remove the connection. Returns False if there was none."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(UserConnection).where(
                    UserConnection.user_id == to_uuid(user_id),
                    UserConnection.provider == self._provider,
                )
            )
            await session.commit()
        deleted = (result.rowcount or 0) > 0
        if deleted:
            logger.info("Disconnected %s for user %s", self._provider, user_id)
        return deleted
