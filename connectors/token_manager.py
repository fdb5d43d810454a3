"""
Token manager — refresh and store per-user Microsoft tokens.

``TokenRefresher`` is the only component that rotates tokens after the
initial connection. ``connect_account`` handles that initial connection.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from config.settings import config
from connectors.base import BaseConnector, InvalidGrantError, parse_expires_in
from connectors.token_store import SqlTokenStore, TokenStore
from sync.errors import NotConnected, RateLimited, RefreshFailed, RefreshTokenExpired
from sync.rate_limit import RollingWindowLimiter
from sync.retry import RetryExhausted, RetryPolicy, linear_backoff, retry
from utils.schemas import TokenRecord

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def default_exchange_policy() -> RetryPolicy:
    """3 attempts, attempt × 1s backoff, never retry a dead refresh token."""
    return RetryPolicy(
        max_attempts=config.refresh_max_attempts,
        backoff=linear_backoff(config.refresh_backoff_seconds),
        retry_on=lambda exc: not isinstance(exc, InvalidGrantError),
    )


def compute_expiry(expires_in: int, now: datetime) -> datetime:
    """Provider lifetime minus the safety buffer, so tokens count as expired early."""
    return now + timedelta(seconds=expires_in - config.token_expiry_buffer_seconds)


async def _checked_exchange(exchange: Callable[[], Awaitable[Dict[str, Any]]]) -> Dict[str, Any]:
    """Run one token exchange and reject a response that cannot be stored."""
    data = await exchange()
    if not isinstance(data, dict) or not data.get("access_token"):
        raise ValueError("Token response missing access_token")
    return dict(data, expires_in=parse_expires_in(data))


class TokenRefresher:
    """Exchange a user's stored refresh token for a new access token."""

    def __init__(
        self,
        token_store: TokenStore,
        connector: BaseConnector,
        *,
        limiter: Optional[RollingWindowLimiter] = None,
        policy: Optional[RetryPolicy] = None,
        clock: Callable[[], datetime] = _utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._store = token_store
        self._connector = connector
        self._limiter = limiter or RollingWindowLimiter(
            config.refresh_rate_limit, config.refresh_rate_window_seconds,
        )
        self._policy = policy or default_exchange_policy()
        self._clock = clock
        self._sleep = sleep

    async def refresh(self, user_id: str) -> str:
        """
        Refresh and persist the user's tokens, returning the new access token.

        Raises
        ------
        RateLimited
            More than the allowed refreshes in the rolling window.
        NotConnected
            No stored refresh token.
        RefreshTokenExpired
            Provider answered ``invalid_grant``; the user must reconnect.
        RefreshFailed
            Every attempt failed for another reason.
        """
        if not self._limiter.allow(user_id):
            logger.error("Token refresh rate limit exceeded for user %s", user_id)
            raise RateLimited()

        record = await self._store.get(user_id)
        if record is None or not record.refresh_token:
            raise NotConnected()

        logger.info("Refreshing Microsoft token for user %s", user_id)
        try:
            data = await retry(
                lambda: _checked_exchange(
                    lambda: self._connector.refresh_access_token(record.refresh_token)
                ),
                self._policy,
                sleep=self._sleep,
                label=f"token refresh [{user_id}]",
            )
        except InvalidGrantError as exc:
            logger.warning("Refresh token rejected for user %s: %s", user_id, exc)
            await self._store.mark_status(user_id, "expired", "Refresh token expired")
            raise RefreshTokenExpired() from exc
        except RetryExhausted as exc:
            logger.error("All token refresh attempts failed for user %s", user_id)
            raise RefreshFailed(exc.last_error, exc.attempts) from exc.last_error

        new_record = TokenRecord(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or record.refresh_token,
            expires_at=compute_expiry(data["expires_in"], self._clock()),
        )
        await self._store.save(user_id, new_record)
        logger.info("Microsoft tokens refreshed for user %s", user_id)
        return new_record.access_token


async def connect_account(
    user_id: str,
    code: str,
    connector: BaseConnector,
    token_store: SqlTokenStore,
    *,
    policy: Optional[RetryPolicy] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> dict:
    """
    Complete the OAuth authorization-code flow and store the connection.

    Returns the connector's token data (account label etc.).
    """
    token_data = await retry(
        lambda: _checked_exchange(lambda: connector.handle_callback(code)),
        policy or RetryPolicy(
            max_attempts=config.refresh_max_attempts,
            backoff=linear_backoff(config.refresh_backoff_seconds),
        ),
        sleep=sleep,
        label=f"code exchange [{user_id}]",
    )
    expires_at = compute_expiry(token_data["expires_in"], _utcnow())
    await token_store.store_connection(user_id, token_data, expires_at)
    return token_data
