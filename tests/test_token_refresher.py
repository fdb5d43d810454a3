"""
Tests for TokenRefresher — retry, invalid_grant, rate limiting, persistence.
"""

from datetime import timedelta

import httpx
import pytest

from connectors.base import InvalidGrantError
from connectors.token_manager import TokenRefresher
from helpers import NOW, USER_ID, ScriptedConnector
from sync.errors import NotConnected, RateLimited, RefreshFailed, RefreshTokenExpired
from sync.rate_limit import RollingWindowLimiter


def _refresher(token_store, connector, clock, sleep, limiter=None):
    return TokenRefresher(
        token_store,
        connector,
        limiter=limiter or RollingWindowLimiter(10, 300, clock=lambda: 0.0),
        clock=clock,
        sleep=sleep,
    )


class TestRefreshSuccess:
    @pytest.mark.asyncio
    async def test_returns_and_persists_new_pair(self, token_store, clock, sleep):
        connector = ScriptedConnector([
            {"access_token": "access-2", "refresh_token": "refresh-2", "expires_in": 3600},
        ])
        token = await _refresher(token_store, connector, clock, sleep).refresh(USER_ID)

        assert token == "access-2"
        stored = token_store.records[USER_ID]
        assert stored.access_token == "access-2"
        assert stored.refresh_token == "refresh-2"
        assert connector.refresh_calls == ["refresh-1"]

    @pytest.mark.asyncio
    async def test_expiry_has_ten_minute_buffer(self, token_store, clock, sleep):
        connector = ScriptedConnector([{"access_token": "a", "expires_in": 3600}])
        await _refresher(token_store, connector, clock, sleep).refresh(USER_ID)
        assert token_store.records[USER_ID].expires_at == NOW + timedelta(seconds=3000)

    @pytest.mark.asyncio
    async def test_keeps_old_refresh_token_when_not_rotated(self, token_store, clock, sleep):
        connector = ScriptedConnector([{"access_token": "a", "expires_in": 3600}])
        await _refresher(token_store, connector, clock, sleep).refresh(USER_ID)
        assert token_store.records[USER_ID].refresh_token == "refresh-1"

    @pytest.mark.asyncio
    async def test_transient_errors_are_retried_with_linear_backoff(self, token_store, clock, sleep):
        connector = ScriptedConnector([
            httpx.ConnectError("down"),
            ValueError("malformed"),
            {"access_token": "a", "expires_in": 3600},
        ])
        token = await _refresher(token_store, connector, clock, sleep).refresh(USER_ID)
        assert token == "a"
        assert len(connector.refresh_calls) == 3
        assert sleep.delays == [1.0, 2.0]


class TestRefreshFailures:
    @pytest.mark.asyncio
    async def test_not_connected_without_record(self, token_store, clock, sleep):
        token_store.records.clear()
        connector = ScriptedConnector()
        with pytest.raises(NotConnected):
            await _refresher(token_store, connector, clock, sleep).refresh(USER_ID)
        assert connector.refresh_calls == []

    @pytest.mark.asyncio
    async def test_not_connected_without_refresh_token(self, token_store, clock, sleep):
        token_store.records[USER_ID] = token_store.records[USER_ID].model_copy(update={"refresh_token": None})
        with pytest.raises(NotConnected):
            await _refresher(token_store, ScriptedConnector(), clock, sleep).refresh(USER_ID)

    @pytest.mark.asyncio
    async def test_invalid_grant_is_terminal_after_one_call(self, token_store, clock, sleep):
        connector = ScriptedConnector([InvalidGrantError("invalid_grant")])
        with pytest.raises(RefreshTokenExpired):
            await _refresher(token_store, connector, clock, sleep).refresh(USER_ID)
        assert len(connector.refresh_calls) == 1
        assert sleep.delays == []
        assert token_store.statuses[USER_ID] == "expired"
        assert token_store.saves == []

    @pytest.mark.asyncio
    async def test_exhausted_retries_raise_refresh_failed(self, token_store, clock, sleep):
        last = httpx.ConnectError("still down")
        connector = ScriptedConnector([RuntimeError("500"), RuntimeError("502"), last])
        with pytest.raises(RefreshFailed) as info:
            await _refresher(token_store, connector, clock, sleep).refresh(USER_ID)
        assert info.value.last_error is last
        assert info.value.attempts == 3
        assert info.value.status_code == 502
        assert len(connector.refresh_calls) == 3
        assert token_store.saves == []

    @pytest.mark.asyncio
    async def test_eleventh_refresh_in_window_is_rate_limited(self, token_store, clock, sleep):
        connector = ScriptedConnector()
        refresher = _refresher(token_store, connector, clock, sleep)
        for _ in range(10):
            await refresher.refresh(USER_ID)
        assert len(connector.refresh_calls) == 10

        with pytest.raises(RateLimited):
            await refresher.refresh(USER_ID)
        assert len(connector.refresh_calls) == 10

    @pytest.mark.asyncio
    async def test_rate_limit_is_per_user(self, token_store, clock, sleep):
        connector = ScriptedConnector()
        limiter = RollingWindowLimiter(1, 300, clock=lambda: 0.0)
        token_store.records["other-user"] = token_store.records[USER_ID]
        refresher = _refresher(token_store, connector, clock, sleep, limiter=limiter)

        await refresher.refresh(USER_ID)
        await refresher.refresh("other-user")
        with pytest.raises(RateLimited):
            await refresher.refresh(USER_ID)

    @pytest.mark.asyncio
    @pytest.mark.parametrize("expires_in", ["soon", None, 0])
    async def test_unusable_expires_in_is_retried_then_refresh_failed(
        self, token_store, clock, sleep, expires_in
    ):
        bad = {"access_token": "a", "expires_in": expires_in}
        connector = ScriptedConnector([bad, bad, bad])
        with pytest.raises(RefreshFailed) as info:
            await _refresher(token_store, connector, clock, sleep).refresh(USER_ID)
        assert isinstance(info.value.last_error, ValueError)
        assert info.value.attempts == 3
        assert len(connector.refresh_calls) == 3
        assert token_store.saves == []

    @pytest.mark.asyncio
    async def test_numeric_string_expires_in_is_accepted(self, token_store, clock, sleep):
        connector = ScriptedConnector([{"access_token": "a", "expires_in": "3600"}])
        await _refresher(token_store, connector, clock, sleep).refresh(USER_ID)
        assert token_store.records[USER_ID].expires_at == NOW + timedelta(seconds=3000)
