"""
Tests for MicrosoftConnector HTTP exchanges (httpx.MockTransport).
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from config.settings import config
from connectors.base import InvalidGrantError
from connectors.microsoft import MicrosoftConnector


def _connector(handler) -> MicrosoftConnector:
    return MicrosoftConnector(transport=httpx.MockTransport(handler))


class TestRefreshAccessToken:
    @pytest.mark.asyncio
    async def test_posts_refresh_grant_form(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["form"] = parse_qs(request.content.decode())
            return httpx.Response(200, json={"access_token": "a2", "refresh_token": "r2", "expires_in": 3599})

        data = await _connector(handler).refresh_access_token("r1")

        assert data == {"access_token": "a2", "expires_in": 3599, "refresh_token": "r2"}
        assert seen["url"] == config.microsoft_token_url
        assert seen["form"]["grant_type"] == ["refresh_token"]
        assert seen["form"]["refresh_token"] == ["r1"]
        assert "offline_access" in seen["form"]["scope"][0]

    @pytest.mark.asyncio
    async def test_missing_refresh_token_in_response(self):
        def handler(request):
            return httpx.Response(200, json={"access_token": "a2", "expires_in": 3599})

        data = await _connector(handler).refresh_access_token("r1")
        assert data["refresh_token"] is None

    @pytest.mark.asyncio
    async def test_invalid_grant_raises_invalid_grant_error(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_grant", "error_description": "AADSTS70008"})

        with pytest.raises(InvalidGrantError):
            await _connector(handler).refresh_access_token("r1")

    @pytest.mark.asyncio
    async def test_other_400_is_http_error(self):
        def handler(request):
            return httpx.Response(400, json={"error": "invalid_request"})

        with pytest.raises(httpx.HTTPStatusError):
            await _connector(handler).refresh_access_token("r1")

    @pytest.mark.asyncio
    async def test_server_error_is_http_error(self):
        def handler(request):
            return httpx.Response(503, text="unavailable")

        with pytest.raises(httpx.HTTPStatusError):
            await _connector(handler).refresh_access_token("r1")

    @pytest.mark.asyncio
    async def test_malformed_body_is_value_error(self):
        def handler(request):
            return httpx.Response(200, json={"token_type": "Bearer"})

        with pytest.raises(ValueError):
            await _connector(handler).refresh_access_token("r1")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("expires_in", ["soon", None, -5])
    async def test_invalid_expires_in_is_value_error(self, expires_in):
        def handler(request):
            return httpx.Response(200, json={"access_token": "a2", "expires_in": expires_in})

        with pytest.raises(ValueError, match="expires_in"):
            await _connector(handler).refresh_access_token("r1")

    @pytest.mark.asyncio
    async def test_expires_in_is_normalised_to_int(self):
        def handler(request):
            return httpx.Response(200, json={"access_token": "a2", "expires_in": "3599"})

        data = await _connector(handler).refresh_access_token("r1")
        assert data["expires_in"] == 3599


class TestAuthorizationFlow:
    def test_auth_url_carries_state_and_scopes(self):
        url = MicrosoftConnector().get_auth_url("state-123")
        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        assert url.startswith(config.microsoft_authorize_url)
        assert query["state"] == ["state-123"]
        assert query["response_type"] == ["code"]
        assert query["redirect_uri"][0].endswith("/api/v1/connectors/microsoft/callback")
        assert "offline_access" in query["scope"][0]

    @pytest.mark.asyncio
    async def test_handle_callback_reads_profile(self):
        def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path.endswith("/token"):
                form = parse_qs(request.content.decode())
                assert form["grant_type"] == ["authorization_code"]
                assert form["code"] == ["auth-code"]
                return httpx.Response(200, json={
                    "access_token": "a1", "refresh_token": "r1", "expires_in": 3600,
                    "scope": "User.Read Calendars.ReadWrite",
                })
            assert request.headers["Authorization"] == "Bearer a1"
            return httpx.Response(200, json={"id": "ms-42", "mail": "devotee@example.org", "displayName": "Devotee"})

        data = await _connector(handler).handle_callback("auth-code")

        assert data["access_token"] == "a1"
        assert data["refresh_token"] == "r1"
        assert data["account_id"] == "ms-42"
        assert data["account_label"] == "devotee@example.org"
        assert data["scopes"] == ["User.Read", "Calendars.ReadWrite"]
