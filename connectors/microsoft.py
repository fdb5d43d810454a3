"""
MicrosoftConnector — OAuth2 web flow for Microsoft 365 (Outlook calendar).

Each public method performs a single HTTP exchange; retrying is left to
callers through ``sync.retry``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List
from urllib.parse import urlencode

import httpx

from config.settings import config
from connectors.base import BaseConnector, InvalidGrantError, parse_expires_in

logger = logging.getLogger(__name__)

_USER_AGENT = "MeetingSync/1.0"


class MicrosoftConnector(BaseConnector):
    """OAuth2 connector for Microsoft identity platform + Graph."""

    @property
    def provider_name(self) -> str:
        return "microsoft"

    @property
    def display_name(self) -> str:
        return "Microsoft Outlook"

    @property
    def scopes(self) -> List[str]:
        return list(config.microsoft_scopes)

    def is_configured(self) -> bool:
        return bool(config.microsoft_client_id and config.microsoft_client_secret)

    def _redirect_uri(self) -> str:
        return f"{config.oauth_redirect_base}/api/v1/connectors/microsoft/callback"

    def get_auth_url(self, state: str) -> str:
        params = {
            "client_id": config.microsoft_client_id,
            "redirect_uri": self._redirect_uri(),
            "response_type": "code",
            "response_mode": "query",
            "scope": " ".join(self.scopes),
            "prompt": "select_account",
            "state": state,
        }
        return f"{config.microsoft_authorize_url}?{urlencode(params)}"

    async def _post_token(self, form: Dict[str, str]) -> Dict[str, Any]:
        async with self._client() as client:
            resp = await client.post(
                config.microsoft_token_url,
                data={
                    "client_id": config.microsoft_client_id,
                    "client_secret": config.microsoft_client_secret,
                    "scope": " ".join(self.scopes),
                    **form,
                },
                headers={"Accept": "application/json", "User-Agent": _USER_AGENT},
            )

        if resp.status_code == 400:
            try:
                error = resp.json().get("error")
            except ValueError:
                error = None
            if error == "invalid_grant":
                raise InvalidGrantError(resp.text)

        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict) or "access_token" not in data:
            raise ValueError("Token response missing access_token")
        data["expires_in"] = parse_expires_in(data)
        return data

    async def handle_callback(self, code: str) -> Dict[str, Any]:
        """Exchange auth code for tokens and read the Graph profile."""
        token_data = await self._post_token(
            {
                "code": code,
                "redirect_uri": self._redirect_uri(),
                "grant_type": "authorization_code",
            }
        )

        async with self._client() as client:
            user_resp = await client.get(
                f"{config.graph_base_url}/me",
                headers={
                    "Authorization": f"Bearer {token_data['access_token']}",
                    "Accept": "application/json",
                    "User-Agent": _USER_AGENT,
                },
            )
            user_resp.raise_for_status()
            user_info = user_resp.json()

        return {
            "access_token": token_data["access_token"],
            "refresh_token": token_data.get("refresh_token"),
            "expires_in": token_data["expires_in"],
            "scopes": token_data.get("scope", "").split(),
            "account_id": user_info.get("id", ""),
            "account_label": user_info.get("mail") or user_info.get("userPrincipalName", ""),
            "provider_meta": {
                "display_name": user_info.get("displayName"),
                "mail": user_info.get("mail"),
            },
        }

    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """Use refresh token to get a new access token."""
        data = await self._post_token(
            {"refresh_token": refresh_token, "grant_type": "refresh_token"}
        )
        return {
            "access_token": data["access_token"],
            "expires_in": data["expires_in"],
            "refresh_token": data.get("refresh_token"),
        }
