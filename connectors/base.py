"""
BaseConnector — abstract interface for OAuth2 calendar providers.

A provider subclasses this and implements the authorization-code and
refresh-token exchanges. The sync pipeline only talks to this interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import httpx


class InvalidGrantError(Exception):
    """The provider rejected the refresh token (``invalid_grant``); user must re-authorize."""


def parse_expires_in(data: Dict[str, Any], default: int = 3600) -> int:
    """
    Read ``expires_in`` from a token response as whole seconds.

    Raises ``ValueError`` when the field is present but not a positive number.
    """
    value = data.get("expires_in", default)
    if isinstance(value, bool):
        raise ValueError(f"Token response has invalid expires_in: {value!r}")
    try:
        seconds = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"Token response has invalid expires_in: {value!r}") from None
    if seconds <= 0:
        raise ValueError(f"Token response has invalid expires_in: {value!r}")
    return seconds


class BaseConnector(ABC):
    """Abstract base for OAuth2 connectors."""

    def __init__(self, *, transport: Optional[httpx.AsyncBaseTransport] = None, timeout: float = 30.0) -> None:
        self._transport = transport
        self._timeout = timeout

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    # ── Identity ────────────────────────────────────────────────────────
    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Unique slug, e.g. 'microsoft'."""
        ...

    @property
    @abstractmethod
    def display_name(self) -> str:
        ...

    @property
    @abstractmethod
    def scopes(self) -> List[str]:
        """OAuth scopes required by this connector."""
        ...

    # ── OAuth flow ──────────────────────────────────────────────────────

    @abstractmethod
    def get_auth_url(self, state: str) -> str:
        """
        Build the provider's OAuth2 authorization URL.

        Parameters
        ----------
        state : str
            Opaque state string (encodes user_id + CSRF token).
        """
        ...

    @abstractmethod
    async def handle_callback(self, code: str) -> Dict[str, Any]:
        """
        Exchange the authorization code for tokens.

        Returns
        -------
        dict with keys:
            access_token, refresh_token, expires_in, scopes,
            account_id, account_label, provider_meta
        """
        ...

    @abstractmethod
    async def refresh_access_token(self, refresh_token: str) -> Dict[str, Any]:
        """
        Perform one refresh-token exchange.

        Returns
        -------
        dict with keys: access_token, expires_in, (optional) refresh_token

        Raises
        ------
        InvalidGrantError
            The refresh token is no longer accepted.
        """
        ...

    def is_configured(self) -> bool:
        """Return True if client id / secret are available."""
        return True
