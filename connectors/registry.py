"""
ConnectorRegistry — provides access to the configured calendar connectors.
"""

from __future__ import annotations

import logging
from typing import List, Optional

from connectors.base import BaseConnector
from connectors.microsoft import MicrosoftConnector

logger = logging.getLogger(__name__)


def _all_connectors() -> List[BaseConnector]:
    return [MicrosoftConnector()]


class ConnectorRegistry:
    """Singleton registry for OAuth connectors."""

    _instance: Optional["ConnectorRegistry"] = None

    def __new__(cls) -> "ConnectorRegistry":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._connectors = {}
            cls._instance._discovered = False
        return cls._instance

    def discover(self) -> None:
        """Register every connector whose client id/secret are configured."""
        if self._discovered:
            return
        for conn in _all_connectors():
            if conn.is_configured():
                self._connectors[conn.provider_name] = conn
                logger.info("Connector registered: %s (%s)", conn.display_name, conn.provider_name)
            else:
                logger.warning(
                    "Connector %s skipped — not configured (missing client_id/secret)",
                    conn.provider_name,
                )
        self._discovered = True

    def get(self, provider: str) -> Optional[BaseConnector]:
        self.discover()
        return self._connectors.get(provider)

    def list_configured(self) -> List[str]:
        self.discover()
        return list(self._connectors.keys())
