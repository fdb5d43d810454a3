"""
Microsoft connection routes — auth URL, OAuth callback, status, disconnect.

Route prefix: /api/v1/connectors
"""

from __future__ import annotations

import html
import json
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import HTMLResponse

from api.dependencies import get_token_store
from auth.dependencies import get_current_user_id
from auth.jwt import sign_payload, verify_payload
from config.settings import config
from connectors.base import BaseConnector
from connectors.registry import ConnectorRegistry
from connectors.token_manager import connect_account
from connectors.token_store import SqlTokenStore
from utils.schemas import ConnectionStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["connectors"])

_PROVIDER = "microsoft"
_STATE_TTL = 600  # seconds


def _require_connector() -> BaseConnector:
    connector = ConnectorRegistry().get(_PROVIDER)
    if connector is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Microsoft connector is not configured",
        )
    return connector


def create_state(user_id: str) -> str:
    """Opaque CSRF state encoding the user id, valid for ``_STATE_TTL`` seconds."""
    return sign_payload({"user_id": user_id}, config.oauth_state_secret, _STATE_TTL)


def verify_state(state: str) -> str:
    """Return the user id from a state token. Raises 400 on failure."""
    try:
        return verify_payload(state, config.oauth_state_secret)["user_id"]
    except (ValueError, KeyError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid or expired OAuth state: {exc}",
        )


@router.get("/microsoft/auth-url")
async def get_auth_url(
    user_id: str = Depends(get_current_user_id),
    connector: BaseConnector = Depends(_require_connector),
) -> Dict[str, str]:
    """Authorization URL for the frontend to open in a popup."""
    return {"auth_url": connector.get_auth_url(create_state(user_id)), "provider": _PROVIDER}


@router.get("/microsoft/callback")
async def oauth_callback(
    code: str = Query(...),
    state: str = Query(...),
    connector: BaseConnector = Depends(_require_connector),
    token_store: SqlTokenStore = Depends(get_token_store),
) -> HTMLResponse:
    """Microsoft redirects here after consent; store tokens and notify the opener window."""
    user_id = verify_state(state)

    try:
        token_data = await connect_account(user_id, code, connector, token_store)
    except Exception as exc:
        logger.error("Microsoft OAuth callback failed for user %s: %s", user_id, exc)
        return HTMLResponse(_callback_html(False, f"Connection failed: {exc}"))

    account_label = token_data.get("account_label") or connector.display_name
    logger.info("Microsoft connected: user=%s account=%s", user_id, account_label)
    return HTMLResponse(_callback_html(True, f"Connected {connector.display_name} as {account_label}"))


@router.get("/microsoft/status", response_model=ConnectionStatus)
async def connection_status(
    user_id: str = Depends(get_current_user_id),
    token_store: SqlTokenStore = Depends(get_token_store),
) -> ConnectionStatus:
    return await token_store.get_status(user_id)


@router.delete("/microsoft")
async def disconnect(
    user_id: str = Depends(get_current_user_id),
    token_store: SqlTokenStore = Depends(get_token_store),
) -> Dict[str, Any]:
    if not await token_store.delete(user_id):
        raise HTTPException(404, "Microsoft account not connected")
    return {"status": "disconnected", "provider": _PROVIDER}


def _callback_html(success: bool, message: str) -> str:
    """Popup page: posts the result to the opener, then closes itself."""
    message_js = json.dumps(
        {"type": "oauth-callback", "provider": _PROVIDER, "success": success, "message": message}
    ).replace("</", "<\\/")
    title = "Connected" if success else "Connection failed"
    return f"""<!DOCTYPE html>
<html>
<head><title>Microsoft — {title}</title></head>
<body>
    <h2>{title}</h2>
    <p>{html.escape(message)}</p>
    <script>
        if (window.opener) {{ window.opener.postMessage({message_js}, '*'); }}
        setTimeout(() => window.close(), 2000);
    </script>
</body>
</html>"""
