"""
REST API routes — Outlook sync and meetings.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from api.dependencies import get_meeting_store, get_sync_trigger
from auth.dependencies import get_current_user_id
from database.meetings import SqlMeetingStore
from sync.trigger import SyncTrigger
from utils.schemas import MeetingOut, SyncRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["meetings"])


def _bad_request(message: str) -> JSONResponse:
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


@router.post("/meetings/sync")
async def sync_meetings(
    payload: Any = Body(None),
    auth_user_id: str = Depends(get_current_user_id),
    trigger: SyncTrigger = Depends(get_sync_trigger),
) -> Any:
    """
    Import upcoming Outlook meetings for the user.

    ``SyncError`` subclasses raised here are rendered by the handler in
    ``api.middleware`` as ``{"error", "stage"}`` with their status code.
    """
    if not isinstance(payload, dict):
        return _bad_request("User ID is required")
    try:
        request = SyncRequest.model_validate(payload)
    except ValidationError as exc:
        if any(err["loc"][:1] == ("user_id",) for err in exc.errors()):
            return _bad_request("User ID is required")
        return _bad_request("Invalid sync request")

    user_id = (request.user_id or "").strip()
    if not user_id:
        return _bad_request("User ID is required")
    if user_id != auth_user_id:
        raise HTTPException(status_code=403, detail="Cannot sync another user's calendar")

    summary = await trigger.sync(user_id, manual=request.manual)
    return summary.to_response()


@router.get("/meetings", response_model=List[MeetingOut])
async def list_meetings(
    auth_user_id: str = Depends(get_current_user_id),
    store: SqlMeetingStore = Depends(get_meeting_store),
) -> List[MeetingOut]:
    return await store.list_for_user(auth_user_id)


@router.delete("/meetings/{meeting_id}")
async def delete_meeting(
    meeting_id: uuid.UUID,
    auth_user_id: str = Depends(get_current_user_id),
    store: SqlMeetingStore = Depends(get_meeting_store),
) -> Dict[str, Any]:
    """Delete a meeting. A deleted Outlook meeting is imported again by the next sync."""
    deleted = await store.delete(auth_user_id, str(meeting_id))
    if not deleted:
        raise HTTPException(status_code=404, detail="Meeting not found")
    return {"status": "deleted", "meeting_id": str(meeting_id)}


@router.get("/health")
async def health_check() -> Dict[str, str]:
    return {"status": "ok"}
