"""
Event reconciler — import new, timed, future Outlook events as meetings.

Purely additive: an event whose id is already imported is skipped, never
updated. A meeting the user deleted is no longer in the existing-id set
and is imported again by the next sync.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Iterable

from database.meetings import MeetingStore
from utils.schemas import NewMeeting, RemoteEvent, SyncSummary

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_new_meeting(event: RemoteEvent) -> NewMeeting:
    return NewMeeting(
        title=event.subject or "Untitled Meeting",
        description=event.body_preview,
        start_time=event.start_time,
        end_time=event.end_time,
        location=event.location,
        meeting_type="online" if event.online_meeting_url else "physical",
        status="scheduled",
        outlook_event_id=event.remote_id,
        teams_join_url=event.online_meeting_url,
        teams_meeting_id=event.online_meeting_id,
    )


class EventReconciler:
    def __init__(self, meeting_store: MeetingStore, *, clock: Callable[[], datetime] = _utcnow) -> None:
        self._store = meeting_store
        self._clock = clock

    async def reconcile(self, user_id: str, events: Iterable[RemoteEvent]) -> SyncSummary:
        events = list(events)
        existing = await self._store.existing_remote_ids(user_id)
        synced = skipped = 0

        for event in events:
            if event.remote_id in existing:
                skipped += 1
                logger.debug("Skipping existing meeting: %s", event.subject)
                continue

            if not event.remote_id or event.is_all_day or event.start_time is None or event.end_time is None:
                skipped += 1
                logger.debug("Skipping all-day or invalid time event: %s", event.subject)
                continue

            # "now" is read per event so slow batches never import a started meeting.
            if event.start_time < self._clock():
                skipped += 1
                logger.debug("Skipping past event: %s", event.subject)
                continue

            try:
                meeting_id = await self._store.insert(user_id, to_new_meeting(event))
            except Exception:
                skipped += 1
                logger.exception("Error inserting meeting %s for user %s", event.remote_id, user_id)
                continue

            if meeting_id is None:
                # Imported by a concurrent sync since the existing-id query.
                skipped += 1
                logger.info("Meeting %s already imported concurrently", event.remote_id)
                continue

            existing.add(event.remote_id)
            synced += 1
            logger.info("Synced meeting: %s", event.subject)

        summary = SyncSummary(synced_count=synced, skipped_count=skipped, total_found=len(events))
        logger.info(
            "Sync completed for user %s: %d synced, %d skipped, %d total",
            user_id, summary.synced_count, summary.skipped_count, summary.total_found,
        )
        return summary
