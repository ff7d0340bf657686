"""Best-effort sync event recording."""

import logging
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.sync_event import SyncEvent

log = logging.getLogger(__name__)

MAX_ERROR_LENGTH = 500


def record_sync_event(
    db: Session,
    scope: str,
    requested_date: date,
    status: str,
    member_name: Optional[str] = None,
    fetched_entries: int = 0,
    error: Optional[str] = None
) -> Optional[SyncEvent]:
    """
    Append a sync event row. Never raises: the audit trail must not break the
    read or write path that produced it.

    Args:
        db: Database session
        scope: Refresh scope ('entries', 'team', 'team_week', 'manual')
        requested_date: Day (or end day) the refresh was for
        status: 'ok' or 'error'
        member_name: Member the event is about, None for team-wide events
        fetched_entries: Number of upstream entries fetched
        error: Error message, truncated to 500 characters

    Returns:
        Created SyncEvent, or None if it could not be written

    Usage:
        ```python
        record_sync_event(db, "team", day, "error", error="Partial refresh ...")
        ```
    """
    event = SyncEvent(
        scope=scope,
        member_name=member_name,
        requested_date=requested_date,
        fetched_entries=fetched_entries,
        status=status,
        error=error[:MAX_ERROR_LENGTH] if error else None
    )
    try:
        db.add(event)
        db.commit()
        return event
    except SQLAlchemyError as e:
        db.rollback()
        log.warning(f"Could not record sync event ({scope}/{status}): {e}")
        return None
