from typing import Optional
from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.sync_event import SyncEvent
from app.schemas.sync_event import PaginatedSyncEvents, SyncEventInDB
from app.utils.dates import parse_date_param

router = APIRouter()


@router.get("", response_model=PaginatedSyncEvents)
async def read_sync_events(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    scope: Optional[str] = Query(None, description="Filter by scope: 'entries', 'team' or 'team_week'"),
    member: Optional[str] = Query(None, description="Filter by member name"),
    event_status: Optional[str] = Query(None, alias="status", description="Filter by 'ok' or 'error'"),
    start_date: Optional[str] = Query(None, description="Filter requested_date >= YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, description="Filter requested_date <= YYYY-MM-DD"),
    db: Session = Depends(get_db)
):
    """Retrieve sync events, newest first."""
    query = db.query(SyncEvent)

    if scope:
        query = query.filter(SyncEvent.scope == scope)
    if member:
        query = query.filter(SyncEvent.member_name == member)
    if event_status:
        query = query.filter(SyncEvent.status == event_status)

    # Filter by requested date range
    for value, is_start in ((start_date, True), (end_date, False)):
        if not value:
            continue
        parsed = parse_date_param(value)
        if parsed is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date")
        query = query.filter(SyncEvent.requested_date >= parsed if is_start else SyncEvent.requested_date <= parsed)

    total = query.count()
    events = query.order_by(SyncEvent.created_at.desc(), SyncEvent.id.desc()).offset(skip).limit(limit).all()
    return PaginatedSyncEvents(data=events, total=total)


@router.get("/{event_id}", response_model=SyncEventInDB)
async def read_sync_event(event_id: int, db: Session = Depends(get_db)):
    """Retrieve a single sync event by ID."""
    event = db.query(SyncEvent).filter(SyncEvent.id == event_id).first()
    if event is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Sync event not found")
    return event
