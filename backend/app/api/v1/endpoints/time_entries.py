import math
import logging
from typing import Optional
from fastapi import APIRouter, Depends, Header, HTTPException, status
from fastapi.responses import Response
from sqlalchemy.orm import Session

from app.api.deps import get_reconciler, get_team_directory, require_member
from app.database import get_db
from app.schemas.manual_entry import ManualEntryCreate, ManualEntryResponse
from app.services.idempotency import IdempotencyLedger
from app.services.reconciler import ReconciliationService
from app.services.team_directory import TeamDirectory
from app.utils.dates import parse_iso_datetime, parse_tz_offset

log = logging.getLogger(__name__)
router = APIRouter()

MANUAL_ENTRY_SCOPE = "manual_entry"


@router.post("/manual", response_model=ManualEntryResponse)
async def create_manual_entry(
    payload: ManualEntryCreate,
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
    team: TeamDirectory = Depends(get_team_directory),
    reconciler: ReconciliationService = Depends(get_reconciler),
    db: Session = Depends(get_db)
):
    """
    Record a finished time entry by hand.

    A request repeating an Idempotency-Key already used for the same member
    gets the stored response back, byte for byte, and writes nothing.
    """
    member = require_member(team, payload.member)

    if not math.isfinite(payload.durationMinutes) or payload.durationMinutes <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="durationMinutes must be a positive number")
    duration_seconds = int(round(payload.durationMinutes * 60))
    if duration_seconds <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="durationMinutes must be a positive number")

    start_at = parse_iso_datetime(payload.startAt)
    if start_at is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid startAt")

    ledger = IdempotencyLedger(db)
    replay = ledger.read(MANUAL_ENTRY_SCOPE, member.name, idempotency_key)
    if replay is not None:
        return Response(content=replay.body, status_code=replay.status, media_type="application/json")

    result = reconciler.create_manual_entry(
        member,
        payload.description,
        payload.project,
        start_at,
        duration_seconds,
        tz_offset_minutes=parse_tz_offset(payload.tzOffset)
    )
    body = result.model_dump_json()
    ledger.write(MANUAL_ENTRY_SCOPE, member.name, idempotency_key, status.HTTP_200_OK, body)
    return Response(content=body, status_code=status.HTTP_200_OK, media_type="application/json")
