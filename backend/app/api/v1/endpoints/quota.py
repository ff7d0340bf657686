from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.quota import QuotaStatus
from app.services.quota_lock import QuotaLockService
from app.utils.dates import to_iso

router = APIRouter()


@router.get("", response_model=QuotaStatus)
async def read_quota_lock(db: Session = Depends(get_db)):
    """Current state of the shared Toggl quota cooldown."""
    service = QuotaLockService(db)
    state = service.get_state()
    return QuotaStatus(
        key=service.key,
        active=state.active,
        retryAfterSeconds=state.retry_after_seconds,
        lockedUntil=to_iso(state.locked_until),
        lastStatus=state.last_status,
        reason=state.reason,
    )
