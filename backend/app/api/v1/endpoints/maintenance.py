from typing import Optional
import logging
from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.schemas.maintenance import PurgeSnapshotsResponse
from app.services.snapshot_cache import SnapshotCache
from app.services.snapshot_cleanup import get_snapshot_stats

log = logging.getLogger(__name__)
router = APIRouter()


@router.post("/purge-snapshots", response_model=PurgeSnapshotsResponse)
async def purge_snapshots(
    grace_seconds: Optional[int] = Query(None, ge=0, description="Keep snapshots expired for less than this"),
    db: Session = Depends(get_db)
):
    """Delete cache and idempotency snapshots that expired longer ago than the grace period."""
    deleted = SnapshotCache(db).purge_expired(grace_seconds=grace_seconds)
    return PurgeSnapshotsResponse(deleted=deleted, **get_snapshot_stats(db))
