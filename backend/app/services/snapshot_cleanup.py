"""Cleanup of expired cache snapshots and idempotency records."""

from datetime import timedelta
from typing import Optional
from sqlalchemy.orm import Session
import logging

from app.config import settings
from app.models.cache_snapshot import CacheSnapshot
from app.utils.dates import utcnow

log = logging.getLogger(__name__)


def purge_expired_snapshots(db: Session, grace_seconds: Optional[int] = None) -> int:
    """
    Delete snapshots that expired more than grace_seconds ago.

    Expired snapshots are kept for a grace period because stale-tolerant reads
    still serve them while the upstream is unavailable.

    Args:
        db: Database session
        grace_seconds: How long past expiry a snapshot is kept (default: SNAPSHOT_PURGE_GRACE_SECONDS)

    Returns:
        Number of snapshots deleted

    Usage:
        from app.services.snapshot_cleanup import purge_expired_snapshots

        deleted_count = purge_expired_snapshots(db, grace_seconds=3600)
    """
    grace = settings.snapshot_purge_grace_seconds if grace_seconds is None else grace_seconds
    cutoff = utcnow() - timedelta(seconds=max(0, grace))

    deleted = db.query(CacheSnapshot).filter(
        CacheSnapshot.expires_at < cutoff
    ).delete(synchronize_session=False)

    db.commit()

    log.info(f"Snapshot cleanup: Deleted {deleted} snapshot(s) expired before {cutoff.isoformat()}")

    return deleted


def get_snapshot_stats(db: Session) -> dict:
    """
    Get statistics about snapshot storage.

    Returns:
        Dictionary with counts of cache and idempotency snapshots and how many are expired
    """
    now = utcnow()
    total = db.query(CacheSnapshot).count()
    idempotency = db.query(CacheSnapshot).filter(CacheSnapshot.cache_key.like('idem:%')).count()
    expired = db.query(CacheSnapshot).filter(CacheSnapshot.expires_at < now).count()

    return {
        "total_snapshots": total,
        "idempotency_records": idempotency,
        "view_snapshots": total - idempotency,
        "expired_snapshots": expired,
    }
