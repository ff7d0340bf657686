"""Short-TTL read-through cache for expensive derived views."""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.errors import StoreUnavailableError
from app.models.cache_snapshot import CacheSnapshot
from app.services.history_store import HistoryStore
from app.utils.dates import as_utc, utcnow

log = logging.getLogger(__name__)


class SnapshotCache:
    """
    Payload cache stored in cache_snapshots so that every instance shares it.

    get(key) only returns unexpired payloads; get(key, allow_stale=True) returns
    whatever is still stored and the caller must label the result as stale.
    Cache failures behave like a miss.
    """

    def __init__(self, db: Session, default_ttl_seconds: Optional[int] = None):
        self.db = db
        self.default_ttl_seconds = default_ttl_seconds or settings.snapshot_ttl_seconds

    def get_entry(self, key: str) -> Optional[CacheSnapshot]:
        try:
            return self.db.query(CacheSnapshot).filter(CacheSnapshot.cache_key == key).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.warning(f"Snapshot cache read failed for '{key}': {e}")
            return None

    def get(self, key: str, allow_stale: bool = False, now: Optional[datetime] = None) -> Optional[Any]:
        row = self.get_entry(key)
        if row is None:
            log.trace(f"Snapshot cache miss: {key}")
            return None
        if not allow_stale and as_utc(row.expires_at) <= (now or utcnow()):
            log.trace(f"Snapshot cache expired: {key}")
            return None
        return row.payload

    def set(self, key: str, payload: Any, ttl_seconds: Optional[int] = None, now: Optional[datetime] = None) -> bool:
        ttl = ttl_seconds if ttl_seconds is not None else self.default_ttl_seconds
        expires_at = (now or utcnow()) + timedelta(seconds=max(1, int(ttl)))
        try:
            HistoryStore(self.db).upsert(
                CacheSnapshot,
                [{"cache_key": key, "payload": payload, "expires_at": expires_at}],
                ["cache_key"]
            )
        except StoreUnavailableError as e:
            log.warning(f"Snapshot cache write failed for '{key}': {e}")
            return False
        return True

    def purge_expired(self, grace_seconds: Optional[int] = None) -> int:
        from app.services.snapshot_cleanup import purge_expired_snapshots
        return purge_expired_snapshots(self.db, grace_seconds=grace_seconds)
