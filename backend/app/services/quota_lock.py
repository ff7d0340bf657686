"""Durable, TTL-bounded quota lock shared by all instances."""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.models.quota_lock import ApiQuotaLock
from app.services.history_store import HistoryStore
from app.utils.dates import as_utc, utcnow
from app.errors import StoreUnavailableError

log = logging.getLogger(__name__)


class QuotaLockState(BaseModel):
    active: bool = False
    retry_after_seconds: int = 0
    locked_until: Optional[datetime] = None
    last_status: Optional[int] = None
    reason: Optional[str] = None


def lock_seconds_for(status: int, retry_hint_seconds: Optional[int] = None) -> int:
    """Cooldown length: the upstream hint when present, else 1h for 402 and 5min for 429."""
    if retry_hint_seconds and retry_hint_seconds > 0:
        return int(retry_hint_seconds)
    if status == 402:
        return settings.quota_lock_seconds_402
    return settings.quota_lock_seconds_429


class QuotaLockService:
    """
    Circuit breaker persisted in api_quota_locks, so every process sharing the
    upstream credential observes the same cooldown. There is no unlock call;
    a lock simply stops being active once locked_until has passed.
    """

    def __init__(self, db: Session, key: Optional[str] = None):
        self.db = db
        self.key = key or settings.quota_lock_key

    def _row(self, key: str) -> Optional[ApiQuotaLock]:
        return self.db.query(ApiQuotaLock).filter(ApiQuotaLock.key == key).first()

    def get_state(self, key: Optional[str] = None, now: Optional[datetime] = None) -> QuotaLockState:
        key = key or self.key
        now = now or utcnow()
        try:
            row = self._row(key)
        except SQLAlchemyError as e:
            self.db.rollback()
            log.warning(f"Quota lock '{key}' could not be read, treating as inactive: {e}")
            return QuotaLockState()
        if row is None:
            return QuotaLockState()

        locked_until = as_utc(row.locked_until)
        retry_after = max(0, math.ceil((locked_until - now).total_seconds()))
        return QuotaLockState(
            active=retry_after > 0,
            retry_after_seconds=retry_after,
            locked_until=locked_until,
            last_status=row.last_status,
            reason=row.reason,
        )

    def set_lock(
        self,
        status: int,
        lock_for_seconds: int,
        retry_hint_seconds: Optional[int] = None,
        reason: Optional[str] = None,
        key: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> QuotaLockState:
        """Start or extend a cooldown; an existing longer lock is never shortened."""
        key = key or self.key
        now = now or utcnow()
        requested_until = now + timedelta(seconds=max(1, int(lock_for_seconds)))

        current = self.get_state(key, now=now)
        target_until = requested_until
        if current.locked_until and current.locked_until > target_until:
            target_until = current.locked_until

        try:
            HistoryStore(self.db).upsert(
                ApiQuotaLock,
                [{
                    "key": key,
                    "locked_until": target_until,
                    "last_status": status,
                    "reason": reason,
                    "retry_hint_seconds": retry_hint_seconds,
                }],
                ["key"]
            )
        except StoreUnavailableError as e:
            log.error(f"Failed to persist quota lock '{key}' ({status}): {e}")
            return current

        log.warning(f"Quota lock '{key}' set until {target_until.isoformat()} after HTTP {status}: {reason}")
        return self.get_state(key, now=now)
