"""Replay ledger for write requests carrying an Idempotency-Key header."""

import logging
from datetime import datetime
from typing import NamedTuple, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.services.snapshot_cache import SnapshotCache
from app.utils.dates import as_utc, utcnow

log = logging.getLogger(__name__)

MIN_TTL_SECONDS = 30
MAX_TTL_SECONDS = 3600


class IdempotentResponse(NamedTuple):
    status: int
    body: str


def clamp_ttl(ttl_seconds: Optional[int]) -> int:
    if ttl_seconds is None:
        ttl_seconds = settings.idempotency_ttl_seconds
    return max(MIN_TTL_SECONDS, min(MAX_TTL_SECONDS, int(ttl_seconds)))


def idempotency_cache_key(scope: str, member_name: Optional[str], key: str) -> str:
    member_part = (member_name or "").strip().lower() or "unknown"
    return f"idem:{scope}:{member_part}:{key.strip()}"


class IdempotencyLedger:
    """
    Stores the status and serialized body of a completed write so that a
    retried request with the same key replays it instead of writing again.

    Bodies are kept as the exact JSON text that was sent, so replays are
    byte-identical regardless of how the store orders JSON keys.
    """

    def __init__(self, db: Session):
        self.cache = SnapshotCache(db)

    def read(self, scope: str, member_name: Optional[str], key: Optional[str], now: Optional[datetime] = None) -> Optional[IdempotentResponse]:
        if not key or not key.strip():
            return None

        cache_key = idempotency_cache_key(scope, member_name, key)
        row = self.cache.get_entry(cache_key)
        if row is None:
            return None
        if as_utc(row.expires_at) <= (now or utcnow()):
            log.debug(f"Idempotency record expired: {cache_key}")
            return None

        payload = row.payload or {}
        status = payload.get("status")
        body = payload.get("body")
        if not isinstance(status, int) or not 100 <= status <= 599 or not isinstance(body, str):
            log.warning(f"Ignoring malformed idempotency record: {cache_key}")
            return None

        log.info(f"Replaying stored response for {cache_key} (status {status})")
        return IdempotentResponse(status=status, body=body)

    def write(
        self,
        scope: str,
        member_name: Optional[str],
        key: Optional[str],
        status: int,
        body: str,
        ttl_seconds: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> bool:
        if not key or not key.strip():
            return False

        cache_key = idempotency_cache_key(scope, member_name, key)
        stored = self.cache.set(
            cache_key,
            {"status": int(status), "body": body},
            ttl_seconds=clamp_ttl(ttl_seconds),
            now=now
        )
        if not stored:
            log.warning(f"Idempotency record not stored for {cache_key}")
        return stored
