"""Cache snapshot model backing the snapshot cache and the idempotency ledger."""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from app.database import Base, JSONVariant


class CacheSnapshot(Base):
    """Opaque payload with an expiry, keyed by a composite cache key."""

    __tablename__ = "cache_snapshots"

    cache_key = Column(String(512), primary_key=True)
    payload = Column(JSONVariant, nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<CacheSnapshot(key='{self.cache_key}', expires_at={self.expires_at})>"
