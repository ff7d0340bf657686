"""Durable quota lock shared by every process talking to the upstream."""

from sqlalchemy import Column, Integer, String, DateTime, Text
from sqlalchemy.sql import func
from app.database import Base


class ApiQuotaLock(Base):
    """Cooldown window after a 402/429 from the upstream API."""

    __tablename__ = "api_quota_locks"

    key = Column(String(100), primary_key=True)
    locked_until = Column(DateTime(timezone=True), nullable=False)
    last_status = Column(Integer, nullable=False)
    reason = Column(Text, nullable=True)
    retry_hint_seconds = Column(Integer, nullable=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<ApiQuotaLock(key='{self.key}', until={self.locked_until}, status={self.last_status})>"
