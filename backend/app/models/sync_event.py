"""Sync event model: append-only audit trail of upstream refreshes."""

from sqlalchemy import Column, Integer, String, Date, DateTime, Text, Index
from sqlalchemy.sql import func
from app.database import Base


class SyncEvent(Base):
    """One refresh attempt for a scope, written best-effort and never read by the sync path."""

    __tablename__ = "sync_events"

    id = Column(Integer, primary_key=True, autoincrement=True)

    scope = Column(String(50), nullable=False)  # 'entries', 'team', 'team_week'
    member_name = Column(String(255), nullable=True)  # null for team-wide events
    requested_date = Column(Date, nullable=False)
    fetched_entries = Column(Integer, nullable=False, default=0)
    status = Column(String(20), nullable=False)  # 'ok' or 'error'
    error = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    __table_args__ = (
        Index('idx_sync_events_scope_date', 'scope', 'requested_date'),
    )

    def __repr__(self):
        return f"<SyncEvent(id={self.id}, scope='{self.scope}', member='{self.member_name}', status='{self.status}')>"
