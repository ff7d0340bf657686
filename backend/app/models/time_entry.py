"""Time entry model for synced and manually created entries."""

from sqlalchemy import Column, Integer, String, Date, DateTime, Boolean, Text, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base, JSONVariant


class TimeEntry(Base):
    """Time entry keyed by its natural identity (entry_source, source_entry_id)."""

    __tablename__ = "time_entries"

    entry_id = Column(Integer, primary_key=True, autoincrement=True)

    # Source information
    entry_source = Column(String(50), nullable=False, default='toggl')  # 'toggl' or 'manual'
    source_entry_id = Column(String(255), nullable=False)

    # Ownership
    member_name = Column(String(255), ForeignKey("members.member_name", onupdate="CASCADE"), nullable=False)
    project_key = Column(String(255), ForeignKey("projects.project_key", onupdate="CASCADE"), nullable=True)
    description = Column(Text, nullable=True)

    # Time tracking
    start_at = Column(DateTime(timezone=True), nullable=False)
    stop_at = Column(DateTime(timezone=True), nullable=True)
    duration_seconds = Column(Integer, nullable=False, default=0)
    is_running = Column(Boolean, nullable=False, default=False)
    tags = Column(JSONVariant, nullable=True)

    # Local calendar day the entry is attributed to
    source_date = Column(Date, nullable=False)

    synced_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    raw = Column(JSONVariant, nullable=True)

    # Relationships
    member = relationship("Member", back_populates="time_entries")
    project = relationship("Project", back_populates="time_entries")

    __table_args__ = (
        UniqueConstraint('entry_source', 'source_entry_id', name='uq_time_entries_source'),
        Index('idx_time_entries_member_start', 'member_name', 'start_at'),
        Index('idx_time_entries_source_date', 'source_date'),
        Index('idx_time_entries_project_key', 'project_key'),
    )

    def __repr__(self):
        return f"<TimeEntry(id={self.entry_id}, source='{self.entry_source}:{self.source_entry_id}', member='{self.member_name}', seconds={self.duration_seconds})>"
