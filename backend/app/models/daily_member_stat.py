"""Daily per-member aggregate, derived from time entries."""

from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey
from sqlalchemy.sql import func
from app.database import Base


class DailyMemberStat(Base):
    """Totals for one (stat_date, member_name); never authored directly."""

    __tablename__ = "daily_member_stats"

    stat_date = Column(Date, primary_key=True)
    member_name = Column(String(255), ForeignKey("members.member_name", onupdate="CASCADE"), primary_key=True)
    total_seconds = Column(Integer, nullable=False, default=0)
    entry_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<DailyMemberStat(date={self.stat_date}, member='{self.member_name}', seconds={self.total_seconds})>"
