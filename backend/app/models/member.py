"""Member model, keyed by canonical display name."""

from sqlalchemy import Column, String, DateTime
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base


class Member(Base):
    """Team member, created implicitly the first time an entry or stat references them."""

    __tablename__ = "members"

    member_name = Column(String(255), primary_key=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    time_entries = relationship("TimeEntry", back_populates="member")

    def __repr__(self):
        return f"<Member(name='{self.member_name}')>"
