"""Project model for upstream and locally created projects."""

from sqlalchemy import Column, BigInteger, String, DateTime, CheckConstraint, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.database import Base

PROJECT_TYPE_WORK = "work"
PROJECT_TYPE_NON_WORK = "non_work"


class Project(Base):
    """Project keyed by '{workspace_id}:{project_id}' or 'manual:{slug}'."""

    __tablename__ = "projects"

    project_key = Column(String(255), primary_key=True)
    workspace_id = Column(BigInteger, nullable=False)
    project_id = Column(BigInteger, nullable=False)
    project_name = Column(String(255), nullable=False)
    project_color = Column(String(7), nullable=True)  # explicit '#RRGGBB', palette-assigned when null
    project_type = Column(String(20), nullable=False, default=PROJECT_TYPE_WORK, server_default=PROJECT_TYPE_WORK)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    time_entries = relationship("TimeEntry", back_populates="project")

    __table_args__ = (
        UniqueConstraint('workspace_id', 'project_id', name='uq_projects_workspace_project'),
        CheckConstraint("project_type in ('work', 'non_work')", name='ck_projects_project_type'),
    )

    def __repr__(self):
        return f"<Project(key='{self.project_key}', name='{self.project_name}', type='{self.project_type}')>"
