from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, Any, List, Optional

from pydantic import BaseModel, Field

from app.utils.dates import utcnow


class TimeEntryNormalized(BaseModel):
    """Normalized Time Entry structure."""
    source_id: str = Field(..., description="Original ID of the time entry in the source system")
    source: str = Field("toggl", description="Name of the source system ('toggl' or 'manual')")
    description: Optional[str] = Field(None, description="Description of the work performed")
    start: datetime = Field(..., description="Start timestamp (UTC)")
    stop: Optional[datetime] = Field(None, description="Stop timestamp (UTC), absent while running")
    duration_sec: int = Field(0, description="Duration in seconds; negative while running")
    workspace_id: Optional[int] = Field(None, description="Upstream workspace ID")
    project_id: Optional[int] = Field(None, description="Upstream project ID")
    project_name: Optional[str] = Field(None, description="Resolved project name")
    tags: List[str] = Field([], description="List of tags associated with the time entry")
    raw: Dict[str, Any] = Field({}, description="Raw upstream payload")

    @property
    def project_key(self) -> Optional[str]:
        if self.workspace_id is None or self.project_id is None:
            return None
        return f"{self.workspace_id}:{self.project_id}"

    @property
    def is_running(self) -> bool:
        return self.duration_sec < 0 or self.stop is None

    def effective_duration(self, now: Optional[datetime] = None) -> int:
        """Stored duration, or elapsed seconds since start while the entry is running."""
        if not self.is_running:
            return max(0, self.duration_sec)
        now = now or utcnow()
        return max(0, int((now - self.start).total_seconds()))


class BaseConnector(ABC):
    """Abstract Base Class for upstream time-tracking connectors."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config

    @abstractmethod
    async def fetch_time_entries(self, start_iso: str, end_iso: str) -> List[TimeEntryNormalized]:
        """Fetches time entries started within the given UTC range."""
        pass

    @abstractmethod
    async def fetch_current_entry(self) -> Optional[TimeEntryNormalized]:
        """Fetches the currently running entry, if any."""
        pass

    @abstractmethod
    async def fetch_project_names(self, entries: List[TimeEntryNormalized]) -> Dict[str, str]:
        """Resolves project names for the projects referenced by the entries."""
        pass

    async def close(self) -> None:
        """Releases network resources."""
        pass
