from typing import Optional, List, Literal
from pydantic import BaseModel

ReadSource = Literal['db', 'db_fallback', 'toggl_sync']


class EntryOut(BaseModel):
    """A time entry as returned to callers; running entries carry elapsed seconds."""
    id: str
    source: str  # 'toggl' or 'manual'
    description: Optional[str] = None
    start: str
    stop: Optional[str] = None
    duration: int
    isRunning: bool = False
    projectKey: Optional[str] = None
    projectName: Optional[str] = None
    projectType: str = 'work'
    tags: List[str] = []


class FreshnessFields(BaseModel):
    """Freshness labelling shared by every read response."""
    cachedAt: Optional[str] = None
    stale: bool = False
    warning: Optional[str] = None
    source: ReadSource = 'db'
    cooldownActive: bool = False
    retryAfterSeconds: int = 0


class EntriesResponse(FreshnessFields):
    member: str
    date: str
    entries: List[EntryOut] = []
    current: Optional[EntryOut] = None
    totalSeconds: int = 0
    entryCount: int = 0
