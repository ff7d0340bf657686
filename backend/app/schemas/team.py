from typing import Optional, List
from pydantic import BaseModel

from app.schemas.entries import EntryOut, FreshnessFields


class TeamMemberDay(BaseModel):
    name: str
    entries: List[EntryOut] = []
    current: Optional[EntryOut] = None
    totalSeconds: int = 0
    entryCount: int = 0
    stale: bool = False  # this member's data came from storage after a failed refresh


class TeamResponse(FreshnessFields):
    date: str
    members: List[TeamMemberDay] = []
