from typing import Optional, List
from datetime import date, datetime
from pydantic import BaseModel


class SyncEventInDB(BaseModel):
    id: int
    scope: str
    member_name: Optional[str] = None
    requested_date: date
    fetched_entries: int
    status: str
    error: Optional[str] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaginatedSyncEvents(BaseModel):
    data: List[SyncEventInDB]
    total: int
