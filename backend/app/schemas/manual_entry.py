from typing import Optional
from pydantic import BaseModel, Field

from app.schemas.entries import EntryOut


class ManualEntryCreate(BaseModel):
    member: str = Field(..., min_length=1)
    description: Optional[str] = None
    project: Optional[str] = None
    startAt: str = Field(..., description="ISO-8601 start timestamp")
    durationMinutes: float
    tzOffset: Optional[int] = Field(None, description="Minutes, UTC minus local time")


class ManualProjectOut(BaseModel):
    key: str
    name: str
    type: str


class ManualEntryResponse(BaseModel):
    success: bool = True
    member: str
    entry: EntryOut
    project: Optional[ManualProjectOut] = None
