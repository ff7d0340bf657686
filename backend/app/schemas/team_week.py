from typing import List
from pydantic import BaseModel

from app.schemas.entries import FreshnessFields


class DaySummary(BaseModel):
    date: str
    seconds: int = 0
    entryCount: int = 0


class MemberWeek(BaseModel):
    name: str
    totalSeconds: int = 0
    entryCount: int = 0
    days: List[DaySummary] = []


class TeamWeekResponse(FreshnessFields):
    """Seven local days ending at endDate, members ranked by total, entry count, then name."""
    startDate: str
    endDate: str
    weekDates: List[str]
    members: List[MemberWeek] = []
