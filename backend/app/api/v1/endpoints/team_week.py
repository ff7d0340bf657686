from typing import Optional
from fastapi import APIRouter, Depends, Query

from app.api.deps import get_reconciler, get_team_directory, parse_refresh_flag, require_date, require_team
from app.schemas.team_week import TeamWeekResponse
from app.services.reconciler import ReconciliationService
from app.services.team_directory import TeamDirectory
from app.utils.dates import parse_tz_offset

router = APIRouter()


@router.get("", response_model=TeamWeekResponse)
async def read_team_week(
    date: Optional[str] = Query(None, description="Last day of the week, YYYY-MM-DD (default: today UTC)"),
    refresh: Optional[str] = Query(None, description="'1' refreshes the whole week from Toggl"),
    tzOffset: Optional[str] = Query(None, description="Minutes, UTC minus local time"),
    team: TeamDirectory = Depends(get_team_directory),
    reconciler: ReconciliationService = Depends(get_reconciler)
):
    """Seven-day totals per member, ranked."""
    end_day = require_date(date)
    require_team(team)
    return await reconciler.read_team_week(
        end_day, refresh=parse_refresh_flag(refresh), tz_offset_minutes=parse_tz_offset(tzOffset)
    )
