from typing import Optional
from fastapi import APIRouter, Depends, Query

from app.api.deps import get_reconciler, get_team_directory, parse_refresh_flag, require_date, require_member
from app.schemas.entries import EntriesResponse
from app.services.reconciler import ReconciliationService
from app.services.team_directory import TeamDirectory
from app.utils.dates import parse_tz_offset

router = APIRouter()


@router.get("", response_model=EntriesResponse)
async def read_member_entries(
    member: Optional[str] = Query(None, description="Member name or alias"),
    date: Optional[str] = Query(None, description="Local day, YYYY-MM-DD (default: today UTC)"),
    refresh: Optional[str] = Query(None, description="'1' forces a refresh from Toggl"),
    tzOffset: Optional[str] = Query(None, description="Minutes, UTC minus local time"),
    team: TeamDirectory = Depends(get_team_directory),
    reconciler: ReconciliationService = Depends(get_reconciler)
):
    """One member's entries for a local day."""
    day = require_date(date)
    team_member = require_member(team, member)
    return await reconciler.read_member_day(
        team_member, day, refresh=parse_refresh_flag(refresh), tz_offset_minutes=parse_tz_offset(tzOffset)
    )
