"""Shared request dependencies and query-parameter parsing for the v1 API."""

from datetime import date
from typing import Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.services.reconciler import ReconciliationService
from app.services.sync_service import ConnectorFactory, default_connector_factory
from app.services.team_directory import TeamDirectory, TeamMember
from app.utils.dates import parse_date_param

TRUE_VALUES = {"1", "true", "yes"}


def get_team_directory() -> TeamDirectory:
    return TeamDirectory()


def get_connector_factory() -> ConnectorFactory:
    return default_connector_factory


def get_reconciler(
    db: Session = Depends(get_db),
    team: TeamDirectory = Depends(get_team_directory),
    connector_factory: ConnectorFactory = Depends(get_connector_factory)
) -> ReconciliationService:
    return ReconciliationService(db, team=team, connector_factory=connector_factory)


def parse_refresh_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in TRUE_VALUES


def require_date(value: Optional[str]) -> date:
    parsed = parse_date_param(value)
    if parsed is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid date")
    return parsed


def require_member(team: TeamDirectory, name: Optional[str]) -> TeamMember:
    if not name or not name.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing member")
    member = team.find(name)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Unknown member")
    return member


def require_team(team: TeamDirectory) -> None:
    if not team.members():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No members configured")
