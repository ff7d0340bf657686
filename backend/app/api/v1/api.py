from fastapi import APIRouter

from app.api.v1.endpoints import entries, team, team_week, time_entries, projects, quota, sync_events, maintenance

api_router = APIRouter()
api_router.include_router(entries.router, prefix="/entries", tags=["entries"])
api_router.include_router(team.router, prefix="/team", tags=["team"])
api_router.include_router(team_week.router, prefix="/team-week", tags=["team-week"])
api_router.include_router(time_entries.router, prefix="/time-entries", tags=["time-entries"])
api_router.include_router(projects.router, prefix="/projects", tags=["projects"])
api_router.include_router(quota.router, prefix="/quota", tags=["quota"])
api_router.include_router(sync_events.router, prefix="/sync-events", tags=["sync-events"])
api_router.include_router(maintenance.router, prefix="/maintenance", tags=["maintenance"])
