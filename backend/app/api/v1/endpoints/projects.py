from typing import List, Optional, Tuple
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.project import Project
from app.schemas.project import ProjectCreate, ProjectListResponse, ProjectOut, ProjectUpdate
from app.services.history_store import HistoryStore
from app.services.project_colors import ColorCandidate, assign_unique_pastel_colors, normalize_hex_color

router = APIRouter()


def _validated_color(color: Optional[str]) -> Optional[str]:
    if color is None or color == "":
        return None
    normalized = normalize_hex_color(color)
    if normalized is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="color must be a #RRGGBB value")
    return normalized


def _project_list(store: HistoryStore) -> List[ProjectOut]:
    rows: List[Tuple[Project, int, int]] = store.list_projects()
    colors = assign_unique_pastel_colors(
        ColorCandidate(key=project.project_key, name=project.project_name, color=project.project_color)
        for project, _, _ in rows
    )
    return [
        ProjectOut(
            key=project.project_key,
            name=project.project_name,
            color=colors[project.project_key],
            explicitColor=project.project_color,
            type=project.project_type,
            totalSeconds=total_seconds,
            entryCount=entry_count,
        )
        for project, total_seconds, entry_count in rows
    ]


def _project_out(store: HistoryStore, project_key: str) -> ProjectOut:
    for project in _project_list(store):
        if project.key == project_key:
            return project
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")


@router.get("", response_model=ProjectListResponse)
async def read_projects(db: Session = Depends(get_db)):
    """All projects with totals and a collision-free palette color each."""
    return ProjectListResponse(projects=_project_list(HistoryStore(db)))


@router.post("", response_model=ProjectOut, status_code=status.HTTP_201_CREATED)
async def create_project(payload: ProjectCreate, db: Session = Depends(get_db)):
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="name is required")
    store = HistoryStore(db)
    project = store.create_project(name, color=_validated_color(payload.color), project_type=payload.type)
    return _project_out(store, project.project_key)


@router.patch("/{project_key}", response_model=ProjectOut)
async def update_project(project_key: str, payload: ProjectUpdate, db: Session = Depends(get_db)):
    """Rename, recolor or retype a project; retyping recomputes daily totals."""
    store = HistoryStore(db)
    project = store.update_project(
        project_key,
        project_name=payload.name,
        color=_validated_color(payload.color),
        project_type=payload.type
    )
    if project is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Project not found")
    return _project_out(store, project.project_key)
