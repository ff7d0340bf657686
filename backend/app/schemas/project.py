from typing import Optional, List, Literal
from pydantic import BaseModel, Field

ProjectType = Literal['work', 'non_work']


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    color: Optional[str] = None
    type: Optional[ProjectType] = None


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, max_length=255)
    color: Optional[str] = None
    type: Optional[ProjectType] = None


class ProjectOut(BaseModel):
    key: str
    name: str
    color: str
    explicitColor: Optional[str] = None
    type: ProjectType = 'work'
    totalSeconds: int = 0
    entryCount: int = 0


class ProjectListResponse(BaseModel):
    projects: List[ProjectOut]
