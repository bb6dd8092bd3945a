from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Literal, Optional

COLOR_PATTERN = r"^#[0-9A-Fa-f]{6}$"


class ProjectCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)


class ProjectUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)


class ProjectArchive(BaseModel):
    is_archived: bool


class ProjectBatchOperation(BaseModel):
    project_ids: List[int] = Field(..., min_length=1)
    operation: Literal["archive", "unarchive", "delete"]


class ProjectResponse(BaseModel):
    id: int
    user_id: int
    name: str
    description: Optional[str]
    color: Optional[str]
    is_archived: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProjectWithCounts(ProjectResponse):
    task_count: int = 0
    note_count: int = 0


class ProjectListResponse(BaseModel):
    projects: List[ProjectWithCounts]
    next_cursor: Optional[str] = None


class ProjectStatsResponse(BaseModel):
    project_name: str
    total_tasks: int
    completed_tasks: int
    completion_rate: float
    total_notes: int
    status_counts: dict[str, int]
    priority_counts: dict[str, int]
    total_time_spent: int
