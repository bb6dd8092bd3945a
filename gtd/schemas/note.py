from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import List, Literal, Optional

from gtd.schemas.common import ProjectBrief, TagBrief, TaskBrief


class NoteCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    summary: Optional[str] = Field(None, max_length=500)
    is_pinned: bool = False
    project_id: Optional[int] = None
    tag_ids: Optional[List[int]] = None
    linked_task_ids: Optional[List[int]] = None


class NoteUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    content: Optional[str] = Field(None, min_length=1)
    summary: Optional[str] = Field(None, max_length=500)
    is_pinned: Optional[bool] = None
    project_id: Optional[int] = None
    tag_ids: Optional[List[int]] = None
    linked_task_ids: Optional[List[int]] = None


class NoteArchive(BaseModel):
    is_archived: bool


class NoteTaskLink(BaseModel):
    task_id: int


class NoteBatchOperation(BaseModel):
    note_ids: List[int] = Field(..., min_length=1)
    operation: Literal["archive", "unarchive", "delete", "move"]
    target_project_id: Optional[int] = None


class NoteResponse(BaseModel):
    id: int
    user_id: int
    project_id: Optional[int]
    title: str
    content: str
    summary: Optional[str]
    is_pinned: bool
    is_archived: bool
    project: Optional[ProjectBrief] = None
    tags: List[TagBrief] = []
    linked_tasks: List[TaskBrief] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NoteListResponse(BaseModel):
    notes: List[NoteResponse]
    next_cursor: Optional[str] = None


class NoteStatsResponse(BaseModel):
    total_notes: int
    active_notes: int
    archived_notes: int
    notes_with_tasks: int
    notes_without_tasks: int
