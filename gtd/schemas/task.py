"""Pydantic schemas for task request/response validation."""

import json
from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from gtd.models.task import TaskStatus, TaskType, Priority
from gtd.schemas.common import LocalDateTime, TIME_PATTERN, TagBrief, ProjectBrief, NoteBrief, TaskBrief


# ============ RÉCURRENCE ============

class _PatternBase(BaseModel):
    interval: int = Field(1, ge=1, le=365)
    time: Optional[str] = Field(None, pattern=TIME_PATTERN)


class DailyPattern(_PatternBase):
    type: Literal["daily"] = "daily"


class WeeklyPattern(_PatternBase):
    type: Literal["weekly"] = "weekly"
    days_of_week: Optional[List[Annotated[int, Field(ge=0, le=6)]]] = None  # 0 = dimanche


class MonthlyPattern(_PatternBase):
    type: Literal["monthly"] = "monthly"
    day_of_month: Optional[int] = Field(None, ge=1, le=31)


class YearlyPattern(_PatternBase):
    type: Literal["yearly"] = "yearly"


RecurringPattern = Annotated[
    Union[DailyPattern, WeeklyPattern, MonthlyPattern, YearlyPattern],
    Field(discriminator="type"),
]


# ============ ÉCRITURE ============

class TaskCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    type: TaskType = TaskType.NORMAL
    status: TaskStatus = TaskStatus.IDEA
    priority: Optional[Priority] = None
    due_date: Optional[LocalDateTime] = None
    due_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    project_id: Optional[int] = None
    tag_ids: Optional[List[int]] = None
    feedback: Optional[str] = None
    waiting_reason: Optional[str] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    type: Optional[TaskType] = None
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    due_date: Optional[LocalDateTime] = None
    due_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    project_id: Optional[int] = None
    tag_ids: Optional[List[int]] = None
    feedback: Optional[str] = None
    waiting_reason: Optional[str] = None


class TaskStatusUpdate(BaseModel):
    status: TaskStatus
    note: Optional[str] = Field(None, max_length=500)


class TaskRestart(BaseModel):
    new_status: TaskStatus = TaskStatus.TODO
    note: Optional[str] = Field(None, max_length=500)


class TaskStatusPositionUpdate(BaseModel):
    status: TaskStatus
    insert_index: Optional[int] = Field(None, ge=0)  # None = en tête de la colonne
    note: Optional[str] = Field(None, max_length=500)


class TaskReorder(BaseModel):
    task_ids: List[int] = Field(..., min_length=1)
    status: Optional[TaskStatus] = None
    project_id: Optional[int] = None


class TaskArchive(BaseModel):
    note: Optional[str] = Field(None, max_length=500)


class TimerRequest(BaseModel):
    description: Optional[str] = Field(None, max_length=200)


class SetRecurringRequest(BaseModel):
    is_recurring: bool
    recurring_pattern: Optional[RecurringPattern] = None


class TaskBatchUpdate(BaseModel):
    task_ids: List[int] = Field(..., min_length=1)
    status: Optional[TaskStatus] = None
    priority: Optional[Priority] = None
    project_id: Optional[int] = None
    tag_ids: Optional[List[int]] = None


class TaskBatchDelete(BaseModel):
    task_ids: List[int] = Field(..., min_length=1)


# ============ LECTURE ============

class StatusHistoryResponse(BaseModel):
    id: int
    from_status: Optional[str]
    to_status: str
    changed_at: datetime
    changed_by_id: int
    note: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class TimeEntryResponse(BaseModel):
    id: int
    task_id: int
    start_time: datetime
    end_time: Optional[datetime]
    duration: Optional[int]
    description: Optional[str]
    task: Optional[TaskBrief] = None

    model_config = ConfigDict(from_attributes=True)


class TaskResponse(BaseModel):
    """Schema for task responses from API."""

    id: int
    user_id: int
    project_id: Optional[int]
    parent_task_id: Optional[int]
    title: str
    description: Optional[str]
    type: TaskType
    status: TaskStatus
    priority: Optional[Priority]
    due_date: Optional[datetime]
    due_time: Optional[str]
    is_recurring: bool
    recurring_pattern: Optional[RecurringPattern] = None
    is_timer_active: bool
    timer_started_at: Optional[datetime]
    total_time_spent: int
    completed_at: Optional[datetime]
    completed_count: int
    feedback: Optional[str]
    waiting_reason: Optional[str]
    sort_order: int = 0
    project: Optional[ProjectBrief] = None
    tags: List[TagBrief] = []
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("recurring_pattern", mode="before")
    @classmethod
    def _decode_pattern(cls, value):
        # stocké en texte JSON côté base
        if isinstance(value, str):
            return json.loads(value)
        return value


class TaskDetailResponse(TaskResponse):
    time_entries: List[TimeEntryResponse] = []
    status_history: List[StatusHistoryResponse] = []
    linked_notes: List[NoteBrief] = []


class TaskListResponse(BaseModel):
    tasks: List[TaskResponse]
    next_cursor: Optional[str] = None


class TaskActionResponse(BaseModel):
    success: bool = True
    message: str
    task: Optional[TaskResponse] = None
    session_duration: Optional[int] = None


class TaskStatsResponse(BaseModel):
    total_tasks: int
    completed_tasks: int
    completion_rate: float
    status_counts: dict[str, int]
    priority_counts: dict[str, int]
    total_time_spent: int


class BatchResult(BaseModel):
    success: bool = True
    message: str
    count: int


class TimeEntryListResponse(BaseModel):
    entries: List[TimeEntryResponse]
    next_cursor: Optional[str] = None
