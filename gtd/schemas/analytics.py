from pydantic import BaseModel
from datetime import datetime
from typing import Dict, Optional

from gtd.schemas.journal import JournalStatsResponse
from gtd.schemas.note import NoteStatsResponse
from gtd.schemas.tag import TagStatsResponse
from gtd.schemas.task import TaskStatsResponse


class OverviewResponse(BaseModel):
    days: int
    start: datetime
    end: datetime
    daily_completions: Dict[str, int]
    current_streak: int
    longest_streak: int
    completion_rate: float
    completed_by_priority: Dict[str, int]
    completed_by_project: Dict[str, int]
    tasks: TaskStatsResponse
    notes: NoteStatsResponse
    journals: JournalStatsResponse
    tags: TagStatsResponse


class WeeklyReviewResponse(BaseModel):
    week_start: datetime
    week_end: datetime
    tasks_created: int
    tasks_completed: int
    completion_rate: float
    time_spent: int
    journals_written: int
    daily_completions: Dict[str, int]
    busiest_day: Optional[str] = None
    status_counts: Dict[str, int]
    priority_counts: Dict[str, int]
    overdue_tasks: int
    feedback_rate: float
