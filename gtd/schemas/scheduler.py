from pydantic import BaseModel
from datetime import datetime
from typing import Dict, List, Optional

from gtd.schemas.common import LocalDateTime


class JobStatus(BaseModel):
    id: str
    name: str
    interval_seconds: int
    enabled: bool
    last_run_at: Optional[datetime] = None
    next_run: Optional[datetime] = None
    last_error: Optional[str] = None


class SchedulerStatus(BaseModel):
    is_running: bool
    poll_seconds: int
    jobs: List[JobStatus]


class SchedulerStatusResponse(BaseModel):
    success: bool = True
    data: SchedulerStatus


class ExecuteJournalRequest(BaseModel):
    date: Optional[LocalDateTime] = None


class ScheduleStats(BaseModel):
    total_users: int
    enabled_users: int
    disabled_users: int
    schedule_distribution: Dict[str, int]
    most_common_time: str


class ScheduleStatsResponse(BaseModel):
    success: bool = True
    data: ScheduleStats
