from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from gtd.core.database import get_db
from gtd.core.deps import get_current_user, require_admin
from gtd.core.errors import NotFoundError
from gtd.models.user import User
from gtd.schemas.common import MessageResponse
from gtd.schemas.journal import AutoGenerateResponse
from gtd.schemas.scheduler import (
    ExecuteJournalRequest,
    SchedulerStatusResponse,
    ScheduleStatsResponse,
)
from gtd.services.journal_generator import TRIGGER_MANUAL, generate_journal
from gtd.services.scheduler import schedule_stats, task_scheduler

router = APIRouter(prefix="/scheduler", tags=["scheduler"])


@router.get("/status", response_model=SchedulerStatusResponse)
def get_status(admin: User = Depends(require_admin)):
    return SchedulerStatusResponse(data=task_scheduler.get_status())


@router.post("/journal", response_model=AutoGenerateResponse)
def execute_journal_generation(
    payload: ExecuteJournalRequest = ExecuteJournalRequest(),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    # déclenchement manuel pour soi-même, préférences respectées
    result = generate_journal(
        db,
        current_user.id,
        target_date=payload.date,
        template_name="Manual",
        trigger=TRIGGER_MANUAL
    )
    return AutoGenerateResponse.model_validate(result)


@router.post("/jobs/{job_id}/run", response_model=MessageResponse)
def execute_job(job_id: str, admin: User = Depends(require_admin)):
    if not task_scheduler.execute_manually(job_id):
        raise NotFoundError(f"Job {job_id} not found or failed")
    return MessageResponse(message=f"Job {job_id} executed")


@router.get("/schedule-stats", response_model=ScheduleStatsResponse)
def get_schedule_stats(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin)
):
    return ScheduleStatsResponse(data=schedule_stats(db))
