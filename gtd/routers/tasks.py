from fastapi import APIRouter, Depends, status, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session
from typing import List, Literal, Optional
from datetime import datetime

from gtd.core.database import get_db
from gtd.core.dates import format_duration, to_local_naive
from gtd.core.deps import get_current_user
from gtd.models.user import User
from gtd.models.tag import Tag
from gtd.models.task import Task, TaskStatus, TaskType, Priority
from gtd.models.time_entry import TimeEntry
from gtd.schemas.task import (
    TaskCreate, TaskUpdate, TaskResponse, TaskDetailResponse, TaskListResponse,
    TaskStatusUpdate, TaskRestart, TaskArchive, TimerRequest, SetRecurringRequest,
    TaskActionResponse, TaskStatsResponse, TaskBatchUpdate, TaskBatchDelete, BatchResult,
    TimeEntryListResponse, TaskReorder, TaskStatusPositionUpdate,
)
from gtd.services import task_lifecycle
from gtd.services.ownership import get_owned
from gtd.services.pagination import paginate
from gtd.services.stats_service import task_stats
from gtd.services.task_service import (
    get_today_tasks,
    get_overdue_tasks,
    get_this_week_tasks
)

router = APIRouter(prefix="/tasks", tags=["tasks"])


def _owned_task(db: Session, task_id: int, user: User) -> Task:
    return get_owned(db, Task, task_id, user.id, label="Task")


@router.post("", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def create_task(
    task_data: TaskCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return task_lifecycle.create_task(db, current_user.id, task_data)


@router.get("", response_model=TaskListResponse)
def list_tasks(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    status_filter: Optional[List[TaskStatus]] = Query(None, alias="status"),
    priority: Optional[Priority] = Query(None),
    task_type: Optional[TaskType] = Query(None, alias="type"),
    project_id: Optional[int] = Query(None),
    tag_id: Optional[int] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    due_from: Optional[datetime] = Query(None),
    due_to: Optional[datetime] = Query(None),
    created_from: Optional[datetime] = Query(None),
    created_to: Optional[datetime] = Query(None),
    sort_by: Literal["created_at", "updated_at", "sort_order"] = Query("created_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = Query(None)
):
    query = db.query(Task).filter(Task.user_id == current_user.id)

    # les tâches archivées ne sortent que si on les demande explicitement
    if status_filter:
        query = query.filter(Task.status.in_([s.value for s in status_filter]))
    else:
        query = query.filter(Task.status != TaskStatus.ARCHIVED.value)

    if priority:
        query = query.filter(Task.priority == priority.value)
    if task_type:
        query = query.filter(Task.type == task_type.value)
    if project_id is not None:
        query = query.filter(Task.project_id == project_id)
    if tag_id is not None:
        query = query.filter(Task.tags.any(Tag.id == tag_id))
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))
    if due_from:
        query = query.filter(Task.due_date >= to_local_naive(due_from))
    if due_to:
        query = query.filter(Task.due_date <= to_local_naive(due_to))
    if created_from:
        query = query.filter(Task.created_at >= to_local_naive(created_from))
    if created_to:
        query = query.filter(Task.created_at <= to_local_naive(created_to))

    tasks, next_cursor = paginate(query, Task, sort_by, limit, cursor, descending=sort_order == "desc")
    return TaskListResponse(tasks=tasks, next_cursor=next_cursor)


@router.get("/today", response_model=List[TaskResponse])
def today(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return get_today_tasks(db, current_user.id)


@router.get("/overdue", response_model=List[TaskResponse])
def overdue(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return get_overdue_tasks(db, current_user.id)


@router.get("/this-week", response_model=List[TaskResponse])
def this_week(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return get_this_week_tasks(db, current_user.id)


@router.get("/stats", response_model=TaskStatsResponse)
def get_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    project_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None)
):
    return task_stats(db, current_user.id, project_id, to_local_naive(start_date), to_local_naive(end_date))


@router.get("/time-entries", response_model=TimeEntryListResponse)
def get_time_entries(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    task_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    limit: int = Query(50, ge=1, le=100),
    cursor: Optional[str] = Query(None)
):
    query = db.query(TimeEntry).filter(TimeEntry.user_id == current_user.id)
    if task_id is not None:
        _owned_task(db, task_id, current_user)
        query = query.filter(TimeEntry.task_id == task_id)
    if start_date:
        query = query.filter(TimeEntry.start_time >= to_local_naive(start_date))
    if end_date:
        query = query.filter(TimeEntry.start_time <= to_local_naive(end_date))

    entries, next_cursor = paginate(query, TimeEntry, "start_time", limit, cursor)
    return TimeEntryListResponse(entries=entries, next_cursor=next_cursor)


@router.post("/batch-update", response_model=BatchResult)
def batch_update(
    payload: TaskBatchUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    count = task_lifecycle.batch_update(db, current_user.id, payload)
    return BatchResult(message=f"Updated {count} tasks", count=count)


@router.post("/batch-delete", response_model=BatchResult)
def batch_delete(
    payload: TaskBatchDelete,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    count = task_lifecycle.batch_delete(db, current_user.id, payload.task_ids)
    return BatchResult(message=f"Deleted {count} tasks", count=count)


@router.post("/reorder", response_model=BatchResult)
def reorder_tasks(
    payload: TaskReorder,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    count = task_lifecycle.reorder_tasks(db, current_user.id, payload.task_ids, payload.status, payload.project_id)
    return BatchResult(message=f"Reordered {count} tasks", count=count)


@router.get("/{task_id}", response_model=TaskDetailResponse)
def get_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _owned_task(db, task_id, current_user)


@router.put("/{task_id}", response_model=TaskResponse)
def update_task(
    task_id: int,
    task_data: TaskUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _owned_task(db, task_id, current_user)
    return task_lifecycle.update_task(db, task, task_data, current_user.id)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_task(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _owned_task(db, task_id, current_user)
    task_lifecycle.delete_task(db, task)


# ============ STATUTS ============

@router.post("/{task_id}/status", response_model=TaskResponse)
def update_status(
    task_id: int,
    payload: TaskStatusUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _owned_task(db, task_id, current_user)
    return task_lifecycle.change_status(db, task, payload.status, current_user.id, payload.note)


@router.post("/{task_id}/status-position", response_model=TaskResponse)
def update_status_with_position(
    task_id: int,
    payload: TaskStatusPositionUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _owned_task(db, task_id, current_user)
    return task_lifecycle.update_status_with_position(
        db, task, payload.status, current_user.id, payload.insert_index, payload.note
    )


@router.post("/{task_id}/restart", response_model=TaskActionResponse)
def restart_task(
    task_id: int,
    payload: TaskRestart = TaskRestart(),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _owned_task(db, task_id, current_user)
    task = task_lifecycle.restart_task(db, task, current_user.id, payload.new_status, payload.note)
    return TaskActionResponse(message=f'Task "{task.title}" restarted', task=task)


@router.post("/{task_id}/archive", response_model=TaskActionResponse)
def archive_task(
    task_id: int,
    payload: TaskArchive = TaskArchive(),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _owned_task(db, task_id, current_user)
    task = task_lifecycle.archive_task(db, task, current_user.id, payload.note)
    return TaskActionResponse(message=f'Task "{task.title}" archived', task=task)


# ============ CHRONO ============

@router.post("/{task_id}/timer/start", response_model=TaskActionResponse)
def start_timer(
    task_id: int,
    payload: TimerRequest = TimerRequest(),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _owned_task(db, task_id, current_user)
    task = task_lifecycle.start_timer(db, task, current_user.id, payload.description)
    return TaskActionResponse(message=f'Timer started for "{task.title}"', task=task)


@router.post("/{task_id}/timer/pause", response_model=TaskActionResponse)
def pause_timer(
    task_id: int,
    payload: TimerRequest = TimerRequest(),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _owned_task(db, task_id, current_user)
    task, duration = task_lifecycle.pause_timer(db, task, payload.description)
    return TaskActionResponse(
        message=f'Timer paused for "{task.title}", session {format_duration(duration)}',
        task=task,
        session_duration=duration
    )


@router.post("/{task_id}/timer/stop", response_model=TaskActionResponse)
def stop_timer(
    task_id: int,
    payload: TimerRequest = TimerRequest(),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _owned_task(db, task_id, current_user)
    task, duration = task_lifecycle.stop_timer(db, task, current_user.id, payload.description)
    return TaskActionResponse(
        message=f'Task "{task.title}" completed, session {format_duration(duration)}',
        task=task,
        session_duration=duration
    )


# ============ RÉCURRENCE ============

@router.put("/{task_id}/recurring", response_model=TaskResponse)
def set_recurring(
    task_id: int,
    payload: SetRecurringRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _owned_task(db, task_id, current_user)
    return task_lifecycle.set_recurring(db, task, payload.is_recurring, payload.recurring_pattern)


@router.post("/{task_id}/next-instance", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
def generate_next_instance(
    task_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    task = _owned_task(db, task_id, current_user)
    return task_lifecycle.generate_next_instance(db, task, current_user.id)
