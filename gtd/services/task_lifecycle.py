"""
Service du cycle de vie des tâches.

- transitions de statut + historique (append-only)
- chronomètre start / pause / stop, un seul chrono actif par utilisateur
- récurrence (motif JSON décodé uniquement ici)
- ordre dans les colonnes kanban (sort_order)
- déclenchement du journal quand une tâche passe à done

Toutes les fonctions acceptent ``now`` pour rendre les tests déterministes.
"""

import json
import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from dateutil.relativedelta import relativedelta
from pydantic import TypeAdapter, ValidationError
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gtd.core.dates import elapsed_seconds
from gtd.core.errors import BadRequestError, ConflictError, GTDError, NotFoundError
from gtd.models.project import Project
from gtd.models.task import Task, TaskStatus
from gtd.models.task_status_history import TaskStatusHistory
from gtd.models.time_entry import TimeEntry
from gtd.schemas.task import RecurringPattern, TaskBatchUpdate, TaskCreate, TaskUpdate
from gtd.services.journal_generator import TRIGGER_TASK_COMPLETE, generate_journal
from gtd.services.ownership import get_owned, get_owned_many
from gtd.services.tag_service import resolve_tags

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = (TaskStatus.DONE.value, TaskStatus.ARCHIVED.value)

_pattern_adapter = TypeAdapter(RecurringPattern)


def _now(now: Optional[datetime]) -> datetime:
    return now or datetime.now()


def _value(status) -> str:
    return status.value if isinstance(status, TaskStatus) else status


# ============ HISTORIQUE / CHRONO (sans commit) ============

def _record_history(db: Session, task: Task, from_status: Optional[str], to_status: str,
                    actor_id: int, note: Optional[str], now: datetime) -> TaskStatusHistory:
    entry = TaskStatusHistory(
        task_id=task.id,
        from_status=from_status,
        to_status=to_status,
        changed_at=now,
        changed_by_id=actor_id,
        note=note,
    )
    db.add(entry)
    return entry


def _open_entry(db: Session, task_id: int) -> Optional[TimeEntry]:
    return db.query(TimeEntry).filter(
        TimeEntry.task_id == task_id,
        TimeEntry.end_time.is_(None)
    ).order_by(TimeEntry.start_time.desc()).first()


def _force_stop_timer(db: Session, task: Task, now: datetime) -> None:
    """Coupe le chrono sans comptabiliser la session (durée laissée à null)."""
    if not task.is_timer_active:
        return
    entry = _open_entry(db, task.id)
    if entry:
        entry.end_time = now
    task.is_timer_active = False
    task.timer_started_at = None


def _apply_status(db: Session, task: Task, to_status, actor_id: int, note: Optional[str],
                  now: datetime, from_status: Optional[str] = None) -> bool:
    """Applique une transition. Retourne False si c'est un no-op."""
    to_status = _value(to_status)
    current = task.status
    if to_status == current:
        return False

    if to_status == TaskStatus.DONE.value:
        task.completed_at = now
        task.completed_count = (task.completed_count or 0) + 1
        _force_stop_timer(db, task, now)
    elif current == TaskStatus.DONE.value:
        task.completed_at = None

    if to_status == TaskStatus.ARCHIVED.value:
        _force_stop_timer(db, task, now)

    task.status = to_status
    _record_history(db, task, from_status or current, to_status, actor_id, note, now)
    return True


def _notify_completion(db: Session, user_id: int, now: datetime) -> None:
    # l'échec de génération du journal ne doit jamais faire échouer l'opération sur la tâche
    try:
        result = generate_journal(db, user_id, target_date=now, trigger=TRIGGER_TASK_COMPLETE)
        if not result.success:
            logger.debug(f"Journal not updated on completion for user {user_id}: {result.message}")
    except GTDError as e:
        db.rollback()
        logger.error(f"Journal update after task completion failed for user {user_id}: {e.message}", exc_info=True)


def _leading_sort_order(db: Session, user_id: int, status: str, exclude_id: int = None) -> int:
    """Position qui place une tâche en tête de sa colonne de statut."""
    query = db.query(func.min(Task.sort_order)).filter(Task.user_id == user_id, Task.status == status)
    if exclude_id is not None:
        query = query.filter(Task.id != exclude_id)
    current_min = query.scalar()
    return (1 if current_min is None else current_min) - 1


def _commit(db: Session, *objs) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("Another timer was started concurrently") from e
    for obj in objs:
        db.refresh(obj)


# ============ CRÉATION / MISE À JOUR ============

def create_task(db: Session, user_id: int, data: TaskCreate, now: datetime = None) -> Task:
    now = _now(now)
    if data.project_id is not None:
        get_owned(db, Project, data.project_id, user_id, label="Project")
    tags = resolve_tags(db, user_id, data.tag_ids)

    fields = data.model_dump(exclude={"tag_ids"})
    fields["type"] = _value(fields["type"])
    fields["status"] = _value(fields["status"])
    if fields.get("priority") is not None:
        fields["priority"] = _value(fields["priority"])

    sort_order = _leading_sort_order(db, user_id, fields["status"])
    task = Task(user_id=user_id, sort_order=sort_order, created_at=now, updated_at=now, **fields)
    task.tags = tags
    if task.status == TaskStatus.DONE.value:
        task.completed_at = now
        task.completed_count = 1
    db.add(task)
    db.flush()

    _record_history(db, task, None, task.status, user_id, "Task created", now)
    db.commit()
    db.refresh(task)

    if task.status == TaskStatus.DONE.value:
        _notify_completion(db, user_id, now)
    return task


def update_task(db: Session, task: Task, data: TaskUpdate, actor_id: int, now: datetime = None) -> Task:
    now = _now(now)
    update_data = data.model_dump(exclude_unset=True)

    new_status = update_data.pop("status", None)
    tag_ids = update_data.pop("tag_ids", None)

    if update_data.get("project_id") is not None:
        get_owned(db, Project, update_data["project_id"], task.user_id, label="Project")
    if tag_ids is not None:
        task.tags = resolve_tags(db, task.user_id, tag_ids)

    for field, value in update_data.items():
        if field in ("type", "priority") and value is not None:
            value = _value(value)
        if field in ("title", "type") and value is None:
            continue
        setattr(task, field, value)

    completed = False
    if new_status is not None:
        completed = _apply_status(db, task, new_status, actor_id, "Status changed by update", now) \
            and task.status == TaskStatus.DONE.value

    task.updated_at = now
    db.commit()
    db.refresh(task)

    if completed:
        _notify_completion(db, task.user_id, now)
    return task


def delete_task(db: Session, task: Task) -> None:
    db.delete(task)
    db.commit()


# ============ STATUTS ============

def change_status(db: Session, task: Task, to_status, actor_id: int, note: str = None,
                  now: datetime = None) -> Task:
    now = _now(now)
    if not _apply_status(db, task, to_status, actor_id, note, now):
        return task

    task.updated_at = now
    db.commit()
    db.refresh(task)

    if task.status == TaskStatus.DONE.value:
        _notify_completion(db, task.user_id, now)
    return task


def restart_task(db: Session, task: Task, actor_id: int, new_status=TaskStatus.TODO,
                 note: str = None, now: datetime = None) -> Task:
    now = _now(now)
    if task.status not in TERMINAL_STATUSES:
        raise BadRequestError("Only done or archived tasks can be restarted")

    new_status = _value(new_status)
    if new_status in TERMINAL_STATUSES:
        raise BadRequestError("A task cannot be restarted into a done or archived status")

    _apply_status(db, task, new_status, actor_id, note or "Task restarted", now)
    task.completed_at = None
    task.updated_at = now
    db.commit()
    db.refresh(task)
    return task


def archive_task(db: Session, task: Task, actor_id: int, note: str = None, now: datetime = None) -> Task:
    now = _now(now)
    if task.status == TaskStatus.ARCHIVED.value:
        raise BadRequestError("Task is already archived")

    _apply_status(db, task, TaskStatus.ARCHIVED, actor_id, note or "Task archived", now)
    task.updated_at = now
    db.commit()
    db.refresh(task)
    return task


# ============ ORDRE (kanban) ============

def _column_ids(db: Session, user_id: int, status: str, exclude_id: int = None) -> List[int]:
    query = db.query(Task.id).filter(Task.user_id == user_id, Task.status == status)
    if exclude_id is not None:
        query = query.filter(Task.id != exclude_id)
    rows = query.order_by(Task.sort_order.asc(), Task.created_at.desc(), Task.id.desc()).all()
    return [row.id for row in rows]


def _renumber(db: Session, user_id: int, ordered_ids: List[int]) -> None:
    tasks = {t.id: t for t in db.query(Task).filter(Task.user_id == user_id, Task.id.in_(ordered_ids)).all()}
    for index, task_id in enumerate(ordered_ids):
        tasks[task_id].sort_order = index


def reorder_tasks(db: Session, user_id: int, task_ids: List[int], status=None, project_id: int = None) -> int:
    """Range les tâches dans l'ordre donné (sort_order = position dans la liste)."""
    if len(set(task_ids)) != len(task_ids):
        raise BadRequestError("Duplicate task ids in reorder request")

    tasks = get_owned_many(db, Task, task_ids, user_id, label="tasks")
    if status is not None and any(t.status != _value(status) for t in tasks):
        raise NotFoundError("Some tasks not found")
    if project_id is not None and any(t.project_id != project_id for t in tasks):
        raise NotFoundError("Some tasks not found")

    _renumber(db, user_id, task_ids)
    db.commit()
    return len(task_ids)


def update_status_with_position(db: Session, task: Task, to_status, actor_id: int,
                                insert_index: int = None, note: str = None, now: datetime = None) -> Task:
    """Déplacement kanban : changement de statut et/ou de position dans la colonne.

    Sans ``insert_index`` la tâche passe en tête de sa nouvelle colonne.
    """
    now = _now(now)
    to_status = _value(to_status)

    if to_status == task.status:
        if insert_index is None:
            return task
        ids = _column_ids(db, task.user_id, to_status, exclude_id=task.id)
        ids.insert(min(insert_index, len(ids)), task.id)
        _renumber(db, task.user_id, ids)
        task.updated_at = now
        db.commit()
        db.refresh(task)
        return task

    if insert_index is not None:
        ids = _column_ids(db, task.user_id, to_status, exclude_id=task.id)
        ids.insert(min(insert_index, len(ids)), task.id)
    else:
        task.sort_order = _leading_sort_order(db, task.user_id, to_status, exclude_id=task.id)
        ids = None

    _apply_status(db, task, to_status, actor_id, note or "Status and position updated", now)
    if ids is not None:
        _renumber(db, task.user_id, ids)
    task.updated_at = now
    db.commit()
    db.refresh(task)

    if task.status == TaskStatus.DONE.value:
        _notify_completion(db, task.user_id, now)
    return task


# ============ CHRONO ============

def start_timer(db: Session, task: Task, actor_id: int, description: str = None,
                now: datetime = None) -> Task:
    now = _now(now)
    if task.is_timer_active:
        raise BadRequestError("Timer is already running for this task")
    if task.status in TERMINAL_STATUSES:
        raise BadRequestError("Cannot start a timer on a done or archived task")

    # un seul chrono par utilisateur: on coupe les autres avant d'activer celui-ci
    others = db.query(Task).filter(
        Task.user_id == task.user_id,
        Task.is_timer_active == True,
        Task.id != task.id
    ).all()
    for other in others:
        _force_stop_timer(db, other, now)
        logger.info(f"Force-closed timer of task {other.id} (user {task.user_id})")
    if others:
        db.flush()

    task.is_timer_active = True
    task.timer_started_at = now
    db.add(TimeEntry(task_id=task.id, user_id=task.user_id, start_time=now, description=description))

    if task.status == TaskStatus.IDEA.value:
        _apply_status(db, task, TaskStatus.IN_PROGRESS, actor_id, "Timer started", now)

    task.updated_at = now
    _commit(db, task)
    return task


def _close_session(db: Session, task: Task, now: datetime, description: str = None) -> int:
    if not task.is_timer_active or task.timer_started_at is None:
        raise BadRequestError("Timer is not running for this task")

    duration = elapsed_seconds(task.timer_started_at, now)
    entry = _open_entry(db, task.id)
    if entry:
        entry.end_time = now
        entry.duration = duration
        if description:
            entry.description = description

    task.total_time_spent = (task.total_time_spent or 0) + duration
    task.is_timer_active = False
    task.timer_started_at = None
    return duration


def pause_timer(db: Session, task: Task, description: str = None, now: datetime = None) -> Tuple[Task, int]:
    now = _now(now)
    duration = _close_session(db, task, now, description)
    task.updated_at = now
    db.commit()
    db.refresh(task)
    return task, duration


def stop_timer(db: Session, task: Task, actor_id: int, description: str = None,
               now: datetime = None) -> Tuple[Task, int]:
    now = _now(now)
    duration = _close_session(db, task, now, description)
    _apply_status(db, task, TaskStatus.DONE, actor_id, "Timer stopped, task completed", now)
    task.updated_at = now
    db.commit()
    db.refresh(task)

    _notify_completion(db, task.user_id, now)
    return task, duration


# ============ RÉCURRENCE ============

def decode_pattern(raw: Optional[str]):
    if not raw:
        return None
    try:
        return _pattern_adapter.validate_python(json.loads(raw))
    except (ValueError, ValidationError) as e:
        raise BadRequestError("Stored recurring pattern is invalid") from e


def next_due_date(pattern, now: datetime) -> datetime:
    if pattern.type == "daily":
        return now + timedelta(days=pattern.interval)
    if pattern.type == "weekly":
        return now + timedelta(weeks=pattern.interval)
    if pattern.type == "monthly":
        return now + relativedelta(months=pattern.interval)
    return now + relativedelta(years=pattern.interval)


def set_recurring(db: Session, task: Task, is_recurring: bool, pattern=None, now: datetime = None) -> Task:
    now = _now(now)
    if is_recurring and pattern is None:
        raise BadRequestError("A recurring task needs a recurring pattern")

    task.is_recurring = is_recurring
    task.recurring_pattern = pattern.model_dump_json(exclude_none=True) if is_recurring else None
    task.updated_at = now
    db.commit()
    db.refresh(task)
    return task


def generate_next_instance(db: Session, task: Task, actor_id: int, now: datetime = None) -> Task:
    now = _now(now)
    if not task.is_recurring or not task.recurring_pattern:
        raise BadRequestError("Task is not a recurring task")

    pattern = decode_pattern(task.recurring_pattern)
    # nouvelle occurrence en tête de la colonne todo
    sort_order = _leading_sort_order(db, task.user_id, TaskStatus.TODO.value)
    instance = Task(
        user_id=task.user_id,
        project_id=task.project_id,
        parent_task_id=task.id,
        title=task.title,
        description=task.description,
        type=task.type,
        priority=task.priority,
        status=TaskStatus.TODO.value,
        due_date=next_due_date(pattern, now),
        due_time=pattern.time or task.due_time,
        is_recurring=True,
        recurring_pattern=task.recurring_pattern,
        sort_order=sort_order,
        created_at=now,
        updated_at=now,
    )
    instance.tags = list(task.tags)
    db.add(instance)
    db.flush()

    _record_history(db, instance, None, instance.status, actor_id, f"Generated from recurring task {task.id}", now)
    db.commit()
    db.refresh(instance)
    return instance


# ============ LOTS ============

def batch_update(db: Session, user_id: int, data: TaskBatchUpdate, now: datetime = None) -> int:
    now = _now(now)
    tasks: List[Task] = get_owned_many(db, Task, data.task_ids, user_id, label="tasks")

    if data.project_id is not None:
        get_owned(db, Project, data.project_id, user_id, label="Project")
    tags = resolve_tags(db, user_id, data.tag_ids) if data.tag_ids is not None else None

    completed = False
    for task in tasks:
        if data.status is not None:
            if _apply_status(db, task, data.status, user_id, "Batch update", now) \
                    and task.status == TaskStatus.DONE.value:
                completed = True
        if data.priority is not None:
            task.priority = _value(data.priority)
        if data.project_id is not None:
            task.project_id = data.project_id
        if tags is not None:
            task.tags = list(tags)
        task.updated_at = now

    db.commit()
    if completed:
        _notify_completion(db, user_id, now)
    return len(tasks)


def batch_delete(db: Session, user_id: int, task_ids: List[int]) -> int:
    tasks = get_owned_many(db, Task, task_ids, user_id, label="tasks")
    for task in tasks:
        db.delete(task)
    db.commit()
    return len(tasks)
