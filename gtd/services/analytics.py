"""
Service d'analyse: vue d'ensemble et revue hebdomadaire.

Agrégation côté serveur de ce que les pages analytics / review calculaient
à partir des listes de tâches, entrées de temps et journaux.
"""

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from gtd.core.dates import start_of_day
from gtd.models.journal import Journal
from gtd.models.project import Project
from gtd.models.task import Task, TaskStatus
from gtd.models.time_entry import TimeEntry
from gtd.services.stats_service import completion_rate, journal_stats, note_stats, task_stats
from gtd.services.tag_service import tag_stats

NO_PROJECT = "No project"
NO_PRIORITY = "none"


def _daily_counts(completed_at: List[datetime], first_day: date, days: int) -> Dict[str, int]:
    counts = {(first_day + timedelta(days=i)).isoformat(): 0 for i in range(days)}
    for stamp in completed_at:
        key = stamp.date().isoformat()
        if key in counts:
            counts[key] += 1
    return counts


def current_streak(active_days: set, today: date) -> int:
    """Jours consécutifs avec au moins une tâche terminée.

    Une journée en cours sans tâche terminée ne casse pas la série.
    """
    day = today if today in active_days else today - timedelta(days=1)
    streak = 0
    while day in active_days:
        streak += 1
        day -= timedelta(days=1)
    return streak


def longest_streak(active_days: set) -> int:
    best = 0
    for day in active_days:
        if day - timedelta(days=1) in active_days:
            continue
        length = 1
        while day + timedelta(days=length) in active_days:
            length += 1
        best = max(best, length)
    return best


def overview(db: Session, user_id: int, days: int = 30, now: datetime = None) -> dict:
    now = now or datetime.now()
    first_day = start_of_day(now) - timedelta(days=days - 1)

    completed = db.query(Task).filter(
        Task.user_id == user_id,
        Task.completed_at >= first_day,
        Task.completed_at <= now
    ).all()

    # la série se calcule sur tout l'historique, pas seulement la fenêtre
    all_days = {
        stamp.date()
        for (stamp,) in db.query(Task.completed_at).filter(
            Task.user_id == user_id,
            Task.completed_at.isnot(None)
        ).all()
    }

    by_priority: Dict[str, int] = {}
    by_project: Dict[str, int] = {}
    project_names = dict(db.query(Project.id, Project.name).filter(Project.user_id == user_id).all())
    for task in completed:
        priority = task.priority or NO_PRIORITY
        by_priority[priority] = by_priority.get(priority, 0) + 1
        project = project_names.get(task.project_id, NO_PROJECT)
        by_project[project] = by_project.get(project, 0) + 1

    tasks = task_stats(db, user_id, start_date=first_day, end_date=now)

    return {
        "days": days,
        "start": first_day,
        "end": now,
        "daily_completions": _daily_counts([t.completed_at for t in completed], first_day.date(), days),
        "current_streak": current_streak(all_days, now.date()),
        "longest_streak": longest_streak(all_days),
        "completion_rate": tasks["completion_rate"],
        "completed_by_priority": by_priority,
        "completed_by_project": by_project,
        "tasks": tasks,
        "notes": note_stats(db, user_id, start_date=first_day, end_date=now),
        "journals": journal_stats(db, user_id, start_date=first_day, end_date=now, now=now),
        "tags": tag_stats(db, user_id),
    }


def week_bounds(value: datetime) -> tuple:
    # semaine du lundi au dimanche
    start = start_of_day(value) - timedelta(days=value.weekday())
    return start, start + timedelta(days=7) - timedelta(microseconds=1)


def weekly_review(db: Session, user_id: int, week_start: Optional[datetime] = None, now: datetime = None) -> dict:
    now = now or datetime.now()
    start, end = week_bounds(week_start or now)

    created = db.query(Task).filter(
        Task.user_id == user_id,
        Task.created_at >= start,
        Task.created_at <= end
    ).all()
    completed = db.query(Task).filter(
        Task.user_id == user_id,
        Task.completed_at >= start,
        Task.completed_at <= end
    ).all()

    time_spent = db.query(func.coalesce(func.sum(TimeEntry.duration), 0)).filter(
        TimeEntry.user_id == user_id,
        TimeEntry.start_time >= start,
        TimeEntry.start_time <= end
    ).scalar()

    journals_written = db.query(Journal).filter(
        Journal.user_id == user_id,
        Journal.date >= start,
        Journal.date <= end
    ).count()

    status_counts: Dict[str, int] = {}
    priority_counts: Dict[str, int] = {}
    for task in created:
        status_counts[task.status] = status_counts.get(task.status, 0) + 1
        priority = task.priority or NO_PRIORITY
        priority_counts[priority] = priority_counts.get(priority, 0) + 1

    overdue = [
        t for t in created
        if t.due_date and t.due_date < now and t.status != TaskStatus.DONE.value
    ]
    with_feedback = [t for t in completed if t.feedback and t.feedback.strip()]

    daily = _daily_counts([t.completed_at for t in completed], start.date(), 7)
    busiest_day = None
    if completed:
        busiest_day = max(daily.items(), key=lambda kv: kv[1])[0]

    return {
        "week_start": start,
        "week_end": end,
        "tasks_created": len(created),
        "tasks_completed": len(completed),
        "completion_rate": completion_rate(len(completed), len(created)),
        "time_spent": int(time_spent or 0),
        "journals_written": journals_written,
        "daily_completions": daily,
        "busiest_day": busiest_day,
        "status_counts": status_counts,
        "priority_counts": priority_counts,
        "overdue_tasks": len(overdue),
        "feedback_rate": completion_rate(len(with_feedback), len(completed)),
    }
