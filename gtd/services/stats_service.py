"""Agrégats pour les tableaux de bord (tâches, projets, notes, journaux)."""

from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from gtd.core.dates import start_of_day
from gtd.models.journal import Journal
from gtd.models.note import Note, note_task_links
from gtd.models.project import Project
from gtd.models.task import Task, TaskStatus
from gtd.schemas.journal import make_preview


def completion_rate(completed: int, total: int) -> float:
    if total == 0:
        return 0.0
    return round(completed / total * 100, 2)


def _in_range(query, column, start: Optional[datetime], end: Optional[datetime]):
    if start is not None:
        query = query.filter(column >= start)
    if end is not None:
        query = query.filter(column <= end)
    return query


# ============ TÂCHES / PROJETS ============

def task_stats(db: Session, user_id: int, project_id: int = None,
               start_date: datetime = None, end_date: datetime = None) -> dict:
    query = db.query(Task).filter(Task.user_id == user_id)
    if project_id is not None:
        query = query.filter(Task.project_id == project_id)
    query = _in_range(query, Task.created_at, start_date, end_date)

    total = query.count()
    completed = query.filter(Task.status == TaskStatus.DONE.value).count()

    status_counts = dict(
        query.with_entities(Task.status, func.count(Task.id)).group_by(Task.status).all()
    )
    priority_counts = {
        priority: count
        for priority, count in query.with_entities(Task.priority, func.count(Task.id))
        .group_by(Task.priority).all()
        if priority
    }
    total_time = query.with_entities(func.coalesce(func.sum(Task.total_time_spent), 0)).scalar()

    return {
        "total_tasks": total,
        "completed_tasks": completed,
        "completion_rate": completion_rate(completed, total),
        "status_counts": status_counts,
        "priority_counts": priority_counts,
        "total_time_spent": int(total_time or 0),
    }


def project_stats(db: Session, project: Project, start_date: datetime = None, end_date: datetime = None) -> dict:
    stats = task_stats(db, project.user_id, project.id, start_date, end_date)
    stats["project_name"] = project.name
    stats["total_notes"] = db.query(Note).filter(Note.project_id == project.id).count()
    return stats


def project_content_counts(db: Session, project_id: int) -> tuple:
    tasks = db.query(Task).filter(Task.project_id == project_id).count()
    notes = db.query(Note).filter(Note.project_id == project_id).count()
    return tasks, notes


# ============ NOTES ============

def note_stats(db: Session, user_id: int, project_id: int = None,
               start_date: datetime = None, end_date: datetime = None) -> dict:
    query = db.query(Note).filter(Note.user_id == user_id)
    if project_id is not None:
        query = query.filter(Note.project_id == project_id)
    query = _in_range(query, Note.created_at, start_date, end_date)

    total = query.count()
    archived = query.filter(Note.is_archived == True).count()
    with_tasks = query.filter(
        Note.id.in_(db.query(note_task_links.c.note_id))
    ).count()

    return {
        "total_notes": total,
        "active_notes": total - archived,
        "archived_notes": archived,
        "notes_with_tasks": with_tasks,
        "notes_without_tasks": total - with_tasks,
    }


# ============ JOURNAUX ============

def consecutive_days(journal_dates: List[datetime], today: date) -> int:
    """Nombre de jours consécutifs avec un journal, en remontant depuis aujourd'hui."""
    days = {d.date() for d in journal_dates}
    count = 0
    current = today
    while current in days:
        count += 1
        current -= timedelta(days=1)
    return count


def journal_stats(db: Session, user_id: int, start_date: datetime = None, end_date: datetime = None,
                  now: datetime = None) -> dict:
    now = now or datetime.now()
    query = _in_range(db.query(Journal).filter(Journal.user_id == user_id), Journal.date, start_date, end_date)
    journals = query.all()

    total = len(journals)
    total_words = sum(len(j.content) for j in journals)

    templates: Dict[str, int] = {}
    for journal in journals:
        if journal.template:
            templates[journal.template] = templates.get(journal.template, 0) + 1

    # au plus un an d'historique pour la série
    recent = db.query(Journal.date).filter(
        Journal.user_id == user_id,
        Journal.date >= start_of_day(now) - timedelta(days=365)
    ).all()

    return {
        "total_journals": total,
        "total_words": total_words,
        "consecutive_days": consecutive_days([d for (d,) in recent], now.date()),
        "templates_used": templates,
        "average_words_per_journal": round(total_words / total) if total else 0,
    }


def journal_timeline(db: Session, user_id: int, year: int, month: int = None) -> dict:
    if month:
        start = datetime(year, month, 1)
        end = datetime(year + 1, 1, 1) if month == 12 else datetime(year, month + 1, 1)
    else:
        start = datetime(year, 1, 1)
        end = datetime(year + 1, 1, 1)
    end = end - timedelta(microseconds=1)

    journals = db.query(Journal).filter(
        Journal.user_id == user_id,
        Journal.date >= start,
        Journal.date <= end
    ).order_by(Journal.date.asc()).all()

    timeline = [
        {
            "id": j.id,
            "date": j.date,
            "template": j.template,
            "preview": make_preview(j.content, 200),
            "word_count": len(j.content),
        }
        for j in journals
    ]
    calendar = {j.date.strftime("%Y-%m-%d"): True for j in journals}
    return {"timeline": timeline, "calendar": calendar, "total_days": len(journals), "start": start, "end": end}


def template_stats(db: Session, user_id: int) -> List[dict]:
    rows = db.query(Journal.template, func.count(Journal.id)).filter(
        Journal.user_id == user_id,
        Journal.template.isnot(None)
    ).group_by(Journal.template).order_by(func.count(Journal.id).desc()).all()
    return [{"template": template, "count": count} for template, count in rows]


def writing_habits(db: Session, user_id: int, days: int = 30, now: datetime = None) -> dict:
    now = now or datetime.now()
    since = now - timedelta(days=days)
    journals = db.query(Journal).filter(
        Journal.user_id == user_id,
        Journal.date >= since
    ).order_by(Journal.date.asc()).all()

    writing_times: Dict[int, int] = {}
    weekly_pattern: Dict[int, int] = {}
    total_words = 0
    for journal in journals:
        hour = journal.created_at.hour
        weekday = journal.date.weekday()
        writing_times[hour] = writing_times.get(hour, 0) + 1
        weekly_pattern[weekday] = weekly_pattern.get(weekday, 0) + 1
        total_words += len(journal.content)

    most_active_hour = max(writing_times.items(), key=lambda kv: kv[1])[0] if writing_times else 0
    most_active_day = max(weekly_pattern.items(), key=lambda kv: kv[1])[0] if weekly_pattern else 0

    return {
        "total_entries": len(journals),
        "average_words": round(total_words / len(journals)) if journals else 0,
        "total_words": total_words,
        "writing_times": writing_times,
        "weekly_pattern": weekly_pattern,
        "most_active_hour": most_active_hour,
        "most_active_day": most_active_day,
        "consistency": round(len(journals) / days, 4),
    }
