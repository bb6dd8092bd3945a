"""Task service: vues par échéance (aujourd'hui, en retard, cette semaine)"""

from sqlalchemy.orm import Session
from datetime import datetime, timedelta
from typing import List
from gtd.models.task import Task, TaskStatus


def _visible(db: Session, user_id: int):
    return db.query(Task).filter(
        Task.user_id == user_id,
        Task.status != TaskStatus.ARCHIVED.value
    )


def get_today_tasks(db: Session, user_id: int, now: datetime = None) -> List[Task]:
    today = (now or datetime.now()).date()
    day_start = datetime.combine(today, datetime.min.time())
    day_end = datetime.combine(today + timedelta(days=1), datetime.min.time())

    return _visible(db, user_id).filter(
        Task.due_date >= day_start,
        Task.due_date < day_end
    ).order_by(Task.due_date.asc(), Task.id.asc()).all()


def get_overdue_tasks(db: Session, user_id: int, now: datetime = None) -> List[Task]:
    today = (now or datetime.now()).date()
    today_start = datetime.combine(today, datetime.min.time())

    return _visible(db, user_id).filter(
        Task.due_date < today_start,
        Task.status != TaskStatus.DONE.value
    ).order_by(Task.due_date.asc(), Task.id.asc()).all()


def get_this_week_tasks(db: Session, user_id: int, now: datetime = None) -> List[Task]:
    today = (now or datetime.now()).date()
    # jusqu'au dimanche inclus; le dimanche on prend la semaine suivante
    days_until_end = (6 - today.weekday()) % 7
    if days_until_end == 0:
        days_until_end = 7

    week_end = today + timedelta(days=days_until_end)
    day_start = datetime.combine(today, datetime.min.time())
    end_time = datetime.combine(week_end, datetime.max.time())

    return _visible(db, user_id).filter(
        Task.due_date >= day_start,
        Task.due_date <= end_time
    ).order_by(Task.due_date.asc(), Task.id.asc()).all()
