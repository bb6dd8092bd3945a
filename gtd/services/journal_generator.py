"""
Service de génération automatique du journal quotidien.

Déclencheurs :
1. appel manuel (routes journals / scheduler)
2. passage d'une tâche à done (si on_task_complete)
3. planification quotidienne (scheduler, heure choisie par l'utilisateur)

Un journal par (jour, utilisateur) : s'il existe déjà, seule la section
« Completed Today » est régénérée, le reste du texte de l'utilisateur est gardé.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from gtd.core.config import settings as app_settings
from gtd.core.dates import day_bounds, format_duration
from gtd.core.errors import ConflictError, InternalError
from gtd.models.journal import Journal
from gtd.models.task import Task
from gtd.models.user import User
from gtd.schemas.user_settings import AutoJournalSettings
from gtd.services.user_settings import parse_settings

logger = logging.getLogger(__name__)

TRIGGER_MANUAL = "manual"
TRIGGER_TASK_COMPLETE = "task_complete"
TRIGGER_SCHEDULE = "schedule"

COMPLETED_HEADING = "## Completed Today"
NO_TASKS_PLACEHOLDER = "_No tasks completed today._"

PRIORITY_LABELS = {"low": "Low", "medium": "Medium", "high": "High", "urgent": "Urgent"}
TYPE_LABELS = {"normal": "Normal", "deadline": "Deadline", "idea": "Idea"}

_COMPLETED_SECTION_RE = re.compile(r"^## Completed Today[ \t]*(?:\n|\Z)(.*?)(?=^## |\Z)", re.MULTILINE | re.DOTALL)


@dataclass
class AutoGenerateResult:
    success: bool
    message: str
    journal_id: Optional[int] = None
    tasks_count: Optional[int] = None


def policy_block_reason(prefs: AutoJournalSettings, trigger: str) -> Optional[str]:
    """Retourne un message si les préférences interdisent ce déclencheur."""
    if not prefs.enabled:
        return "Automatic journal generation is disabled in your settings"
    if trigger == TRIGGER_TASK_COMPLETE and not prefs.on_task_complete:
        return "Journal update on task completion is disabled in your settings"
    if trigger == TRIGGER_SCHEDULE and not prefs.daily_schedule:
        return "Daily scheduled journal generation is disabled in your settings"
    return None


def render_task_line(task: Task, include_time_spent=True, include_project=True, include_tags=True) -> str:
    line = f"- [x] **{task.title}**"

    if include_project and task.project is not None:
        line += f" ({task.project.name})"
    if task.priority:
        line += f" [{PRIORITY_LABELS.get(task.priority, task.priority)}]"
    if task.type:
        line += f" [{TYPE_LABELS.get(task.type, task.type)}]"
    if include_time_spent and task.total_time_spent and task.total_time_spent >= 60:
        line += f" [Time: {format_duration(task.total_time_spent)}]"
    if include_tags and task.tags:
        line += " #" + ", ".join(tag.name for tag in task.tags)

    line += f"\n  > {task.description}" if task.description else "\n  > _No description_"
    line += f"\n  💭 {task.feedback}" if task.feedback else "\n  💭 _No feedback_"
    return line


def render_completed_section(tasks: Iterable[Task], **include) -> str:
    lines = [render_task_line(task, **include) for task in tasks]
    if not lines:
        return NO_TASKS_PLACEHOLDER
    return "\n\n".join(lines)


def render_journal(day: datetime, completed_section: str) -> str:
    return (
        f"# {day:%Y-%m-%d} Journal\n\n"
        f"{COMPLETED_HEADING}\n{completed_section}\n\n"
        "## Learned Today\n-\n\n"
        "## Reflections\n-\n\n"
        "## Problems\n-\n\n"
        "## Plan for Tomorrow\n-"
    )


def replace_completed_section(content: str, completed_section: str) -> str:
    replacement = f"{COMPLETED_HEADING}\n{completed_section}\n\n"
    if _COMPLETED_SECTION_RE.search(content):
        return _COMPLETED_SECTION_RE.sub(lambda _: replacement, content, count=1).rstrip() + "\n"
    return replacement + content


def completed_tasks_for_day(db: Session, user_id: int, day: datetime) -> List[Task]:
    start, end = day_bounds(day)
    return db.query(Task).filter(
        Task.user_id == user_id,
        Task.completed_at >= start,
        Task.completed_at <= end
    ).order_by(Task.completed_at.asc(), Task.id.asc()).all()


def generate_journal(
    db: Session,
    user_id: int,
    target_date: datetime = None,
    force: bool = False,
    template_name: str = None,
    respect_settings: bool = True,
    trigger: str = TRIGGER_MANUAL,
    now: datetime = None,
) -> AutoGenerateResult:
    if target_date is None:
        target_date = now or datetime.now()
    day, _ = day_bounds(target_date)
    template_name = template_name or app_settings.DEFAULT_JOURNAL_TEMPLATE

    logger.info(f"Generating journal for user {user_id} on {day:%Y-%m-%d} (trigger={trigger}, force={force})")

    user = db.get(User, user_id)
    prefs = parse_settings(user.settings if user else None, user_id).auto_journal_generation

    if respect_settings and not force:
        reason = policy_block_reason(prefs, trigger)
        if reason:
            logger.info(f"Journal generation skipped for user {user_id}: {reason}")
            return AutoGenerateResult(success=False, message=reason)

    include = {"include_time_spent": True, "include_project": True, "include_tags": True}
    if respect_settings:
        include = {
            "include_time_spent": prefs.include_time_spent,
            "include_project": prefs.include_project,
            "include_tags": prefs.include_tags,
        }

    try:
        tasks = completed_tasks_for_day(db, user_id, day)
        section = render_completed_section(tasks, **include)

        journal = db.query(Journal).filter(Journal.user_id == user_id, Journal.date == day).first()
        if journal:
            journal.content = replace_completed_section(journal.content, section)
            journal.template = template_name
            message = f"Updated journal for {day:%Y-%m-%d} with {len(tasks)} completed tasks"
        else:
            journal = Journal(user_id=user_id, date=day, content=render_journal(day, section), template=template_name)
            db.add(journal)
            message = f"Created journal for {day:%Y-%m-%d} with {len(tasks)} completed tasks"

        db.commit()
        db.refresh(journal)
    except IntegrityError as e:
        db.rollback()
        raise ConflictError("A journal for this date was created concurrently") from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.exception(f"Journal generation failed for user {user_id}")
        raise InternalError("Journal generation failed") from e

    logger.info(f"{message} (user {user_id}, journal {journal.id})")
    return AutoGenerateResult(success=True, message=message, journal_id=journal.id, tasks_count=len(tasks))


def generate_for_users(db: Session, target_date: datetime = None, user_ids: List[int] = None,
                       template_name: str = "Scheduled") -> dict:
    """Génération pour plusieurs utilisateurs (chemin du scheduler).

    Les préférences sont vérifiées ici (daily_schedule) puis la génération est
    forcée; l'échec d'un utilisateur n'arrête pas les autres.
    """
    query = db.query(User)
    if user_ids is not None:
        query = query.filter(User.id.in_(user_ids))
    users = query.all()

    success, failed, skipped = 0, 0, 0
    for user in users:
        prefs = parse_settings(user.settings, user.id).auto_journal_generation
        reason = policy_block_reason(prefs, TRIGGER_SCHEDULE)
        if reason:
            logger.warning(f"Skipping scheduled journal for user {user.id}: {reason}")
            skipped += 1
            continue
        try:
            result = generate_journal(
                db, user.id, target_date,
                force=True, template_name=template_name, respect_settings=True, trigger=TRIGGER_SCHEDULE
            )
        except Exception:
            logger.exception(f"Scheduled journal generation failed for user {user.id}")
            failed += 1
            continue
        if result.success:
            success += 1
        else:
            failed += 1

    logger.info(f"Batch journal generation done: total={len(users)} success={success} failed={failed} skipped={skipped}")
    return {"success": success, "failed": failed, "skipped": skipped, "total": len(users)}
