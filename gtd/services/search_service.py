import json
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import case, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from gtd.core.errors import ConflictError
from gtd.models.journal import Journal
from gtd.models.note import Note
from gtd.models.project import Project
from gtd.models.saved_search import SavedSearch
from gtd.models.tag import Tag
from gtd.models.task import Task, TaskStatus
from gtd.schemas.search import AdvancedSearchParams
from gtd.services.ownership import get_owned

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 100


class SearchResult:
    def __init__(self, result_type: str, id: int, title: str, snippet: str):
        self.result_type = result_type
        self.id = id
        self.title = title
        self.snippet = snippet


def _snippet(text: str) -> str:
    preview = text or ""
    if len(preview) > SNIPPET_LENGTH:
        preview = preview[:SNIPPET_LENGTH] + "..."
    return preview


def full_text_search(db: Session, user_id: int, query: str, limit: int = 20) -> List[SearchResult]:
    # Cherche dans tâches, notes, journaux et projets
    search_pattern = f"%{query.lower()}%"
    results = []

    # Tâches par titre ou description
    tasks = db.query(Task).filter(
        Task.user_id == user_id,
        Task.status != TaskStatus.ARCHIVED.value,
        or_(Task.title.ilike(search_pattern), Task.description.ilike(search_pattern))
    ).order_by(Task.updated_at.desc()).limit(limit).all()

    for task in tasks:
        results.append(SearchResult(
            result_type="task",
            id=task.id,
            title=task.title,
            snippet=_snippet(task.description)
        ))

    # Notes par titre ou contenu
    notes = db.query(Note).filter(
        Note.user_id == user_id,
        Note.is_archived == False,
        or_(Note.title.ilike(search_pattern), Note.content.ilike(search_pattern))
    ).order_by(Note.updated_at.desc()).limit(limit).all()

    for note in notes:
        results.append(SearchResult(
            result_type="note",
            id=note.id,
            title=note.title,
            snippet=_snippet(note.content)
        ))

    # Journaux par contenu
    journals = db.query(Journal).filter(
        Journal.user_id == user_id,
        Journal.content.ilike(search_pattern)
    ).order_by(Journal.date.desc()).limit(limit).all()

    for journal in journals:
        results.append(SearchResult(
            result_type="journal",
            id=journal.id,
            title=f"Journal {journal.date:%Y-%m-%d}",
            snippet=_snippet(journal.content)
        ))

    # Projets par nom
    projects = db.query(Project).filter(
        Project.user_id == user_id,
        Project.is_archived == False,
        Project.name.ilike(search_pattern)
    ).order_by(Project.name.asc()).limit(limit).all()

    for project in projects:
        results.append(SearchResult(
            result_type="project",
            id=project.id,
            title=project.name,
            snippet=project.description or ""
        ))

    return results


# ============ SUGGESTIONS ============

def suggestions(db: Session, user_id: int, query: str, kind: str = "all", limit: int = 10) -> dict:
    """Complétion rapide par titre / nom, pour la barre de recherche."""
    pattern = f"%{query.lower()}%"
    result = {"tasks": [], "tags": [], "projects": []}

    if kind in ("all", "tasks"):
        result["tasks"] = db.query(Task).filter(
            Task.user_id == user_id,
            Task.title.ilike(pattern)
        ).order_by(Task.updated_at.desc()).limit(limit).all()

    if kind in ("all", "tags"):
        result["tags"] = db.query(Tag).filter(
            Tag.user_id == user_id,
            Tag.name.ilike(pattern)
        ).order_by(Tag.name.asc()).limit(limit).all()

    if kind in ("all", "projects"):
        result["projects"] = db.query(Project).filter(
            Project.user_id == user_id,
            Project.name.ilike(pattern)
        ).order_by(Project.name.asc()).limit(limit).all()

    return result


# ============ RECHERCHE AVANCÉE ============

_PRIORITY_RANK = {"low": 1, "medium": 2, "high": 3, "urgent": 4}


def _task_ordering(params: AdvancedSearchParams):
    if params.sort_by == "priority":
        column = case(_PRIORITY_RANK, value=Task.priority, else_=0)
    elif params.sort_by == "time_spent":
        column = Task.total_time_spent
    else:
        column = getattr(Task, params.sort_by)
    if params.sort_order == "asc":
        return [column.asc(), Task.id.asc()]
    return [column.desc(), Task.id.desc()]


def _dated(query, column, after: Optional[datetime], before: Optional[datetime]):
    if after:
        query = query.filter(column >= after)
    if before:
        query = query.filter(column <= before)
    return query


def _search_tasks(db: Session, user_id: int, params: AdvancedSearchParams, now: datetime) -> List[Task]:
    query = db.query(Task).filter(Task.user_id == user_id)

    if params.query:
        pattern = f"%{params.query.lower()}%"
        query = query.filter(or_(Task.title.ilike(pattern), Task.description.ilike(pattern)))
    if params.task_status:
        query = query.filter(Task.status.in_([s.value for s in params.task_status]))
    if params.task_type:
        query = query.filter(Task.type.in_([t.value for t in params.task_type]))
    if params.priority:
        query = query.filter(Task.priority.in_([p.value for p in params.priority]))
    if params.project_ids:
        query = query.filter(Task.project_id.in_(params.project_ids))
    if params.tag_ids:
        query = query.filter(Task.tags.any(Tag.id.in_(params.tag_ids)))

    query = _dated(query, Task.created_at, params.created_after, params.created_before)
    query = _dated(query, Task.updated_at, params.updated_after, params.updated_before)
    query = _dated(query, Task.due_date, params.due_after, params.due_before)

    if params.min_time_spent is not None:
        query = query.filter(Task.total_time_spent >= params.min_time_spent)
    if params.max_time_spent is not None:
        query = query.filter(Task.total_time_spent <= params.max_time_spent)

    if params.is_completed is not None:
        if params.is_completed:
            query = query.filter(Task.status == TaskStatus.DONE.value)
        else:
            query = query.filter(Task.status != TaskStatus.DONE.value)
    if params.is_overdue:
        query = query.filter(
            Task.due_date < now,
            Task.status.notin_([TaskStatus.DONE.value, TaskStatus.ARCHIVED.value])
        )
    if params.is_recurring is not None:
        query = query.filter(Task.is_recurring == params.is_recurring)
    if params.has_description is not None:
        if params.has_description:
            query = query.filter(Task.description.isnot(None), Task.description != "")
        else:
            query = query.filter(or_(Task.description.is_(None), Task.description == ""))

    return query.order_by(*_task_ordering(params)).limit(params.limit).all()


def _search_notes(db: Session, user_id: int, params: AdvancedSearchParams) -> List[Note]:
    query = db.query(Note).filter(Note.user_id == user_id, Note.is_archived == False)
    if params.query:
        pattern = f"%{params.query.lower()}%"
        query = query.filter(or_(Note.title.ilike(pattern), Note.content.ilike(pattern)))
    if params.project_ids:
        query = query.filter(Note.project_id.in_(params.project_ids))
    if params.tag_ids:
        query = query.filter(Note.tags.any(Tag.id.in_(params.tag_ids)))
    query = _dated(query, Note.created_at, params.created_after, params.created_before)
    query = _dated(query, Note.updated_at, params.updated_after, params.updated_before)

    column = Note.created_at if params.sort_by == "created_at" else Note.updated_at
    if params.sort_by == "title":
        column = Note.title
    ordering = column.asc() if params.sort_order == "asc" else column.desc()
    return query.order_by(ordering, Note.id.desc()).limit(params.limit).all()


def _search_projects(db: Session, user_id: int, params: AdvancedSearchParams) -> List[Project]:
    query = db.query(Project).filter(Project.user_id == user_id)
    if params.query:
        pattern = f"%{params.query.lower()}%"
        query = query.filter(or_(Project.name.ilike(pattern), Project.description.ilike(pattern)))
    query = _dated(query, Project.created_at, params.created_after, params.created_before)
    query = _dated(query, Project.updated_at, params.updated_after, params.updated_before)

    column = Project.name if params.sort_by == "title" else Project.updated_at
    if params.sort_by == "created_at":
        column = Project.created_at
    ordering = column.asc() if params.sort_order == "asc" else column.desc()
    return query.order_by(ordering, Project.id.desc()).limit(params.limit).all()


def _search_journals(db: Session, user_id: int, params: AdvancedSearchParams) -> List[Journal]:
    query = db.query(Journal).filter(Journal.user_id == user_id)
    if params.query:
        query = query.filter(Journal.content.ilike(f"%{params.query.lower()}%"))
    # la date du journal tient lieu de date de création
    query = _dated(query, Journal.date, params.created_after, params.created_before)
    ordering = Journal.date.asc() if params.sort_order == "asc" else Journal.date.desc()
    return query.order_by(ordering).limit(params.limit).all()


def advanced_search(db: Session, user_id: int, params: AdvancedSearchParams, now: datetime = None) -> dict:
    """Recherche multi-entités, un résultat par type demandé dans ``search_in``."""
    now = now or datetime.now()
    result = {"tasks": [], "notes": [], "projects": [], "journals": []}

    if "tasks" in params.search_in:
        result["tasks"] = _search_tasks(db, user_id, params, now)
    if "notes" in params.search_in:
        result["notes"] = _search_notes(db, user_id, params)
    if "projects" in params.search_in:
        result["projects"] = _search_projects(db, user_id, params)
    if "journals" in params.search_in:
        result["journals"] = _search_journals(db, user_id, params)

    result["total_count"] = sum(len(rows) for rows in result.values())
    return result


# ============ RECHERCHES SAUVEGARDÉES ============

def save_search(
    db: Session,
    user_id: int,
    name: str,
    params: AdvancedSearchParams,
    description: str = None,
    is_public: bool = False
) -> SavedSearch:
    if db.query(SavedSearch).filter(SavedSearch.user_id == user_id, SavedSearch.name == name).first():
        raise ConflictError(f'Saved search "{name}" already exists')

    saved = SavedSearch(
        user_id=user_id,
        name=name,
        description=description,
        search_params=params.model_dump_json(exclude_none=True),
        is_public=is_public,
    )
    db.add(saved)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f'Saved search "{name}" already exists') from e
    db.refresh(saved)
    logger.info(f"Saved search {saved.id} for user {user_id}")
    return saved


def list_saved_searches(db: Session, user_id: int) -> List[SavedSearch]:
    return db.query(SavedSearch).filter(
        SavedSearch.user_id == user_id
    ).order_by(SavedSearch.updated_at.desc(), SavedSearch.id.desc()).all()


def get_saved_search(db: Session, user_id: int, search_id: int) -> SavedSearch:
    return get_owned(db, SavedSearch, search_id, user_id, label="Saved search")


def delete_saved_search(db: Session, user_id: int, search_id: int) -> None:
    saved = get_saved_search(db, user_id, search_id)
    db.delete(saved)
    db.commit()


def run_saved_search(db: Session, user_id: int, search_id: int, now: datetime = None) -> dict:
    saved = get_saved_search(db, user_id, search_id)
    params = AdvancedSearchParams.model_validate(json.loads(saved.search_params))
    return advanced_search(db, user_id, params, now)
