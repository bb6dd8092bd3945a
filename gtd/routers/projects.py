from fastapi import APIRouter, Depends, status, Query
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from gtd.core.database import get_db
from gtd.core.dates import to_local_naive
from gtd.core.deps import get_current_user
from gtd.core.errors import BadRequestError, ConflictError
from gtd.models.note import Note
from gtd.models.project import Project
from gtd.models.task import Task, TaskStatus
from gtd.models.user import User
from gtd.schemas.common import MessageResponse
from gtd.schemas.note import NoteListResponse
from gtd.schemas.project import (
    ProjectCreate, ProjectUpdate, ProjectArchive, ProjectBatchOperation,
    ProjectResponse, ProjectWithCounts, ProjectListResponse, ProjectStatsResponse,
)
from gtd.schemas.task import TaskListResponse
from gtd.services.ownership import get_owned, get_owned_many
from gtd.services.pagination import paginate
from gtd.services.stats_service import project_content_counts, project_stats

router = APIRouter(prefix="/projects", tags=["projects"])


def _owned_project(db: Session, project_id: int, user: User) -> Project:
    return get_owned(db, Project, project_id, user.id, label="Project")


def _check_name_free(db: Session, user_id: int, name: str, exclude_id: int = None) -> None:
    query = db.query(Project).filter(
        Project.user_id == user_id,
        Project.name == name,
        Project.is_archived == False
    )
    if exclude_id is not None:
        query = query.filter(Project.id != exclude_id)
    if query.first():
        raise ConflictError(f'An active project named "{name}" already exists')


def _commit_unique(db: Session, name: str) -> None:
    # l'index partiel couvre la course entre la vérification et l'écriture
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f'An active project named "{name}" already exists') from e


def _with_counts(db: Session, projects: List[Project]) -> List[ProjectWithCounts]:
    ids = [p.id for p in projects]
    if not ids:
        return []
    task_counts = dict(
        db.query(Task.project_id, func.count(Task.id)).filter(Task.project_id.in_(ids)).group_by(Task.project_id).all()
    )
    note_counts = dict(
        db.query(Note.project_id, func.count(Note.id)).filter(Note.project_id.in_(ids)).group_by(Note.project_id).all()
    )
    return [
        ProjectWithCounts.model_validate(p).model_copy(
            update={"task_count": task_counts.get(p.id, 0), "note_count": note_counts.get(p.id, 0)}
        )
        for p in projects
    ]


@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
def create_project(
    project_data: ProjectCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    _check_name_free(db, current_user.id, project_data.name)
    project = Project(user_id=current_user.id, **project_data.model_dump())
    db.add(project)
    _commit_unique(db, project_data.name)
    db.refresh(project)
    return project


@router.get("", response_model=ProjectListResponse)
def list_projects(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    include_archived: bool = Query(False),
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = Query(None)
):
    query = db.query(Project).filter(Project.user_id == current_user.id)
    if not include_archived:
        query = query.filter(Project.is_archived == False)
    if search:
        query = query.filter(Project.name.ilike(f"%{search.lower()}%"))

    projects, next_cursor = paginate(query, Project, "updated_at", limit, cursor)
    return ProjectListResponse(projects=_with_counts(db, projects), next_cursor=next_cursor)


@router.post("/batch", response_model=MessageResponse)
def batch_operation(
    payload: ProjectBatchOperation,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    projects = get_owned_many(db, Project, payload.project_ids, current_user.id, label="projects")

    if payload.operation in ("archive", "unarchive"):
        archived = payload.operation == "archive"
        if not archived:
            for project in projects:
                _check_name_free(db, current_user.id, project.name, exclude_id=project.id)
        for project in projects:
            project.is_archived = archived
        _commit_unique(db, ", ".join(p.name for p in projects))
        verb = "Archived" if archived else "Restored"
        return MessageResponse(message=f"{verb} {len(projects)} projects")

    non_empty = [p.name for p in projects if any(project_content_counts(db, p.id))]
    if non_empty:
        raise BadRequestError(f"These projects still contain tasks or notes: {', '.join(non_empty)}")
    for project in projects:
        db.delete(project)
    db.commit()
    return MessageResponse(message=f"Deleted {len(projects)} projects")


@router.get("/{project_id}", response_model=ProjectWithCounts)
def get_project(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project = _owned_project(db, project_id, current_user)
    return _with_counts(db, [project])[0]


@router.put("/{project_id}", response_model=ProjectResponse)
def update_project(
    project_id: int,
    project_data: ProjectUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project = _owned_project(db, project_id, current_user)
    update_data = project_data.model_dump(exclude_unset=True)

    if update_data.get("name") and update_data["name"] != project.name and not project.is_archived:
        _check_name_free(db, current_user.id, update_data["name"], exclude_id=project.id)

    for field, value in update_data.items():
        if field == "name" and value is None:
            continue
        setattr(project, field, value)

    _commit_unique(db, project.name)
    db.refresh(project)
    return project


@router.delete("/{project_id}", response_model=MessageResponse)
def delete_project(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project = _owned_project(db, project_id, current_user)
    task_count, note_count = project_content_counts(db, project.id)
    if task_count or note_count:
        raise BadRequestError(
            f'Project "{project.name}" contains {task_count} tasks and {note_count} notes, '
            "move them or archive the project instead"
        )

    name = project.name
    db.delete(project)
    db.commit()
    return MessageResponse(message=f'Project "{name}" deleted')


@router.post("/{project_id}/archive", response_model=ProjectResponse)
def archive_project(
    project_id: int,
    payload: ProjectArchive,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    project = _owned_project(db, project_id, current_user)
    if project.is_archived == payload.is_archived:
        state = "archived" if project.is_archived else "active"
        raise BadRequestError(f'Project "{project.name}" is already {state}')

    if not payload.is_archived:
        _check_name_free(db, current_user.id, project.name, exclude_id=project.id)
    project.is_archived = payload.is_archived
    _commit_unique(db, project.name)
    db.refresh(project)
    return project


@router.get("/{project_id}/stats", response_model=ProjectStatsResponse)
def get_project_stats(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None)
):
    project = _owned_project(db, project_id, current_user)
    return project_stats(db, project, to_local_naive(start_date), to_local_naive(end_date))


@router.get("/{project_id}/tasks", response_model=TaskListResponse)
def get_project_tasks(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    status_filter: Optional[TaskStatus] = Query(None, alias="status"),
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = Query(None)
):
    _owned_project(db, project_id, current_user)
    query = db.query(Task).filter(Task.project_id == project_id, Task.user_id == current_user.id)
    if status_filter:
        query = query.filter(Task.status == status_filter.value)

    tasks, next_cursor = paginate(query, Task, "created_at", limit, cursor)
    return TaskListResponse(tasks=tasks, next_cursor=next_cursor)


@router.get("/{project_id}/notes", response_model=NoteListResponse)
def get_project_notes(
    project_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    include_archived: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = Query(None)
):
    _owned_project(db, project_id, current_user)
    query = db.query(Note).filter(Note.project_id == project_id, Note.user_id == current_user.id)
    if not include_archived:
        query = query.filter(Note.is_archived == False)

    notes, next_cursor = paginate(query, Note, "updated_at", limit, cursor)
    return NoteListResponse(notes=notes, next_cursor=next_cursor)
