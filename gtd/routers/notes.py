from fastapi import APIRouter, Depends, status, Query
from sqlalchemy import or_
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime

from gtd.core.database import get_db
from gtd.core.dates import to_local_naive
from gtd.core.deps import get_current_user
from gtd.core.errors import BadRequestError, ConflictError, NotFoundError
from gtd.models.note import Note
from gtd.models.project import Project
from gtd.models.tag import Tag
from gtd.models.task import Task
from gtd.models.user import User
from gtd.schemas.common import MessageResponse
from gtd.schemas.note import (
    NoteCreate, NoteUpdate, NoteArchive, NoteTaskLink, NoteBatchOperation,
    NoteResponse, NoteListResponse, NoteStatsResponse,
)
from gtd.services.ownership import get_owned, get_owned_many
from gtd.services.pagination import paginate
from gtd.services.stats_service import note_stats
from gtd.services.tag_service import resolve_tags

router = APIRouter(prefix="/notes", tags=["notes"])


def _owned_note(db: Session, note_id: int, user: User) -> Note:
    return get_owned(db, Note, note_id, user.id, label="Note")


def _resolve_tasks(db: Session, user_id: int, task_ids):
    if not task_ids:
        return []
    return get_owned_many(db, Task, task_ids, user_id, label="tasks")


@router.post("", response_model=NoteResponse, status_code=status.HTTP_201_CREATED)
def create_note(
    note_data: NoteCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if note_data.project_id is not None:
        get_owned(db, Project, note_data.project_id, current_user.id, label="Project")
    tags = resolve_tags(db, current_user.id, note_data.tag_ids)
    tasks = _resolve_tasks(db, current_user.id, note_data.linked_task_ids)

    note = Note(
        user_id=current_user.id,
        project_id=note_data.project_id,
        title=note_data.title,
        content=note_data.content,
        summary=note_data.summary,
        is_pinned=note_data.is_pinned
    )
    note.tags = tags
    note.linked_tasks = tasks
    db.add(note)
    db.commit()
    db.refresh(note)
    return note


@router.get("", response_model=NoteListResponse)
def list_notes(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    project_id: Optional[int] = Query(None),
    tag_id: Optional[int] = Query(None),
    include_archived: bool = Query(False),
    search: Optional[str] = Query(None, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = Query(None)
):
    query = db.query(Note).filter(Note.user_id == current_user.id)
    if not include_archived:
        query = query.filter(Note.is_archived == False)
    if project_id is not None:
        query = query.filter(Note.project_id == project_id)
    if tag_id is not None:
        query = query.filter(Note.tags.any(Tag.id == tag_id))
    if search:
        pattern = f"%{search.lower()}%"
        query = query.filter(or_(Note.title.ilike(pattern), Note.content.ilike(pattern)))

    # épinglées d'abord, dans le même ordre keyset
    notes, next_cursor = paginate(query, Note, "updated_at", limit, cursor, group_attr="is_pinned")
    return NoteListResponse(notes=notes, next_cursor=next_cursor)


@router.get("/search", response_model=NoteListResponse)
def search_notes(
    q: str = Query(..., min_length=1, max_length=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    include_archived: bool = Query(False),
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = Query(None)
):
    pattern = f"%{q.lower()}%"
    query = db.query(Note).filter(
        Note.user_id == current_user.id,
        or_(Note.title.ilike(pattern), Note.content.ilike(pattern))
    )
    if not include_archived:
        query = query.filter(Note.is_archived == False)

    notes, next_cursor = paginate(query, Note, "updated_at", limit, cursor)
    return NoteListResponse(notes=notes, next_cursor=next_cursor)


@router.get("/stats", response_model=NoteStatsResponse)
def get_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    project_id: Optional[int] = Query(None),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None)
):
    return note_stats(db, current_user.id, project_id, to_local_naive(start_date), to_local_naive(end_date))


@router.post("/batch", response_model=MessageResponse)
def batch_operation(
    payload: NoteBatchOperation,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    notes = get_owned_many(db, Note, payload.note_ids, current_user.id, label="notes")

    if payload.operation == "delete":
        for note in notes:
            db.delete(note)
        db.commit()
        return MessageResponse(message=f"Deleted {len(notes)} notes")

    if payload.operation == "move":
        if payload.target_project_id is None:
            raise BadRequestError("Moving notes needs a target project")
        project = get_owned(db, Project, payload.target_project_id, current_user.id, label="Project")
        for note in notes:
            note.project_id = project.id
        db.commit()
        return MessageResponse(message=f'Moved {len(notes)} notes to "{project.name}"')

    archived = payload.operation == "archive"
    for note in notes:
        note.is_archived = archived
    db.commit()
    verb = "Archived" if archived else "Restored"
    return MessageResponse(message=f"{verb} {len(notes)} notes")


@router.get("/{note_id}", response_model=NoteResponse)
def get_note(
    note_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _owned_note(db, note_id, current_user)


@router.put("/{note_id}", response_model=NoteResponse)
def update_note(
    note_id: int,
    note_data: NoteUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    note = _owned_note(db, note_id, current_user)
    update_data = note_data.model_dump(exclude_unset=True)

    tag_ids = update_data.pop("tag_ids", None)
    task_ids = update_data.pop("linked_task_ids", None)

    if update_data.get("project_id") is not None:
        get_owned(db, Project, update_data["project_id"], current_user.id, label="Project")
    if tag_ids is not None:
        note.tags = resolve_tags(db, current_user.id, tag_ids)
    if task_ids is not None:
        note.linked_tasks = _resolve_tasks(db, current_user.id, task_ids)

    for field, value in update_data.items():
        if field in ("title", "content", "is_pinned") and value is None:
            continue
        setattr(note, field, value)

    db.commit()
    db.refresh(note)
    return note


@router.delete("/{note_id}", response_model=MessageResponse)
def delete_note(
    note_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    note = _owned_note(db, note_id, current_user)
    title = note.title
    db.delete(note)
    db.commit()
    return MessageResponse(message=f'Note "{title}" deleted')


@router.post("/{note_id}/archive", response_model=NoteResponse)
def archive_note(
    note_id: int,
    payload: NoteArchive,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    note = _owned_note(db, note_id, current_user)
    if note.is_archived == payload.is_archived:
        state = "archived" if note.is_archived else "active"
        raise BadRequestError(f'Note "{note.title}" is already {state}')
    note.is_archived = payload.is_archived
    db.commit()
    db.refresh(note)
    return note


@router.post("/{note_id}/links", response_model=NoteResponse)
def link_to_task(
    note_id: int,
    payload: NoteTaskLink,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    note = _owned_note(db, note_id, current_user)
    task = get_owned(db, Task, payload.task_id, current_user.id, label="Task")
    if task in note.linked_tasks:
        raise ConflictError(f'Note is already linked to task "{task.title}"')
    note.linked_tasks.append(task)
    db.commit()
    db.refresh(note)
    return note


@router.delete("/{note_id}/links/{task_id}", response_model=NoteResponse)
def unlink_from_task(
    note_id: int,
    task_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    note = _owned_note(db, note_id, current_user)
    task = get_owned(db, Task, task_id, current_user.id, label="Task")
    if task not in note.linked_tasks:
        raise NotFoundError("Link not found")
    note.linked_tasks.remove(task)
    db.commit()
    db.refresh(note)
    return note
