from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional

from gtd.core.database import get_db
from gtd.core.deps import get_current_user
from gtd.core.errors import ConflictError, ForbiddenError
from gtd.models.tag import Tag, TagType
from gtd.models.user import User
from gtd.schemas.common import MessageResponse
from gtd.schemas.tag import (
    TagCreate, TagUpdate, TagBatchCreate, TagBatchDelete, TagResponse, TagListResponse, TagStatsResponse,
)
from gtd.services.ownership import get_owned, get_owned_many
from gtd.services.pagination import paginate
from gtd.services.tag_service import check_deletable, tag_stats

router = APIRouter(prefix="/tags", tags=["tags"])


def _owned_tag(db: Session, tag_id: int, user: User) -> Tag:
    return get_owned(db, Tag, tag_id, user.id, label="Tag")


def _commit_name(db: Session, name: str) -> None:
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f'Tag "{name}" already exists') from e


@router.post("", response_model=TagResponse, status_code=status.HTTP_201_CREATED)
def create_tag(
    tag_data: TagCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    if db.query(Tag).filter(Tag.user_id == current_user.id, Tag.name == tag_data.name).first():
        raise ConflictError(f'Tag "{tag_data.name}" already exists')

    data = tag_data.model_dump()
    data["type"] = tag_data.type.value
    tag = Tag(user_id=current_user.id, is_system=False, **data)
    db.add(tag)
    _commit_name(db, tag_data.name)
    db.refresh(tag)
    return tag


@router.get("", response_model=TagListResponse)
def list_tags(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    tag_type: Optional[TagType] = Query(None, alias="type"),
    category: Optional[str] = Query(None),
    include_system: bool = Query(True),
    search: Optional[str] = Query(None, max_length=50),
    limit: int = Query(50, ge=1, le=100),
    cursor: Optional[str] = Query(None)
):
    query = db.query(Tag).filter(Tag.user_id == current_user.id)
    if tag_type:
        query = query.filter(Tag.type == tag_type.value)
    if category:
        query = query.filter(Tag.category == category)
    if not include_system:
        query = query.filter(Tag.is_system == False)
    if search:
        query = query.filter(Tag.name.ilike(f"%{search.lower()}%"))

    tags, next_cursor = paginate(query, Tag, "name", limit, cursor, descending=False)
    return TagListResponse(tags=tags, next_cursor=next_cursor)


@router.get("/stats", response_model=TagStatsResponse)
def get_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return tag_stats(db, current_user.id)


@router.post("/batch-create", response_model=List[TagResponse], status_code=status.HTTP_201_CREATED)
def batch_create(
    payload: TagBatchCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    names = [tag_data.name for tag_data in payload.tags]
    existing = {
        row.name for row in
        db.query(Tag.name).filter(Tag.user_id == current_user.id, Tag.name.in_(names)).all()
    }
    duplicates = sorted(existing | {name for name in names if names.count(name) > 1})
    if duplicates:
        raise ConflictError(f"These tag names already exist: {', '.join(duplicates)}")

    tags = []
    for tag_data in payload.tags:
        data = tag_data.model_dump()
        data["type"] = tag_data.type.value
        tags.append(Tag(user_id=current_user.id, is_system=False, **data))
    db.add_all(tags)
    _commit_name(db, ", ".join(names))
    for tag in tags:
        db.refresh(tag)
    return tags


@router.post("/batch-delete", response_model=MessageResponse)
def batch_delete(
    payload: TagBatchDelete,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    tags = get_owned_many(db, Tag, payload.tag_ids, current_user.id, label="tags")
    for tag in tags:
        check_deletable(db, tag)
    for tag in tags:
        db.delete(tag)
    db.commit()
    return MessageResponse(message=f"Deleted {len(tags)} tags")


@router.get("/{tag_id}", response_model=TagResponse)
def get_tag(
    tag_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _owned_tag(db, tag_id, current_user)


@router.put("/{tag_id}", response_model=TagResponse)
def update_tag(
    tag_id: int,
    tag_data: TagUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    tag = _owned_tag(db, tag_id, current_user)
    update_data = tag_data.model_dump(exclude_unset=True)

    if tag.is_system:
        if "type" in update_data and update_data["type"] is not None and update_data["type"].value != tag.type:
            raise ForbiddenError("The type of a system tag cannot be changed")
        if "category" in update_data and update_data["category"] != tag.category:
            raise ForbiddenError("The category of a system tag cannot be changed")

    new_name = update_data.get("name")
    if new_name and new_name != tag.name:
        if db.query(Tag).filter(Tag.user_id == current_user.id, Tag.name == new_name).first():
            raise ConflictError(f'Tag "{new_name}" already exists')

    for field, value in update_data.items():
        if field in ("name", "type") and value is None:
            continue
        if field == "type":
            value = value.value
        setattr(tag, field, value)

    _commit_name(db, tag.name)
    db.refresh(tag)
    return tag


@router.delete("/{tag_id}", response_model=MessageResponse)
def delete_tag(
    tag_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    tag = _owned_tag(db, tag_id, current_user)
    check_deletable(db, tag)
    name = tag.name
    db.delete(tag)
    db.commit()
    return MessageResponse(message=f'Tag "{name}" deleted')
