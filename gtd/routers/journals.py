from fastapi import APIRouter, Depends, status, Query
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Literal, Optional
from datetime import datetime

from gtd.core.config import settings as app_settings
from gtd.core.database import get_db
from gtd.core.dates import start_of_day, to_local_naive
from gtd.core.deps import get_current_user
from gtd.core.errors import ConflictError
from gtd.models.journal import Journal
from gtd.models.user import User
from gtd.schemas.common import MessageResponse
from gtd.schemas.journal import (
    JournalCreate, JournalUpdate, JournalBatchDelete, JournalResponse, JournalSummary,
    JournalListResponse, JournalStatsResponse, JournalTimelineResponse, TemplateStat,
    WritingHabitsResponse, AutoGenerateRequest, AutoGenerateResponse,
)
from gtd.services import stats_service
from gtd.services.journal_generator import TRIGGER_MANUAL, generate_journal
from gtd.services.ownership import get_owned, get_owned_many
from gtd.services.pagination import paginate

router = APIRouter(prefix="/journals", tags=["journals"])


def _owned_journal(db: Session, journal_id: int, user: User) -> Journal:
    return get_owned(db, Journal, journal_id, user.id, label="Journal")


def _find_by_date(db: Session, user_id: int, day: datetime) -> Optional[Journal]:
    return db.query(Journal).filter(
        Journal.user_id == user_id,
        Journal.date == start_of_day(day)
    ).first()


@router.post("", response_model=JournalResponse, status_code=status.HTTP_201_CREATED)
def create_journal(
    journal_data: JournalCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    day = start_of_day(journal_data.date)
    if _find_by_date(db, current_user.id, day):
        raise ConflictError(f"A journal already exists for {day:%Y-%m-%d}")

    journal = Journal(
        user_id=current_user.id,
        date=day,
        content=journal_data.content,
        template=journal_data.template
    )
    db.add(journal)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f"A journal already exists for {day:%Y-%m-%d}") from e
    db.refresh(journal)
    return journal


@router.put("/upsert", response_model=JournalResponse)
def upsert_journal(
    journal_data: JournalCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    # remplacement complet du contenu du jour
    day = start_of_day(journal_data.date)
    journal = _find_by_date(db, current_user.id, day)
    if journal:
        journal.content = journal_data.content
        journal.template = journal_data.template
    else:
        journal = Journal(
            user_id=current_user.id,
            date=day,
            content=journal_data.content,
            template=journal_data.template
        )
        db.add(journal)
    try:
        db.commit()
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f"A journal for {day:%Y-%m-%d} was created concurrently") from e
    db.refresh(journal)
    return journal


@router.get("", response_model=JournalListResponse)
def list_journals(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None),
    template: Optional[str] = Query(None),
    search: Optional[str] = Query(None, max_length=100),
    sort_by: Literal["date", "created_at", "updated_at"] = Query("date"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = Query(None)
):
    query = db.query(Journal).filter(Journal.user_id == current_user.id)
    if start_date:
        query = query.filter(Journal.date >= to_local_naive(start_date))
    if end_date:
        query = query.filter(Journal.date <= to_local_naive(end_date))
    if template:
        query = query.filter(Journal.template == template)
    if search:
        query = query.filter(Journal.content.ilike(f"%{search.lower()}%"))

    total_count = query.count()
    journals, next_cursor = paginate(query, Journal, sort_by, limit, cursor, descending=sort_order == "desc")
    return JournalListResponse(journals=journals, next_cursor=next_cursor, total_count=total_count)


@router.get("/by-date", response_model=Optional[JournalResponse])
def get_by_date(
    date: datetime = Query(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _find_by_date(db, current_user.id, to_local_naive(date))


@router.get("/search", response_model=JournalListResponse)
def search_journals(
    q: str = Query(..., min_length=1, max_length=100),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    limit: int = Query(20, ge=1, le=100),
    cursor: Optional[str] = Query(None)
):
    query = db.query(Journal).filter(
        Journal.user_id == current_user.id,
        Journal.content.ilike(f"%{q.lower()}%")
    )
    total_count = query.count()
    journals, next_cursor = paginate(query, Journal, "date", limit, cursor)
    return JournalListResponse(journals=journals, next_cursor=next_cursor, total_count=total_count)


@router.get("/stats", response_model=JournalStatsResponse)
def get_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    start_date: Optional[datetime] = Query(None),
    end_date: Optional[datetime] = Query(None)
):
    return stats_service.journal_stats(db, current_user.id, to_local_naive(start_date), to_local_naive(end_date))


@router.get("/timeline", response_model=JournalTimelineResponse)
def get_timeline(
    year: int = Query(..., ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return stats_service.journal_timeline(db, current_user.id, year, month)


@router.get("/recent", response_model=List[JournalSummary])
def get_recent(
    limit: int = Query(5, ge=1, le=50),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return db.query(Journal).filter(
        Journal.user_id == current_user.id
    ).order_by(Journal.date.desc()).limit(limit).all()


@router.get("/template-stats", response_model=List[TemplateStat])
def get_template_stats(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return stats_service.template_stats(db, current_user.id)


@router.get("/writing-habits", response_model=WritingHabitsResponse)
def get_writing_habits(
    days: int = Query(30, ge=7, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return stats_service.writing_habits(db, current_user.id, days)


@router.post("/batch-delete", response_model=MessageResponse)
def batch_delete(
    payload: JournalBatchDelete,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    journals = get_owned_many(db, Journal, payload.journal_ids, current_user.id, label="journals")
    for journal in journals:
        db.delete(journal)
    db.commit()
    return MessageResponse(message=f"Deleted {len(journals)} journals")


@router.post("/auto-generate", response_model=AutoGenerateResponse)
def auto_generate(
    payload: AutoGenerateRequest = AutoGenerateRequest(),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    result = generate_journal(
        db,
        current_user.id,
        target_date=payload.date,
        template_name=payload.template_name or app_settings.DEFAULT_JOURNAL_TEMPLATE,
        trigger=TRIGGER_MANUAL
    )
    return AutoGenerateResponse.model_validate(result)


@router.get("/{journal_id}", response_model=JournalResponse)
def get_journal(
    journal_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return _owned_journal(db, journal_id, current_user)


@router.put("/{journal_id}", response_model=JournalResponse)
def update_journal(
    journal_id: int,
    journal_data: JournalUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    journal = _owned_journal(db, journal_id, current_user)
    update_data = journal_data.model_dump(exclude_unset=True)
    for field, value in update_data.items():
        if field == "content" and value is None:
            continue
        setattr(journal, field, value)
    db.commit()
    db.refresh(journal)
    return journal


@router.delete("/{journal_id}", response_model=MessageResponse)
def delete_journal(
    journal_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    journal = _owned_journal(db, journal_id, current_user)
    day = journal.date
    db.delete(journal)
    db.commit()
    return MessageResponse(message=f"Journal for {day:%Y-%m-%d} deleted")
