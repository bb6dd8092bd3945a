from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime

from gtd.core.database import get_db
from gtd.core.dates import to_local_naive
from gtd.core.deps import get_current_user
from gtd.models.user import User
from gtd.schemas.analytics import OverviewResponse, WeeklyReviewResponse
from gtd.services.analytics import overview, weekly_review

router = APIRouter(tags=["analytics"])


@router.get("/analytics/overview", response_model=OverviewResponse)
def get_overview(
    days: int = Query(30, ge=1, le=365),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return overview(db, current_user.id, days)


@router.get("/analytics/weekly-review", response_model=WeeklyReviewResponse)
def get_weekly_review(
    week_start: Optional[datetime] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    return weekly_review(db, current_user.id, to_local_naive(week_start))
