from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
from typing import Literal, Optional

from gtd.core.database import get_db
from gtd.core.deps import get_current_user
from gtd.models.user import User
from gtd.schemas.user_settings import UserSettingsUpdate, UserSettingsResponse
from gtd.services.user_settings import (
    default_settings,
    get_user_settings,
    reset_user_settings,
    update_user_settings,
)

router = APIRouter(prefix="/settings", tags=["settings"])

Category = Literal["auto_journal_generation", "notifications", "ui"]


@router.get("", response_model=UserSettingsResponse)
def get_settings(
    category: Optional[Category] = Query(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    data = get_user_settings(db, current_user.id).model_dump()
    if category:
        return UserSettingsResponse(data={category: data[category]})
    return UserSettingsResponse(data=data)


@router.put("", response_model=UserSettingsResponse)
def update_settings(
    payload: UserSettingsUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    # le rôle n'est pas modifiable ici (absent de UserSettingsUpdate)
    value = update_user_settings(db, current_user.id, payload)
    return UserSettingsResponse(message="Settings updated", data=value.model_dump())


@router.post("/reset", response_model=UserSettingsResponse)
def reset_settings(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
):
    value = reset_user_settings(db, current_user.id)
    return UserSettingsResponse(message="Settings reset to defaults", data=value.model_dump())


@router.get("/defaults", response_model=UserSettingsResponse)
def get_defaults():
    return UserSettingsResponse(data=default_settings().model_dump())
