"""Lecture / écriture du blob de préférences utilisateur.

Le blob est stocké en JSON dans ``users.settings``; à la lecture il est
fusionné sur les valeurs par défaut puis validé, ce qui évite toute ambiguïté
sur les mises à jour partielles.
"""

import json
import logging
from typing import Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from gtd.core.errors import NotFoundError
from gtd.models.user import User
from gtd.schemas.user_settings import UserSettings, UserSettingsUpdate

logger = logging.getLogger(__name__)

# anciens blobs en camelCase
_LEGACY_KEYS = {
    "autoJournalGeneration": "auto_journal_generation",
    "onTaskComplete": "on_task_complete",
    "dailySchedule": "daily_schedule",
    "scheduleTime": "schedule_time",
    "templateName": "template_name",
    "includeTimeSpent": "include_time_spent",
    "includeTags": "include_tags",
    "includeProject": "include_project",
    "journalReminder": "journal_reminder",
    "reminderTime": "reminder_time",
    "taskDeadlineReminder": "task_deadline_reminder",
    "weeklyReview": "weekly_review",
    "dateFormat": "date_format",
    "timeFormat": "time_format",
}


def default_settings() -> UserSettings:
    return UserSettings()


def deep_merge(base: dict, override: dict) -> dict:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        elif value is not None:
            merged[key] = value
    return merged


def _normalize_keys(data):
    if isinstance(data, dict):
        return {_LEGACY_KEYS.get(k, k): _normalize_keys(v) for k, v in data.items()}
    return data


def parse_settings(raw: Optional[str], user_id: int = None) -> UserSettings:
    defaults = default_settings().model_dump()
    if not raw:
        return UserSettings.model_validate(defaults)
    try:
        stored = json.loads(raw)
        if not isinstance(stored, dict):
            raise ValueError("settings blob is not an object")
        return UserSettings.model_validate(deep_merge(defaults, _normalize_keys(stored)))
    except (ValueError, ValidationError) as e:
        logger.warning(f"Unreadable settings for user {user_id}, using defaults: {e}")
        return UserSettings.model_validate(defaults)


def get_user_settings(db: Session, user_id: int) -> UserSettings:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return parse_settings(user.settings, user_id)


def save_user_settings(db: Session, user: User, value: UserSettings) -> UserSettings:
    user.settings = value.model_dump_json()
    db.commit()
    return value


def update_user_settings(db: Session, user_id: int, update: UserSettingsUpdate) -> UserSettings:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    current = parse_settings(user.settings, user_id).model_dump()
    merged = deep_merge(current, update.model_dump(exclude_unset=True))
    return save_user_settings(db, user, UserSettings.model_validate(merged))


def reset_user_settings(db: Session, user_id: int) -> UserSettings:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    # le rôle survit à la remise à zéro
    role = parse_settings(user.settings, user_id).role
    return save_user_settings(db, user, UserSettings(role=role))


def is_admin(db: Session, user_id: int) -> bool:
    user = db.get(User, user_id)
    if not user:
        return False
    return parse_settings(user.settings, user_id).role == "admin"


def set_user_role(db: Session, email: str, role: str) -> bool:
    """Promeut / rétrograde un utilisateur. Retourne False si l'email est inconnu."""
    user = db.query(User).filter(User.email == email).first()
    if not user:
        logger.error(f"Cannot set role, unknown user: {email}")
        return False
    value = parse_settings(user.settings, user.id)
    value.role = role
    save_user_settings(db, user, UserSettings.model_validate(value.model_dump()))
    logger.info(f"User {email} is now {role}")
    return True
