from pydantic import BaseModel, Field
from typing import Literal, Optional

from gtd.core.config import settings as app_settings
from gtd.schemas.common import TIME_PATTERN

SETTINGS_VERSION = 1


class AutoJournalSettings(BaseModel):
    enabled: bool = True
    on_task_complete: bool = True  # met à jour le journal quand une tâche passe à done
    daily_schedule: bool = True
    schedule_time: str = Field(app_settings.DEFAULT_SCHEDULE_TIME, pattern=TIME_PATTERN)
    template_name: str = app_settings.DEFAULT_JOURNAL_TEMPLATE
    include_time_spent: bool = True
    include_tags: bool = True
    include_project: bool = True


class NotificationSettings(BaseModel):
    journal_reminder: bool = False
    reminder_time: str = Field("21:00", pattern=TIME_PATTERN)
    task_deadline_reminder: bool = True
    weekly_review: bool = False


class UISettings(BaseModel):
    theme: Literal["light", "dark", "system"] = "system"
    language: Literal["zh-CN", "en-US"] = "zh-CN"
    date_format: Literal["YYYY-MM-DD", "MM/DD/YYYY", "DD/MM/YYYY"] = "YYYY-MM-DD"
    time_format: Literal["24h", "12h"] = "24h"


class UserSettings(BaseModel):
    version: int = SETTINGS_VERSION
    role: Literal["user", "admin"] = "user"
    auto_journal_generation: AutoJournalSettings = Field(default_factory=AutoJournalSettings)
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)
    ui: UISettings = Field(default_factory=UISettings)


# Mises à jour partielles: tous les champs optionnels

class AutoJournalSettingsUpdate(BaseModel):
    enabled: Optional[bool] = None
    on_task_complete: Optional[bool] = None
    daily_schedule: Optional[bool] = None
    schedule_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    template_name: Optional[str] = Field(None, min_length=1, max_length=100)
    include_time_spent: Optional[bool] = None
    include_tags: Optional[bool] = None
    include_project: Optional[bool] = None


class NotificationSettingsUpdate(BaseModel):
    journal_reminder: Optional[bool] = None
    reminder_time: Optional[str] = Field(None, pattern=TIME_PATTERN)
    task_deadline_reminder: Optional[bool] = None
    weekly_review: Optional[bool] = None


class UISettingsUpdate(BaseModel):
    theme: Optional[Literal["light", "dark", "system"]] = None
    language: Optional[Literal["zh-CN", "en-US"]] = None
    date_format: Optional[Literal["YYYY-MM-DD", "MM/DD/YYYY", "DD/MM/YYYY"]] = None
    time_format: Optional[Literal["24h", "12h"]] = None


class UserSettingsUpdate(BaseModel):
    auto_journal_generation: Optional[AutoJournalSettingsUpdate] = None
    notifications: Optional[NotificationSettingsUpdate] = None
    ui: Optional[UISettingsUpdate] = None


class UserSettingsResponse(BaseModel):
    success: bool = True
    message: Optional[str] = None
    data: dict
