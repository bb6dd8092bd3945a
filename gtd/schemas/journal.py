from pydantic import BaseModel, ConfigDict, Field, computed_field
from datetime import datetime
from typing import Dict, List, Optional

from gtd.schemas.common import LocalDateTime

PREVIEW_LENGTH = 150


def make_preview(content: str, length: int = PREVIEW_LENGTH) -> str:
    if len(content) > length:
        return content[:length] + "..."
    return content


class JournalCreate(BaseModel):
    date: LocalDateTime
    content: str = Field(..., min_length=1)
    template: Optional[str] = Field(None, max_length=100)


class JournalUpdate(BaseModel):
    content: Optional[str] = Field(None, min_length=1)
    template: Optional[str] = Field(None, max_length=100)


class JournalBatchDelete(BaseModel):
    journal_ids: List[int] = Field(..., min_length=1)


class AutoGenerateRequest(BaseModel):
    date: Optional[LocalDateTime] = None
    template_name: Optional[str] = Field(None, max_length=100)


class AutoGenerateResponse(BaseModel):
    success: bool
    message: str
    journal_id: Optional[int] = None
    tasks_count: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class JournalResponse(BaseModel):
    id: int
    user_id: int
    date: datetime
    content: str
    template: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class JournalSummary(JournalResponse):
    """Élément de liste: contenu + aperçu + nombre de caractères."""

    @computed_field
    @property
    def preview(self) -> str:
        return make_preview(self.content)

    @computed_field
    @property
    def word_count(self) -> int:
        return len(self.content)


class JournalListResponse(BaseModel):
    journals: List[JournalSummary]
    next_cursor: Optional[str] = None
    total_count: int


class JournalStatsResponse(BaseModel):
    total_journals: int
    total_words: int
    consecutive_days: int
    templates_used: Dict[str, int]
    average_words_per_journal: int


class TimelineItem(BaseModel):
    id: int
    date: datetime
    template: Optional[str]
    preview: str
    word_count: int


class JournalTimelineResponse(BaseModel):
    timeline: List[TimelineItem]
    calendar: Dict[str, bool]
    total_days: int
    start: datetime
    end: datetime


class TemplateStat(BaseModel):
    template: str
    count: int


class WritingHabitsResponse(BaseModel):
    total_entries: int
    average_words: int
    total_words: int
    writing_times: Dict[int, int]
    weekly_pattern: Dict[int, int]  # 0 = lundi
    most_active_hour: int
    most_active_day: int
    consistency: float
