import json
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gtd.models.task import Priority, TaskStatus, TaskType
from gtd.schemas.common import LocalDateTime, ProjectBrief, TagBrief, TaskBrief
from gtd.schemas.note import NoteResponse
from gtd.schemas.task import TaskResponse

SearchTarget = Literal["tasks", "notes", "projects", "journals"]


# ============ RECHERCHE SIMPLE ============

class SearchResultResponse(BaseModel):
    result_type: str
    id: int
    title: str
    snippet: str


class SearchResponse(BaseModel):
    query: str
    results: List[SearchResultResponse]


# ============ RECHERCHE AVANCÉE ============

class AdvancedSearchParams(BaseModel):
    """Filtres combinés (ET) de la recherche avancée, aussi stockés dans les recherches sauvegardées."""

    query: Optional[str] = Field(None, max_length=100)
    search_in: List[SearchTarget] = Field(default_factory=lambda: ["tasks"], min_length=1)

    # filtres propres aux tâches
    task_status: Optional[List[TaskStatus]] = None
    task_type: Optional[List[TaskType]] = None
    priority: Optional[List[Priority]] = None
    tag_ids: Optional[List[int]] = None
    project_ids: Optional[List[int]] = None

    created_after: Optional[LocalDateTime] = None
    created_before: Optional[LocalDateTime] = None
    updated_after: Optional[LocalDateTime] = None
    updated_before: Optional[LocalDateTime] = None
    due_after: Optional[LocalDateTime] = None
    due_before: Optional[LocalDateTime] = None

    min_time_spent: Optional[int] = Field(None, ge=0)  # secondes
    max_time_spent: Optional[int] = Field(None, ge=0)
    is_completed: Optional[bool] = None
    is_overdue: Optional[bool] = None
    is_recurring: Optional[bool] = None
    has_description: Optional[bool] = None

    sort_by: Literal["created_at", "updated_at", "due_date", "priority", "title", "time_spent"] = "updated_at"
    sort_order: Literal["asc", "desc"] = "desc"
    limit: int = Field(20, ge=1, le=100)


class JournalHit(BaseModel):
    id: int
    date: datetime
    template: Optional[str]
    content: str

    model_config = ConfigDict(from_attributes=True)


class AdvancedSearchResponse(BaseModel):
    tasks: List[TaskResponse] = []
    notes: List[NoteResponse] = []
    projects: List[ProjectBrief] = []
    journals: List[JournalHit] = []
    total_count: int


class SuggestionsResponse(BaseModel):
    tasks: List[TaskBrief] = []
    tags: List[TagBrief] = []
    projects: List[ProjectBrief] = []


# ============ RECHERCHES SAUVEGARDÉES ============

class SavedSearchCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=500)
    search_params: AdvancedSearchParams
    is_public: bool = False


class SavedSearchResponse(BaseModel):
    id: int
    user_id: int
    name: str
    description: Optional[str]
    search_params: AdvancedSearchParams
    is_public: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("search_params", mode="before")
    @classmethod
    def _decode_params(cls, value):
        # stocké en texte JSON côté base
        if isinstance(value, str):
            return json.loads(value)
        return value
