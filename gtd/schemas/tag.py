from pydantic import BaseModel, ConfigDict, Field
from datetime import datetime
from typing import Dict, List, Optional

from gtd.models.tag import TagType
from gtd.schemas.project import COLOR_PATTERN


class TagCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    type: TagType = TagType.CUSTOM
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)
    icon: Optional[str] = Field(None, max_length=20)
    category: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, max_length=200)


class TagUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    type: Optional[TagType] = None
    color: Optional[str] = Field(None, pattern=COLOR_PATTERN)
    icon: Optional[str] = Field(None, max_length=20)
    category: Optional[str] = Field(None, max_length=50)
    description: Optional[str] = Field(None, max_length=200)


class TagBatchCreate(BaseModel):
    tags: List[TagCreate] = Field(..., min_length=1, max_length=20)


class TagBatchDelete(BaseModel):
    tag_ids: List[int] = Field(..., min_length=1, max_length=50)


class TagResponse(BaseModel):
    id: int
    user_id: int
    name: str
    type: TagType
    color: Optional[str]
    icon: Optional[str]
    category: Optional[str]
    description: Optional[str]
    is_system: bool
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TagListResponse(BaseModel):
    tags: List[TagResponse]
    next_cursor: Optional[str] = None


class TagStatsResponse(BaseModel):
    total: int
    system: int
    custom: int
    by_type: Dict[str, int]
