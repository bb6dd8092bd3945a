"""Briques partagées par les schémas."""

from datetime import datetime
from typing import Annotated, Optional
from pydantic import AfterValidator, BaseModel, ConfigDict
from gtd.core.dates import to_local_naive

# les dates reçues avec fuseau sont converties en heure locale naïve
LocalDateTime = Annotated[datetime, AfterValidator(to_local_naive)]

TIME_PATTERN = r"^([01]?[0-9]|2[0-3]):[0-5][0-9]$"


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class TagBrief(BaseModel):
    id: int
    name: str
    type: str
    color: Optional[str]
    icon: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class ProjectBrief(BaseModel):
    id: int
    name: str
    color: Optional[str]

    model_config = ConfigDict(from_attributes=True)


class TaskBrief(BaseModel):
    id: int
    title: str
    status: str

    model_config = ConfigDict(from_attributes=True)


class NoteBrief(BaseModel):
    id: int
    title: str
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
