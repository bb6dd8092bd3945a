"""Tag model + tables d'association"""

import enum
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Table, UniqueConstraint
from sqlalchemy.orm import relationship
from datetime import datetime
from gtd.core.database import Base


class TagType(str, enum.Enum):
    CONTEXT = "context"
    PROJECT = "project"
    PRIORITY = "priority"
    CUSTOM = "custom"


task_tags = Table(
    "task_tags",
    Base.metadata,
    Column("task_id", Integer, ForeignKey("tasks.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)

note_tags = Table(
    "note_tags",
    Base.metadata,
    Column("note_id", Integer, ForeignKey("notes.id", ondelete="CASCADE"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class Tag(Base):
    __tablename__ = "tags"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_tags_user_name"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    type = Column(String, default=TagType.CUSTOM.value, nullable=False)
    color = Column(String, nullable=True)
    icon = Column(String, nullable=True)
    category = Column(String, nullable=True)
    description = Column(String, nullable=True)
    is_system = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    tasks = relationship("Task", secondary=task_tags, back_populates="tags")
    notes = relationship("Note", secondary=note_tags, back_populates="tags")
