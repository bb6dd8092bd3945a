"""Task model"""

import enum
from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Text, Index, text
from sqlalchemy.orm import relationship
from datetime import datetime
from gtd.core.database import Base
from gtd.models.tag import task_tags


class TaskStatus(str, enum.Enum):
    IDEA = "idea"
    TODO = "todo"
    IN_PROGRESS = "in_progress"
    WAITING = "waiting"
    DONE = "done"
    ARCHIVED = "archived"


class TaskType(str, enum.Enum):
    NORMAL = "normal"
    DEADLINE = "deadline"
    IDEA = "idea"


class Priority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class Task(Base):
    __tablename__ = "tasks"
    __table_args__ = (
        # un seul chrono actif par utilisateur
        Index(
            "uq_tasks_one_active_timer",
            "user_id",
            unique=True,
            sqlite_where=text("is_timer_active = 1"),
            postgresql_where=text("is_timer_active = true"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    project_id = Column(Integer, ForeignKey("projects.id"), nullable=True, index=True)
    parent_task_id = Column(Integer, ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True)

    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    type = Column(String, default=TaskType.NORMAL.value, nullable=False)
    status = Column(String, default=TaskStatus.IDEA.value, nullable=False, index=True)
    priority = Column(String, nullable=True)
    due_date = Column(DateTime, nullable=True, index=True)
    due_time = Column(String, nullable=True)

    is_recurring = Column(Boolean, default=False, nullable=False)
    recurring_pattern = Column(Text, nullable=True)

    is_timer_active = Column(Boolean, default=False, nullable=False)
    timer_started_at = Column(DateTime, nullable=True)
    total_time_spent = Column(Integer, default=0, nullable=False)

    completed_at = Column(DateTime, nullable=True, index=True)
    completed_count = Column(Integer, default=0, nullable=False)
    feedback = Column(String, nullable=True)
    waiting_reason = Column(String, nullable=True)
    # position dans la colonne de statut (kanban), croissante
    sort_order = Column(Integer, default=0, nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    project = relationship("Project", back_populates="tasks")
    tags = relationship("Tag", secondary=task_tags, back_populates="tasks", order_by="Tag.name")
    time_entries = relationship(
        "TimeEntry", back_populates="task", cascade="all, delete-orphan", order_by="TimeEntry.start_time"
    )
    status_history = relationship(
        "TaskStatusHistory", back_populates="task", cascade="all, delete-orphan",
        order_by="TaskStatusHistory.id"
    )
    linked_notes = relationship("Note", secondary="note_task_links", back_populates="linked_tasks")
