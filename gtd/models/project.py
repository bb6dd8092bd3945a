"""Project model"""

from sqlalchemy import Column, Integer, String, DateTime, Boolean, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from datetime import datetime
from gtd.core.database import Base


class Project(Base):
    __tablename__ = "projects"
    __table_args__ = (
        # nom unique par utilisateur tant que le projet n'est pas archivé
        Index(
            "uq_projects_active_name",
            "user_id",
            "name",
            unique=True,
            sqlite_where=text("is_archived = 0"),
            postgresql_where=text("is_archived = false"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    name = Column(String, nullable=False)
    description = Column(String, nullable=True)
    color = Column(String, nullable=True)

    is_archived = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    tasks = relationship("Task", back_populates="project")
    notes = relationship("Note", back_populates="project")
