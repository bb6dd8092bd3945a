from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import relationship
from datetime import datetime
from gtd.core.database import Base

class TimeEntry(Base):
    __tablename__ = "time_entries"
    __table_args__ = (
        # au plus une entrée ouverte par tâche
        Index(
            "uq_time_entries_one_open",
            "task_id",
            unique=True,
            sqlite_where=text("end_time IS NULL"),
            postgresql_where=text("end_time IS NULL"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    start_time = Column(DateTime, nullable=False)
    end_time = Column(DateTime, nullable=True)
    duration = Column(Integer, nullable=True)  # secondes, null si fermée de force
    description = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    task = relationship("Task", back_populates="time_entries")
