from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from datetime import datetime
from gtd.core.database import Base

class TaskStatusHistory(Base):
    __tablename__ = "task_status_history"

    id = Column(Integer, primary_key=True, index=True)
    task_id = Column(Integer, ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    from_status = Column(String, nullable=True)  # null à la création
    to_status = Column(String, nullable=False)
    changed_at = Column(DateTime, default=datetime.now, nullable=False)
    changed_by_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    note = Column(String, nullable=True)

    task = relationship("Task", back_populates="status_history")
