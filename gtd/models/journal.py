from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text, UniqueConstraint
from datetime import datetime
from gtd.core.database import Base

class Journal(Base):
    __tablename__ = "journals"
    __table_args__ = (UniqueConstraint("date", "user_id", name="uq_journals_date_user"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    date = Column(DateTime, nullable=False, index=True)  # minuit local
    content = Column(Text, nullable=False)
    template = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
