from sqlalchemy import Column, Integer, String, DateTime, Text
from datetime import datetime
from gtd.core.database import Base

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, nullable=False, index=True)
    name = Column(String, nullable=True)
    # blob JSON des préférences, lu via services.user_settings
    settings = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
