from sqlalchemy import Column, String, DateTime
from squadbot.utils.clock import utcnow
from squadbot.database import Base

class UserSessionRecord(Base):
    __tablename__ = "user_sessions"

    user_id = Column(String, primary_key=True)
    session_id = Column(String, nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
