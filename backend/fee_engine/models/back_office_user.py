from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.sql import func

from fee_engine.core.database import Base


class BackOfficeUser(Base):
    """Staff account allowed to manage schedules and assignments."""

    __tablename__ = "back_office_users"

    id = Column(String(36), primary_key=True, index=True)
    username = Column(String(100), unique=True, index=True, nullable=False)
    hashed_password = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
