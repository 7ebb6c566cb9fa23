# app/models/practice.py
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import func

from app.core.database import Base


class PracticeTest(Base):
    __tablename__ = "tests"

    id = Column(Integer, primary_key=True, index=True)

    title = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(Text, nullable=True)
    category = Column(String(100), nullable=True)

    # Advisory only, the server never cuts an attempt off
    time_limit = Column(Integer, nullable=True)  # minutes

    # Inactive tests refuse to serve questions
    is_active = Column(Boolean, default=True, nullable=False)

    # Display only
    start_date = Column(DateTime(timezone=True), nullable=True)
    end_date = Column(DateTime(timezone=True), nullable=True)

    # Access limits (0 users = unlimited)
    is_open_access = Column(Boolean, default=True, nullable=False)
    max_users = Column(Integer, default=0, nullable=False)

    # Timestamps
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    @property
    def is_limited(self) -> bool:
        return not self.is_open_access and (self.max_users or 0) > 0

    def __repr__(self):
        return f"<PracticeTest(id={self.id}, title='{self.title}', active={self.is_active})>"
