# app/models/progress.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.sql import func

from app.core.database import Base

PROGRESS_STATUSES = ("active", "completed", "exited")


class TestProgress(Base):
    __tablename__ = "test_progress"
    __table_args__ = (
        UniqueConstraint("user_id", "test_id", name="uq_test_progress_user_test"),
    )
    __test__ = False  # not a pytest class

    id = Column(Integer, primary_key=True, index=True)

    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    test_id = Column(
        Integer, ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True
    )

    index = Column(Integer, nullable=False, default=0)  # current question number
    total = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default="active")

    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @property
    def percent(self) -> int:
        return round(100 * self.index / self.total) if self.total else 0

    def __repr__(self):
        return f"<TestProgress(user_id={self.user_id}, test_id={self.test_id}, index={self.index})>"
