# app/models/result.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.sql import func

from app.core.database import Base, JSONType


class Result(Base):
    __tablename__ = "results"

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True
    )  # Null for anonymous attempts
    test_id = Column(
        Integer, ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    attempt_id = Column(String(64), unique=True, nullable=True)

    # Grading
    score = Column(Integer, nullable=False)  # Whole percentage
    total_questions = Column(Integer, nullable=False)
    correct_answers = Column(Integer, nullable=False)
    detailed_results = Column(
        JSONType, nullable=False
    )  # [{"question_id", "selected_answer", "correct_answer", "is_correct", "time_spent", ...}]

    time_taken = Column(Integer, nullable=False, default=0)  # seconds

    # Timestamps
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<Result(id={self.id}, test_id={self.test_id}, score={self.score})>"
