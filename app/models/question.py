# app/models/question.py
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from app.core.database import Base, JSONType


class Question(Base):
    __tablename__ = "questions"

    id = Column(Integer, primary_key=True, index=True)

    # Relationships
    test_id = Column(
        Integer, ForeignKey("tests.id", ondelete="CASCADE"), nullable=False, index=True
    )

    # Content
    prompt_text = Column(Text, nullable=False)
    choices = Column(JSONType, nullable=False, default=list)  # ["...", "...", ...] lettered A, B, ...
    correct_answer = Column(
        String(255), nullable=False
    )  # Usually a letter, sometimes the choice text itself
    explanation = Column(Text, nullable=True)
    option_explanations = Column(JSONType, nullable=False, default=list)
    category = Column(String(100), nullable=True)

    # Images: parallel lists, labels defaulted on read
    image_urls = Column(JSONType, nullable=False, default=list)
    image_labels = Column(JSONType, nullable=False, default=list)

    # Vote tracking, one counter per choice
    choice_vote_counts = Column(JSONType, nullable=False, default=list)

    # Timestamps
    assigned_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self):
        return f"<Question(id={self.id}, test_id={self.test_id})>"
