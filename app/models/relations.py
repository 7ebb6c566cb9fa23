# app/models/relations.py

from sqlalchemy.orm import relationship

# Import all relevant models
from .practice import PracticeTest
from .progress import TestProgress
from .question import Question
from .result import Result
from .user import User


def setup_relationships():
    """
    Configure all SQLAlchemy relationships between models.
    """

    # --- Test Content Relationships ---

    # 1. Test to Questions (One-to-Many), in creation order
    PracticeTest.questions = relationship(
        "Question",
        back_populates="test",
        order_by="Question.id",
        cascade="all, delete-orphan",
    )
    Question.test = relationship("PracticeTest", back_populates="questions")

    # --- Grading Relationships ---

    # 2. Test to Results (One-to-Many)
    PracticeTest.results = relationship(
        "Result",
        back_populates="test",
        cascade="all, delete-orphan",
    )
    Result.test = relationship("PracticeTest", back_populates="results")

    # 3. User to Results (One-to-Many, results survive user removal)
    User.results = relationship(
        "Result",
        back_populates="user",
        order_by="Result.created_at.desc()",
    )
    Result.user = relationship("User", back_populates="results")

    # --- Progress Relationships ---

    # 4. Progress rows for the live dashboard
    TestProgress.user = relationship("User")
    TestProgress.test = relationship("PracticeTest")
