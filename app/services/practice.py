# app/services/practice.py
import logging
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.decorator import db_exception
from app.models.practice import PracticeTest
from app.models.question import Question
from app.schemas.practice import (
    AccessUpdate,
    PracticeTestCreate,
    PracticeTestUpdate,
    QuestionCreate,
    QuestionUpdate,
)
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


class PracticeTestService:
    def __init__(self, db: Session):
        self.db = db

    def get_test(self, test_id: int) -> PracticeTest:
        test = self.db.query(PracticeTest).filter(PracticeTest.id == test_id).first()
        if not test:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Test not found",
            )
        return test

    def _ensure_unique_title(self, title: str, exclude_id: Optional[int] = None) -> None:
        query = self.db.query(PracticeTest).filter(PracticeTest.title == title)
        if exclude_id is not None:
            query = query.filter(PracticeTest.id != exclude_id)
        if query.first():
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Test with this title already exists",
            )

    @db_exception
    def create_test(self, test_in: PracticeTestCreate) -> PracticeTest:
        self._ensure_unique_title(test_in.title)

        test = PracticeTest(**test_in.model_dump())
        self.db.add(test)
        self.db.commit()
        self.db.refresh(test)

        logger.info(f"Created test {test.id} '{test.title}'")
        return test

    def list_tests(self) -> List[Tuple[PracticeTest, int]]:
        """All tests, newest first, with their question counts"""
        counts = (
            self.db.query(Question.test_id, func.count(Question.id).label("n"))
            .group_by(Question.test_id)
            .subquery()
        )
        rows = (
            self.db.query(PracticeTest, func.coalesce(counts.c.n, 0))
            .outerjoin(counts, counts.c.test_id == PracticeTest.id)
            .order_by(PracticeTest.created_at.desc(), PracticeTest.id.desc())
            .all()
        )
        return [(test, int(count)) for test, count in rows]

    @db_exception
    def update_test(self, test_id: int, test_in: PracticeTestUpdate) -> PracticeTest:
        test = self.get_test(test_id)

        if test_in.title and test_in.title != test.title:
            self._ensure_unique_title(test_in.title, exclude_id=test_id)

        for field, value in test_in.model_dump(exclude_unset=True).items():
            setattr(test, field, value)

        self.db.commit()
        self.db.refresh(test)
        return test

    @db_exception
    def toggle_test(self, test_id: int) -> PracticeTest:
        test = self.get_test(test_id)
        was_active = test.is_active
        test.is_active = not test.is_active
        test.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(test)

        logger.info(
            f"Test '{test.title}' (ID: {test_id}) toggled "
            f"{'active' if was_active else 'blocked'} -> {'active' if test.is_active else 'blocked'}"
        )
        return test

    @db_exception
    def update_access(self, test_id: int, access_in: AccessUpdate) -> PracticeTest:
        test = self.get_test(test_id)

        if access_in.access_type == "infinite":
            test.is_open_access = True
            test.max_users = 0
        else:
            if access_in.max_users is None or access_in.max_users < 1:
                raise HTTPException(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail="Please enter a valid number of users.",
                )
            test.is_open_access = False
            test.max_users = access_in.max_users

        self.db.commit()
        self.db.refresh(test)
        logger.info(
            f"Test '{test.title}' access set to "
            f"{'infinite' if test.is_open_access else f'{test.max_users} users'}"
        )
        return test


class QuestionService:
    def __init__(self, db: Session):
        self.db = db

    def get_question(self, question_id: int) -> Question:
        question = self.db.query(Question).filter(Question.id == question_id).first()
        if not question:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Question not found",
            )
        return question

    def list_for_test(self, test_id: int) -> List[Question]:
        PracticeTestService(self.db).get_test(test_id)
        return (
            self.db.query(Question)
            .filter(Question.test_id == test_id)
            .order_by(Question.id.asc())
            .all()
        )

    @db_exception
    def create_question(self, question_in: QuestionCreate) -> Question:
        PracticeTestService(self.db).get_test(question_in.test_id)

        question = Question(
            **question_in.model_dump(),
            choice_vote_counts=[0] * len(question_in.choices),
            assigned_at=utcnow(),
        )
        self.db.add(question)
        self.db.commit()
        self.db.refresh(question)
        return question

    @db_exception
    def update_question(self, question_id: int, question_in: QuestionUpdate) -> Question:
        question = self.get_question(question_id)
        data = question_in.model_dump(exclude_unset=True)

        if "test_id" in data and data["test_id"] != question.test_id:
            PracticeTestService(self.db).get_test(data["test_id"])
            question.assigned_at = utcnow()

        for field, value in data.items():
            setattr(question, field, value)

        # Keep one counter per choice
        counts = list(question.choice_vote_counts or [])
        if len(counts) != len(question.choices or []):
            question.choice_vote_counts = [0] * len(question.choices or [])

        self.db.commit()
        self.db.refresh(question)
        return question

    @db_exception
    def delete_question(self, question_id: int) -> bool:
        question = self.get_question(question_id)
        self.db.delete(question)
        self.db.commit()
        logger.info(f"Deleted question {question_id}")
        return True
