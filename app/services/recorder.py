# app/services/recorder.py
import logging
from typing import Any, Optional

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.session import AttemptSession
from app.models.question import Question
from app.utils.answers import index_for, normalize_answer

logger = logging.getLogger(__name__)


class AnswerRecorder:
    """
    Writes a student's answer into their session and bumps the question's vote tally.

    The session is the source of truth for grading. The vote counter is analytics
    only: it is a plain read-modify-write, so simultaneous votes from different
    students can overwrite each other.
    """

    def __init__(self, db: Session, session: AttemptSession):
        self.db = db
        self.session = session

    def get_question(self, question_id: int) -> Question:
        question = self.db.query(Question).filter(Question.id == question_id).first()
        if not question:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Question not found",
            )
        return question

    def record_answer(
        self,
        question_id: int,
        raw_answer: Any,
        elapsed_seconds: Optional[int] = None,
    ) -> Optional[str]:
        """
        Normalize and store an answer. Returns the stored letter, or None when the
        token could not be understood (the session is left untouched in that case).
        """
        question = self.get_question(question_id)
        num_choices = len(question.choices or [])

        letter = normalize_answer(raw_answer, num_choices)
        if letter is None:
            logger.warning(
                f"Ignoring unrecognized answer {raw_answer!r} for question {question_id}"
            )
            return None

        if elapsed_seconds is None:
            elapsed_seconds = self.session.seconds_on_current_question()

        self.session.set_answer(question_id, letter)
        self.session.set_time(question_id, elapsed_seconds)
        self.session.save()

        self.increment_vote(question, letter)
        return letter

    def set_marked(self, question_id: int, marked: bool) -> None:
        self.session.set_marked(question_id, marked)
        self.session.save()

    def increment_vote(self, question: Question, letter: str) -> None:
        try:
            num_choices = len(question.choices or [])
            counts = list(question.choice_vote_counts or [])
            if len(counts) != num_choices:
                counts = [0] * num_choices

            position = index_for(letter)
            if 0 <= position < num_choices:
                counts[position] += 1
            else:
                logger.debug(
                    f"Letter {letter} is outside the {num_choices} choices of question {question.id}"
                )

            # New list object so the JSON column is flagged dirty
            question.choice_vote_counts = counts
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to update vote counts for question {question.id}: {e}")
