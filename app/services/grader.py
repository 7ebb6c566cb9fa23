# app/services/grader.py
import logging
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.decorator import FinalizationError
from app.core.session import AttemptSession
from app.models.practice import PracticeTest
from app.models.question import Question
from app.models.result import Result
from app.services.navigator import load_test_questions
from app.services.progress import ProgressTracker
from app.utils.answers import choice_text, resolve_correct_letter

logger = logging.getLogger(__name__)


def percent_score(correct: int, total: int) -> int:
    """Whole percentage, halves rounded up."""
    return (200 * correct + total) // (2 * total)


def grade_answers(
    questions: Sequence[Question],
    answers: Mapping[str, str],
    question_times: Mapping[str, int],
) -> Tuple[int, List[Dict]]:
    """
    Compare recorded letters against each question's correct letter, in question order.
    Returns the number correct and one detail row per question.
    """
    correct_count = 0
    details = []
    for question in questions:
        key = str(question.id)
        choices = list(question.choices or [])
        selected = answers.get(key) or None
        correct = resolve_correct_letter(question.correct_answer, choices)
        is_correct = selected is not None and correct is not None and selected == correct
        if is_correct:
            correct_count += 1

        details.append(
            {
                "question_id": question.id,
                "selected_answer": selected,
                "selected_text": choice_text(choices, selected),
                "correct_answer": correct,
                "correct_text": choice_text(choices, correct),
                "is_correct": is_correct,
                "time_spent": int(question_times.get(key, 0) or 0),
            }
        )
    return correct_count, details


class AttemptFinalizer:
    def __init__(self, db: Session, session: AttemptSession):
        self.db = db
        self.session = session

    def _previous_result(self, test_id: int) -> Optional[Result]:
        """The Result this session already produced for the test, if nothing new started."""
        if self.session.has_attempt_state:
            return None
        result_id = self.session.completed_attempts.get(str(test_id))
        if result_id is None:
            return None
        return (
            self.db.query(Result)
            .filter(Result.id == result_id, Result.test_id == test_id)
            .first()
        )

    def finalize(self, test_id: int, user_id: Optional[int] = None) -> Result:
        test = self.db.query(PracticeTest).filter(PracticeTest.id == test_id).first()
        if not test:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Test not available",
            )

        previous = self._previous_result(test_id)
        if previous is not None:
            logger.info(
                f"Attempt on test {test_id} already finalized as result {previous.id}"
            )
            return previous

        questions = load_test_questions(self.db, test_id)
        total = len(questions)
        if total == 0:
            raise FinalizationError("No questions found for this test")

        correct_count, details = grade_answers(
            questions, self.session.answers, self.session.question_times
        )

        result = Result(
            user_id=user_id,
            test_id=test_id,
            attempt_id=self.session.attempt_id,
            score=percent_score(correct_count, total),
            total_questions=total,
            correct_answers=correct_count,
            detailed_results=details,
            time_taken=self.session.elapsed_test_seconds(),
        )
        try:
            self.db.add(result)
            self.db.commit()
            self.db.refresh(result)
        except IntegrityError as e:
            self.db.rollback()
            existing = self._result_for_attempt(self.session.attempt_id)
            if existing is None:
                logger.error(f"Failed to save result for test {test_id}: {e}")
                raise FinalizationError("Could not save test result")
            # An overlapping request for the same attempt got there first
            logger.info(
                f"Attempt {self.session.attempt_id} already saved as result {existing.id}"
            )
            self._complete(test_id, existing, user_id)
            return existing
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to save result for test {test_id}: {e}")
            raise FinalizationError("Could not save test result")

        logger.info(
            f"Result {result.id} saved: test={test_id} user={user_id or 'anonymous'} "
            f"score={result.score}% ({correct_count}/{total}) in {result.time_taken}s"
        )

        self._complete(test_id, result, user_id)
        return result

    def _result_for_attempt(self, attempt_id: Optional[str]) -> Optional[Result]:
        if attempt_id is None:
            return None
        return self.db.query(Result).filter(Result.attempt_id == attempt_id).first()

    def _complete(self, test_id: int, result: Result, user_id: Optional[int]) -> None:
        self.session.clear_attempt()
        self.session.record_completion(test_id, result.id)
        self.session.save()
        logger.debug(f"Cleared attempt state for session {self.session.session_id[:8]}…")

        if user_id:
            ProgressTracker(self.db).mark(user_id, test_id, "completed")
