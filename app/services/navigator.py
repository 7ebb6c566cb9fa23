# app/services/navigator.py
import logging
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.core.session import AttemptSession
from app.models.practice import PracticeTest
from app.models.question import Question
from app.models.user import User
from app.schemas.exam import ChoiceView, ImageView, QuestionPage
from app.services.access import AccessLimitService
from app.services.presence import PresenceService
from app.services.progress import ProgressTracker
from app.utils.answers import default_image_labels, letter_for, resolve_correct_letter

logger = logging.getLogger(__name__)


def not_available_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail="Test not available",
    )


def load_test_questions(db: Session, test_id: int) -> List[Question]:
    """All questions of a test in creation order."""
    return (
        db.query(Question)
        .filter(Question.test_id == test_id)
        .order_by(Question.id.asc())
        .all()
    )


def vote_percentages(question: Question) -> List[int]:
    counts = list(question.choice_vote_counts or [])
    total_votes = sum(counts)
    percents = []
    for i in range(len(question.choices or [])):
        count = counts[i] if i < len(counts) else 0
        percents.append(round(count / total_votes * 100) if total_votes > 0 else 0)
    return percents


class QuestionNavigator:
    def __init__(self, db: Session, session: AttemptSession):
        self.db = db
        self.session = session

    def get_available_test(self, test_id: int) -> PracticeTest:
        test = self.db.query(PracticeTest).filter(PracticeTest.id == test_id).first()
        if not test or not test.is_active:
            raise not_available_error()
        return test

    def locate(self, test_id: int, index: int) -> Tuple[PracticeTest, Question, int]:
        """Resolve question ``index`` of an active test or raise 404."""
        test = self.get_available_test(test_id)
        questions = load_test_questions(self.db, test_id)
        if index < 0 or index >= len(questions):
            raise not_available_error()
        return test, questions[index], len(questions)

    def load_question(
        self,
        test_id: int,
        index: int,
        user: Optional[User] = None,
        feedback: bool = False,
    ) -> QuestionPage:
        test, question, total = self.locate(test_id, index)

        # Limited tests are gated on every question, not just the first
        AccessLimitService(self.db).ensure_can_start(test, user)
        if index == 0 and not self.session.test_start_time:
            self.session.start_attempt(test_id)
            logger.info(
                f"Attempt {self.session.attempt_id} started on test {test_id} "
                f"(user={user.id if user else 'anonymous'})"
            )
        self.session.mark_question_start()
        self.session.save()

        if user is not None:
            ProgressTracker(self.db).touch(user.id, test_id, index, total)
            PresenceService(self.db).touch(user)

        return self._build_page(test, question, index, total, feedback)

    def _build_page(
        self,
        test: PracticeTest,
        question: Question,
        index: int,
        total: int,
        feedback: bool,
    ) -> QuestionPage:
        choices = list(question.choices or [])
        is_last = index + 1 >= total

        choice_views = []
        percents = vote_percentages(question) if feedback else []
        option_explanations = list(question.option_explanations or [])
        for i, text in enumerate(choices):
            view = ChoiceView(letter=letter_for(i), text=text)
            if feedback:
                view.vote_percent = percents[i]
                view.explanation = (
                    option_explanations[i] if i < len(option_explanations) else None
                )
            choice_views.append(view)

        image_urls = list(question.image_urls or [])
        labels = default_image_labels(image_urls, list(question.image_labels or []))

        page = QuestionPage(
            test_id=test.id,
            test_title=test.title,
            question_id=question.id,
            index=index,
            total_questions=total,
            is_last_question=is_last,
            next_index=None if is_last else index + 1,
            progress_percent=round((index + 1) / total * 100),
            prompt_text=question.prompt_text,
            choices=choice_views,
            images=[ImageView(url=u, label=l) for u, l in zip(image_urls, labels)],
            saved_answer=self.session.get_answer(question.id),
            marked=question.id in self.session.marked,
            elapsed_test_seconds=self.session.elapsed_test_seconds(),
            time_limit=test.time_limit,
            feedback=feedback,
        )
        if feedback:
            page.correct_answer = resolve_correct_letter(question.correct_answer, choices)
            page.explanation = question.explanation
        return page
