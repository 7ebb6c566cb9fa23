# app/routers/exam.py
import logging
import math
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.dependencies import get_current_user, get_optional_user
from app.core.session import AttemptSession, get_attempt_session
from app.models.user import User
from app.schemas.exam import (
    PathQuestionSubmission,
    ProgressAnswerRequest,
    ProgressAnswerResponse,
    QuestionPage,
    QuestionSubmission,
)
from app.schemas.practice import PracticeTestSummary
from app.schemas.result import ResultListResponse, ResultResponse, ResultSummary
from app.services.grader import AttemptFinalizer
from app.services.navigator import QuestionNavigator, load_test_questions
from app.services.practice import PracticeTestService
from app.services.progress import ProgressTracker
from app.services.recorder import AnswerRecorder
from app.services.user import ResultService

logger = logging.getLogger(__name__)

router = APIRouter(
    tags=["Test Taking"],
    responses={404: {"description": "Not found"}},
)


def _finalize_redirect(test_id: int) -> RedirectResponse:
    return RedirectResponse(
        url=f"/submit-test-final/{test_id}", status_code=status.HTTP_303_SEE_OTHER
    )


def _next_step(test_id: int, index: int, total: int, letter: Optional[str]):
    """After an answer: feedback view of the same question, or grading after the last one."""
    if index + 1 >= total:
        return _finalize_redirect(test_id)
    url = f"/start-test/{test_id}?index={index}&feedback=true"
    if letter:
        url += f"&selected={letter}"
    return RedirectResponse(url=url, status_code=status.HTTP_303_SEE_OTHER)


def _whole_seconds(value: Optional[str]) -> Optional[int]:
    """Client timers may send fractions; anything unreadable falls back to the server clock."""
    if value in (None, ""):
        return None
    try:
        return max(0, math.floor(float(value)))
    except (ValueError, OverflowError):
        return None


# ==================== Test Center ====================


@router.get("/test-center", response_model=List[PracticeTestSummary])
def test_center(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    List all tests, newest first.
    Only logged-in students can see the test center.
    """
    rows = PracticeTestService(db).list_tests()
    return [
        PracticeTestSummary.model_validate(test).model_copy(
            update={"question_count": count}
        )
        for test, count in rows
    ]


# ==================== Question Navigation ====================


@router.get("/start-test/{test_id}", response_model=QuestionPage)
def start_test(
    test_id: int,
    index: int = Query(0),
    feedback: bool = Query(False),
    prev_qid: Optional[str] = Query(None, alias="prevQid"),
    chosen: Optional[str] = Query(None),
    elapsed_sec: Optional[str] = Query(None, alias="elapsedSec"),
    finish: bool = Query(False),
    db: Session = Depends(get_db),
    session: AttemptSession = Depends(get_attempt_session),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """
    Render question ``index`` of a test.

    When ``prevQid``/``chosen`` are present, the answer to the question the student
    just left is saved first. ``finish=1`` then jumps straight to grading.
    """
    if prev_qid not in (None, "") and chosen not in (None, ""):
        try:
            question_id = int(prev_qid)
            AnswerRecorder(db, session).record_answer(
                question_id, chosen, _whole_seconds(elapsed_sec)
            )
        except ValueError:
            logger.warning(f"Skipped saving answer: question id {prev_qid!r} is not a number")
        except HTTPException as e:
            # Never block navigation on a stale or bogus previous answer
            logger.warning(f"Skipped saving answer for question {prev_qid}: {e.detail}")

    if finish:
        return _finalize_redirect(test_id)

    navigator = QuestionNavigator(db, session)
    return navigator.load_question(test_id, index, user=current_user, feedback=feedback)


# ==================== Answer Submission ====================


def _submit(
    db: Session,
    session: AttemptSession,
    current_user: Optional[User],
    test_id: int,
    question_id: int,
    index: int,
    answer: Optional[Union[str, int]],
):
    recorder = AnswerRecorder(db, session)
    question = recorder.get_question(question_id)
    if question.test_id != test_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Question not found",
        )

    letter = None
    if answer not in (None, ""):
        letter = recorder.record_answer(question_id, answer)
    else:
        logger.warning(f"Empty answer submitted for question {question_id}")

    total = len(load_test_questions(db, test_id))
    if current_user is not None:
        ProgressTracker(db).touch(current_user.id, test_id, index, total)

    return _next_step(test_id, index, total, letter)


@router.post("/submit-question")
def submit_question(
    submission: QuestionSubmission,
    db: Session = Depends(get_db),
    session: AttemptSession = Depends(get_attempt_session),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """
    Record the current question's answer and move on.
    Redirects to the feedback view, or to grading after the last question.
    """
    return _submit(
        db,
        session,
        current_user,
        submission.test_id,
        submission.question_id,
        submission.index,
        submission.answer,
    )


@router.post("/submit-question/{test_id}/{question_id}")
def submit_question_for(
    test_id: int,
    question_id: int,
    submission: PathQuestionSubmission,
    db: Session = Depends(get_db),
    session: AttemptSession = Depends(get_attempt_session),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """Same as ``POST /submit-question`` with the ids in the path."""
    return _submit(
        db,
        session,
        current_user,
        test_id,
        question_id,
        submission.index,
        submission.answer,
    )


@router.post(
    "/api/test-progress/answer",
    response_model=ProgressAnswerResponse,
    response_model_by_alias=True,
)
def save_answer_in_background(
    payload: ProgressAnswerRequest,
    db: Session = Depends(get_db),
    session: AttemptSession = Depends(get_attempt_session),
):
    """
    AJAX autosave: record an answer (and optionally a review flag) without navigating.
    """
    recorder = AnswerRecorder(db, session)
    question = recorder.get_question(payload.question_id)
    if question.test_id != payload.test_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Question not found",
        )

    saved = None
    if payload.chosen not in (None, ""):
        saved = recorder.record_answer(
            payload.question_id, payload.chosen, payload.elapsed_sec
        )
    if payload.marked is not None:
        recorder.set_marked(payload.question_id, payload.marked)

    return ProgressAnswerResponse(
        ok=saved is not None or payload.marked is not None,
        saved=saved,
        session_counts=session.counts(),
    )


# ==================== Grading & Results ====================


@router.get("/submit-test-final/{test_id}")
def submit_test_final(
    test_id: int,
    db: Session = Depends(get_db),
    session: AttemptSession = Depends(get_attempt_session),
    current_user: Optional[User] = Depends(get_optional_user),
):
    """
    Grade everything recorded in this session for the test, save the Result,
    clear the attempt, and redirect to the result page.
    """
    finalizer = AttemptFinalizer(db, session)
    result = finalizer.finalize(
        test_id, user_id=current_user.id if current_user else None
    )
    return RedirectResponse(
        url=f"/results/{result.id}", status_code=status.HTTP_303_SEE_OTHER
    )


@router.get("/results/{result_id}", response_model=ResultResponse)
def get_result(
    result_id: int,
    db: Session = Depends(get_db),
    session: AttemptSession = Depends(get_attempt_session),
):
    """
    A single graded attempt with per-question detail.
    Results of logged-in students are only visible to that student's session.
    """
    result = ResultService(db).get_result(result_id)
    if result.user_id is not None and result.user_id != session.user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Result not found"
        )
    return result


@router.get("/user/results", response_model=ResultListResponse)
def my_results(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    The logged-in student's past results, newest first.
    """
    results = ResultService(db).list_for_user(current_user.id)
    summaries = [
        ResultSummary.model_validate(r).model_copy(
            update={"test_title": r.test.title if r.test else None}
        )
        for r in results
    ]
    return {"results": summaries, "total": len(summaries)}
