"""
Navigator, recorder and finalizer driven directly against the database
"""

from unittest import mock

import pytest
from fastapi import HTTPException
from sqlalchemy.exc import SQLAlchemyError

from app.core.decorator import FinalizationError
from app.core.session import AttemptSession
from app.models.progress import TestProgress
from app.models.result import Result
from app.schemas.practice import AccessUpdate
from app.schemas.user import UserCreate
from app.services.grader import AttemptFinalizer, percent_score
from app.services.navigator import QuestionNavigator
from app.services.practice import PracticeTestService
from app.services.recorder import AnswerRecorder
from app.services.user import UserService

CHOICES = ["kVp", "mAs", "SID", "OID"]


def test_grading_compares_canonical_letters(db, attempt, make_test):
    test, (q1, q2) = make_test(questions=[(CHOICES, "B"), (CHOICES, "A")])
    attempt.set_answer(q1.id, "B")
    attempt.set_answer(q2.id, "C")

    result = AttemptFinalizer(db, attempt).finalize(test.id)

    assert result.correct_answers == 1
    assert result.score == 50
    assert result.total_questions == 2
    assert len(result.detailed_results) == 2
    assert result.detailed_results[0]["is_correct"] is True
    assert result.detailed_results[1]["is_correct"] is False
    assert result.detailed_results[1]["selected_text"] == "SID"
    assert result.detailed_results[1]["correct_text"] == "kVp"


def test_unanswered_questions_are_incorrect_with_zero_time(db, attempt, make_test):
    test, questions = make_test(questions=[(CHOICES, "B")] * 3)
    attempt.start_attempt(test.id)

    result = AttemptFinalizer(db, attempt).finalize(test.id)

    assert result.score == 0
    assert [row["selected_answer"] for row in result.detailed_results] == [None] * 3
    assert [row["time_spent"] for row in result.detailed_results] == [0] * 3
    assert [row["question_id"] for row in result.detailed_results] == [
        q.id for q in questions
    ]


def test_correct_answer_given_as_choice_text(db, attempt, make_test):
    test, (question,) = make_test(questions=[(CHOICES, "sid")])
    attempt.set_answer(question.id, "C")

    result = AttemptFinalizer(db, attempt).finalize(test.id)

    assert result.correct_answers == 1
    assert result.detailed_results[0]["correct_answer"] == "C"


@pytest.mark.parametrize(
    "correct, total, score", [(1, 3, 33), (2, 3, 67), (1, 8, 13), (3, 4, 75), (0, 5, 0)]
)
def test_percent_score_rounds_halves_up(correct, total, score):
    assert percent_score(correct, total) == score


def test_finalize_without_questions_fails(db, attempt, make_test):
    test, _ = make_test()

    with pytest.raises(FinalizationError) as exc_info:
        AttemptFinalizer(db, attempt).finalize(test.id)

    assert exc_info.value.status_code == 500
    assert db.query(Result).count() == 0


def test_finalize_unknown_test(db, attempt):
    with pytest.raises(HTTPException) as exc_info:
        AttemptFinalizer(db, attempt).finalize(999)
    assert exc_info.value.status_code == 404


def test_failed_result_save_keeps_session(db, attempt, make_test):
    test, (question,) = make_test(questions=[(CHOICES, "A")])
    attempt.set_answer(question.id, "A")

    with mock.patch.object(db, "commit", side_effect=SQLAlchemyError("disk full")):
        with pytest.raises(FinalizationError):
            AttemptFinalizer(db, attempt).finalize(test.id)

    assert attempt.get_answer(question.id) == "A"


def test_finalize_clears_session_and_next_start_reinitializes(
    db, store, attempt, make_test
):
    test, questions = make_test(questions=[(CHOICES, "A"), (CHOICES, "B")])
    navigator = QuestionNavigator(db, attempt)
    navigator.load_question(test.id, 0)
    AnswerRecorder(db, attempt).record_answer(questions[0].id, "A", 4)

    AttemptFinalizer(db, attempt).finalize(test.id)

    reloaded = AttemptSession(store, attempt.session_id)
    assert reloaded.answers == {}
    assert reloaded.question_times == {}
    assert reloaded.test_start_time is None

    other, _ = make_test(title="Patient Care", questions=[(CHOICES, "C")])
    QuestionNavigator(db, reloaded).load_question(other.id, 0)
    assert AttemptSession(store, attempt.session_id).test_start_time is not None


def test_repeated_finalize_returns_same_result(db, attempt, make_test):
    test, (question,) = make_test(questions=[(CHOICES, "A")])
    navigator = QuestionNavigator(db, attempt)
    navigator.load_question(test.id, 0)
    AnswerRecorder(db, attempt).record_answer(question.id, "a", 3)

    first = AttemptFinalizer(db, attempt).finalize(test.id)
    second = AttemptFinalizer(db, attempt).finalize(test.id)

    assert first.id == second.id
    assert db.query(Result).count() == 1

    # A retake is a new attempt with its own Result
    navigator.load_question(test.id, 0)
    third = AttemptFinalizer(db, attempt).finalize(test.id)
    assert third.id != first.id
    assert third.attempt_id != first.attempt_id
    assert db.query(Result).count() == 2


def test_overlapping_finalize_requests_share_one_result(db, store, make_test):
    test, (question,) = make_test(questions=[(CHOICES, "A")])
    starter = AttemptSession(store, "double-click")
    QuestionNavigator(db, starter).load_question(test.id, 0)
    AnswerRecorder(db, starter).record_answer(question.id, "A", 6)

    # Both requests read the session before either one finished grading
    first_request = AttemptSession(store, "double-click")
    second_request = AttemptSession(store, "double-click")

    first = AttemptFinalizer(db, first_request).finalize(test.id)
    second = AttemptFinalizer(db, second_request).finalize(test.id)

    assert second.id == first.id
    assert db.query(Result).count() == 1

    reloaded = AttemptSession(store, "double-click")
    assert reloaded.answers == {}
    assert reloaded.completed_attempts == {str(test.id): first.id}


def test_last_question_boundary(db, attempt, make_test):
    test, _ = make_test(questions=[(CHOICES, "A")] * 3)
    navigator = QuestionNavigator(db, attempt)

    assert navigator.load_question(test.id, 1).is_last_question is False
    page = navigator.load_question(test.id, 2)
    assert page.is_last_question is True
    assert page.next_index is None
    assert page.progress_percent == 100

    for index in (3, -1):
        with pytest.raises(HTTPException) as exc_info:
            navigator.load_question(test.id, index)
        assert exc_info.value.status_code == 404
        assert exc_info.value.detail == "Test not available"


def test_inactive_test_is_not_available(db, attempt, make_test):
    test, _ = make_test(questions=[(CHOICES, "A")])
    PracticeTestService(db).toggle_test(test.id)

    with pytest.raises(HTTPException) as exc_info:
        QuestionNavigator(db, attempt).load_question(test.id, 0)
    assert exc_info.value.detail == "Test not available"


def test_start_time_set_only_on_first_question(db, attempt, make_test):
    test, _ = make_test(questions=[(CHOICES, "A")] * 2)
    navigator = QuestionNavigator(db, attempt)

    navigator.load_question(test.id, 1)
    assert attempt.test_start_time is None

    navigator.load_question(test.id, 0)
    started = attempt.test_start_time
    assert started is not None

    navigator.load_question(test.id, 0)
    assert attempt.test_start_time == started


def test_saved_answer_prefills_page(db, attempt, make_test):
    test, (question,) = make_test(questions=[(CHOICES, "A")])
    AnswerRecorder(db, attempt).record_answer(question.id, 2, 1)

    page = QuestionNavigator(db, attempt).load_question(test.id, 0)

    assert page.saved_answer == "C"
    assert page.correct_answer is None


def test_feedback_page_shows_votes_and_explanations(db, attempt, make_test):
    test, (question,) = make_test(questions=[(CHOICES, "B")])
    question.explanation = "mAs controls quantity"
    question.option_explanations = ["Quality", "Quantity"]
    question.choice_vote_counts = [1, 2, 1, 0]
    question.image_urls = ["/img/chest.png"]
    db.commit()

    page = QuestionNavigator(db, attempt).load_question(test.id, 0, feedback=True)

    assert page.correct_answer == "B"
    assert page.explanation == "mAs controls quantity"
    assert [c.vote_percent for c in page.choices] == [25, 50, 25, 0]
    assert [c.explanation for c in page.choices] == ["Quality", "Quantity", None, None]
    assert page.images[0].label == "Image A"


def test_invalid_answer_leaves_session_untouched(db, attempt, make_test):
    _, (question,) = make_test(questions=[(CHOICES, "A")])

    assert AnswerRecorder(db, attempt).record_answer(question.id, "maybe", 5) is None

    assert attempt.answers == {}
    assert attempt.question_times == {}
    db.refresh(question)
    assert question.choice_vote_counts == [0, 0, 0, 0]


def test_sessions_are_isolated_but_votes_are_shared(db, store, make_test):
    _, (question,) = make_test(questions=[(CHOICES, "A")])
    first = AttemptSession(store, "first")
    second = AttemptSession(store, "second")

    AnswerRecorder(db, first).record_answer(question.id, "A", 10)
    AnswerRecorder(db, second).record_answer(question.id, "3", 20)

    first = AttemptSession(store, "first")
    second = AttemptSession(store, "second")
    assert first.answers == {str(question.id): "A"}
    assert second.answers == {str(question.id): "D"}
    assert first.get_time(question.id) == 10
    assert second.get_time(question.id) == 20

    db.refresh(question)
    assert question.choice_vote_counts == [1, 0, 0, 1]


def test_vote_counts_repaired_before_increment(db, attempt, make_test):
    _, (question,) = make_test(questions=[(CHOICES, "A")])
    question.choice_vote_counts = []
    db.commit()

    AnswerRecorder(db, attempt).record_answer(question.id, "B", 2)

    db.refresh(question)
    assert question.choice_vote_counts == [0, 1, 0, 0]


def test_vote_count_failure_does_not_block_answer(db, attempt, make_test):
    _, (question,) = make_test(questions=[(CHOICES, "A")])
    recorder = AnswerRecorder(db, attempt)

    with mock.patch.object(db, "commit", side_effect=SQLAlchemyError("locked")):
        assert recorder.record_answer(question.id, "A", 6) == "A"

    assert attempt.get_answer(question.id) == "A"
    assert attempt.get_time(question.id) == 6


def test_elapsed_time_falls_back_to_question_start(db, attempt, make_test):
    test, (question,) = make_test(questions=[(CHOICES, "A")])
    QuestionNavigator(db, attempt).load_question(test.id, 0)
    attempt.data["question_start_time"] -= 15_000

    AnswerRecorder(db, attempt).record_answer(question.id, "A")

    assert attempt.get_time(question.id) == 15


# ==================== Access limits & progress ====================


def _student(db, email):
    return UserService(db).create_user(UserCreate(name=email.split("@")[0], email=email))


def test_limited_test_admits_up_to_max_users(db, store, make_test):
    test, _ = make_test(questions=[(CHOICES, "A")] * 2)
    PracticeTestService(db).update_access(
        test.id, AccessUpdate(access_type="limited", max_users=1)
    )
    first = _student(db, "first@radiography.org")
    second = _student(db, "second@radiography.org")

    QuestionNavigator(db, AttemptSession(store, "a")).load_question(
        test.id, 0, user=first
    )

    with pytest.raises(HTTPException) as exc_info:
        QuestionNavigator(db, AttemptSession(store, "b")).load_question(
            test.id, 0, user=second
        )
    assert exc_info.value.status_code == 403
    assert exc_info.value.detail == "Test is full"

    # Skipping ahead does not get around a full test
    with pytest.raises(HTTPException) as exc_info:
        QuestionNavigator(db, AttemptSession(store, "b")).load_question(
            test.id, 1, user=second
        )
    assert exc_info.value.status_code == 403

    # A seat holder can always come back
    QuestionNavigator(db, AttemptSession(store, "c")).load_question(
        test.id, 0, user=first
    )

    with pytest.raises(HTTPException) as exc_info:
        QuestionNavigator(db, AttemptSession(store, "d")).load_question(test.id, 0)
    assert exc_info.value.status_code == 401

    with pytest.raises(HTTPException) as exc_info:
        QuestionNavigator(db, AttemptSession(store, "e")).load_question(test.id, 1)
    assert exc_info.value.status_code == 401

    page = QuestionNavigator(db, AttemptSession(store, "a")).load_question(
        test.id, 1, user=first
    )
    assert page.index == 1


def test_progress_follows_the_attempt(db, attempt, make_test):
    test, questions = make_test(questions=[(CHOICES, "A")] * 4)
    user = _student(db, "dana@radiography.org")
    navigator = QuestionNavigator(db, attempt)

    navigator.load_question(test.id, 0, user=user)
    navigator.load_question(test.id, 2, user=user)

    row = db.query(TestProgress).filter_by(user_id=user.id, test_id=test.id).one()
    assert (row.index, row.total, row.status, row.percent) == (2, 4, "active", 50)

    AttemptFinalizer(db, attempt).finalize(test.id, user_id=user.id)

    db.refresh(row)
    assert row.status == "completed"
    assert db.query(TestProgress).count() == 1


def test_progress_failure_does_not_block_navigation(db, attempt, make_test):
    test, _ = make_test(questions=[(CHOICES, "A")])
    user = _student(db, "dana@radiography.org")

    with mock.patch(
        "app.services.progress.utcnow", side_effect=SQLAlchemyError("gone")
    ):
        page = QuestionNavigator(db, attempt).load_question(test.id, 0, user=user)

    assert page.question_id is not None
    assert db.query(TestProgress).count() == 0
