from typing import List, Optional

from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.dependencies import get_current_admin
from app.schemas.practice import (
    AccessUpdate,
    PracticeTestCreate,
    PracticeTestResponse,
    PracticeTestSummary,
    PracticeTestUpdate,
    QuestionCreate,
    QuestionImportResponse,
    QuestionListResponse,
    QuestionResponse,
    QuestionUpdate,
)
from app.schemas.progress import (
    LiveProgressItem,
    LiveProgressResponse,
    LiveUsersResponse,
    SweepResponse,
)
from app.schemas.user import UserListResponse, UserResponse
from app.services.practice import PracticeTestService, QuestionService
from app.services.presence import PresenceService
from app.services.progress import ProgressTracker
from app.services.question_import import QuestionImportService
from app.services.user import UserService

router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
    responses={404: {"description": "Not found"}},
    dependencies=[Depends(get_current_admin)],
)


# ==================== Tests ====================


@router.get(
    "/tests",
    response_model=List[PracticeTestSummary],
    description="List all tests with question counts",
)
def list_tests(db: Session = Depends(get_db)):
    rows = PracticeTestService(db).list_tests()
    return [
        PracticeTestSummary.model_validate(test).model_copy(
            update={"question_count": count}
        )
        for test, count in rows
    ]


@router.post(
    "/tests",
    response_model=PracticeTestResponse,
    status_code=201,
    description="Create a new test",
)
def create_test(test_in: PracticeTestCreate, db: Session = Depends(get_db)):
    return PracticeTestService(db).create_test(test_in)


@router.patch("/tests/{test_id}", response_model=PracticeTestResponse)
def update_test(
    test_id: int, test_in: PracticeTestUpdate, db: Session = Depends(get_db)
):
    return PracticeTestService(db).update_test(test_id, test_in)


@router.post(
    "/tests/{test_id}/toggle",
    response_model=PracticeTestResponse,
    description="Block or unblock a test",
)
def toggle_test(test_id: int, db: Session = Depends(get_db)):
    """
    Blocked tests stay in the catalog but can't be started.
    """
    return PracticeTestService(db).toggle_test(test_id)


@router.post(
    "/tests/{test_id}/access",
    response_model=PracticeTestResponse,
    description="Set open access or a maximum number of distinct students",
)
def update_access(
    test_id: int, access_in: AccessUpdate, db: Session = Depends(get_db)
):
    return PracticeTestService(db).update_access(test_id, access_in)


# ==================== Questions ====================


@router.get("/tests/{test_id}/questions", response_model=QuestionListResponse)
def list_questions(test_id: int, db: Session = Depends(get_db)):
    questions = QuestionService(db).list_for_test(test_id)
    return {"questions": questions, "total": len(questions)}


@router.post("/questions", response_model=QuestionResponse, status_code=201)
def create_question(question_in: QuestionCreate, db: Session = Depends(get_db)):
    return QuestionService(db).create_question(question_in)


@router.patch("/questions/{question_id}", response_model=QuestionResponse)
def update_question(
    question_id: int, question_in: QuestionUpdate, db: Session = Depends(get_db)
):
    """
    Partial update. Changing the number of choices resets the vote counters.
    """
    return QuestionService(db).update_question(question_id, question_in)


@router.delete("/questions/{question_id}", status_code=204)
def delete_question(question_id: int, db: Session = Depends(get_db)):
    QuestionService(db).delete_question(question_id)
    return None


@router.post(
    "/tests/{test_id}/questions/import",
    response_model=QuestionImportResponse,
    description="Bulk import questions from an .xlsx sheet",
)
async def import_questions(
    test_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
):
    """
    Header row: Question, A, B, C, D ..., Correct Answer, optional Category and
    Explanation. Valid rows are imported; invalid ones come back as row errors.
    """
    imported, errors = await QuestionImportService(db).import_upload(test_id, file)
    return {"test_id": test_id, "imported": imported, "errors": errors}


# ==================== Users ====================


@router.get("/users", response_model=UserListResponse)
def list_users(
    page: int = Query(1, ge=1, description="Page number"),
    size: int = Query(
        settings.default_page_size,
        ge=1,
        le=settings.max_page_size,
        description="Items per page",
    ),
    search: Optional[str] = Query(None, description="Search by name or email"),
    db: Session = Depends(get_db),
):
    users, pagination = UserService(db).list_users(page=page, size=size, search=search)
    return {"users": users, **pagination}


@router.post("/users/{user_id}/toggle", response_model=UserResponse)
def toggle_user(user_id: int, db: Session = Depends(get_db)):
    return UserService(db).toggle_user(user_id)


# ==================== Live Monitoring ====================


@router.get("/live-progress", response_model=LiveProgressResponse)
def live_progress(
    window: int = Query(
        settings.live_progress_window_minutes,
        ge=1,
        description="Only rows touched within this many minutes",
    ),
    db: Session = Depends(get_db),
):
    rows = ProgressTracker(db).live(window)
    items = [
        LiveProgressItem(
            user_id=row.user_id,
            user_name=row.user.name if row.user else None,
            user_email=row.user.email if row.user else None,
            test_id=row.test_id,
            test_title=row.test.title if row.test else None,
            index=row.index,
            total=row.total,
            percent=row.percent,
            status=row.status,
            updated_at=row.updated_at,
        )
        for row in rows
    ]
    return {"window_minutes": window, "items": items}


@router.get("/live-users", response_model=LiveUsersResponse)
def live_users(db: Session = Depends(get_db)):
    users = PresenceService(db).online()
    return {"count": len(users), "users": users}


@router.post("/progress/sweep", response_model=SweepResponse)
def sweep_progress(
    older_than: int = Query(
        settings.progress_stale_minutes,
        ge=1,
        description="Mark active rows idle for this many minutes as exited",
    ),
    db: Session = Depends(get_db),
):
    exited = ProgressTracker(db).sweep_stale(older_than)
    return {"exited": exited, "older_than_minutes": older_than}
