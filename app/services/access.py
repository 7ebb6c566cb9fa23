# app/services/access.py
import logging
from typing import Optional

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from app.models.practice import PracticeTest
from app.models.user import User
from app.services.progress import ProgressTracker

logger = logging.getLogger(__name__)


class AccessLimitService:
    """Seat limits for tests that are not open access."""

    def __init__(self, db: Session):
        self.db = db

    def ensure_can_start(self, test: PracticeTest, user: Optional[User]) -> None:
        if not test.is_limited:
            return

        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Login required for this test",
            )

        tracker = ProgressTracker(self.db)
        if tracker.get(user.id, test.id) is not None:
            # Already holds a seat
            return

        taken = tracker.count_users(test.id)
        if taken >= test.max_users:
            logger.info(
                f"Test {test.id} is full ({taken}/{test.max_users}), refusing user {user.id}"
            )
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Test is full",
            )
