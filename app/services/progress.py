# app/services/progress.py
import logging
from datetime import timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, joinedload

from app.models.progress import TestProgress
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)


class ProgressTracker:
    """
    Advisory "where is everyone" rows for the live dashboard.

    Grading never reads these. Write failures are logged and swallowed so that a
    broken progress row can't block a student from seeing the next question.
    """

    def __init__(self, db: Session):
        self.db = db

    def touch(self, user_id: int, test_id: int, index: int, total: int) -> None:
        """Upsert the (user, test) row as active at ``index`` of ``total``."""
        try:
            row = (
                self.db.query(TestProgress)
                .filter(
                    TestProgress.user_id == user_id,
                    TestProgress.test_id == test_id,
                )
                .first()
            )
            if row is None:
                row = TestProgress(user_id=user_id, test_id=test_id)
                self.db.add(row)

            row.index = index
            row.total = total
            row.status = "active"
            row.updated_at = utcnow()
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to update progress for user {user_id} on test {test_id}: {e}"
            )

    def mark(self, user_id: int, test_id: int, status: str) -> None:
        try:
            updated = (
                self.db.query(TestProgress)
                .filter(
                    TestProgress.user_id == user_id,
                    TestProgress.test_id == test_id,
                )
                .update(
                    {TestProgress.status: status, TestProgress.updated_at: utcnow()},
                    synchronize_session=False,
                )
            )
            self.db.commit()
            if updated:
                logger.debug(f"Progress of user {user_id} on test {test_id} -> {status}")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(
                f"Failed to mark progress {status} for user {user_id} on test {test_id}: {e}"
            )

    def get(self, user_id: int, test_id: int) -> Optional[TestProgress]:
        return (
            self.db.query(TestProgress)
            .filter(TestProgress.user_id == user_id, TestProgress.test_id == test_id)
            .first()
        )

    def count_users(self, test_id: int) -> int:
        """Distinct users that have ever opened this test."""
        return (
            self.db.query(func.count(func.distinct(TestProgress.user_id)))
            .filter(TestProgress.test_id == test_id)
            .scalar()
            or 0
        )

    def live(self, window_minutes: int) -> List[TestProgress]:
        cutoff = utcnow() - timedelta(minutes=window_minutes)
        return (
            self.db.query(TestProgress)
            .options(joinedload(TestProgress.user), joinedload(TestProgress.test))
            .filter(
                TestProgress.status == "active",
                TestProgress.updated_at >= cutoff,
            )
            .order_by(TestProgress.updated_at.desc())
            .all()
        )

    def sweep_stale(self, older_than_minutes: int) -> int:
        """Mark active rows not touched for ``older_than_minutes`` as exited."""
        cutoff = utcnow() - timedelta(minutes=older_than_minutes)
        exited = (
            self.db.query(TestProgress)
            .filter(
                TestProgress.status == "active",
                TestProgress.updated_at < cutoff,
            )
            .update({TestProgress.status: "exited"}, synchronize_session=False)
        )
        self.db.commit()
        return exited
