"""
Application initialization module
Handles startup housekeeping before requests are served
"""

import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.practice import PracticeTest
from app.models.question import Question
from app.services.progress import ProgressTracker

logger = logging.getLogger(__name__)


def close_stale_progress(db: Session) -> None:
    """
    Attempts left open by a previous run (crash, redeploy) would otherwise show up
    on the live dashboard until the first scheduled sweep.
    """
    try:
        exited = ProgressTracker(db).sweep_stale(settings.progress_stale_minutes)
        logger.info(f"✅ Closed {exited} stale test attempts")
    except Exception as e:
        logger.error(f"❌ Failed to close stale attempts: {e}")
        db.rollback()
        raise


def log_catalog(db: Session) -> None:
    tests = db.query(PracticeTest).count()
    active = db.query(PracticeTest).filter(PracticeTest.is_active.is_(True)).count()
    questions = db.query(Question).count()
    logger.info(f"📚 Catalog: {tests} tests ({active} active), {questions} questions")


def initialize_application(db: Session) -> None:
    """
    Run all application initialization tasks.

    Args:
        db: Database session
    """
    logger.info("🚀 Starting application initialization...")

    close_stale_progress(db)
    log_catalog(db)

    logger.info("✅ Application initialization completed!")
