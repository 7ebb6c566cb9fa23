# app/services/presence.py
import logging
from datetime import timedelta
from typing import List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import settings
from app.models.user import User
from app.utils.clock import as_utc, utcnow

logger = logging.getLogger(__name__)


class PresenceService:
    """Online/last-seen bookkeeping stored on the User row."""

    def __init__(self, db: Session):
        self.db = db

    def _update(self, user_id: int, values: dict, action: str) -> None:
        try:
            self.db.query(User).filter(User.id == user_id).update(
                values, synchronize_session=False
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Presence {action} failed for user {user_id}: {e}")

    def connect(self, user_id: int) -> None:
        now = utcnow()
        self._update(
            user_id,
            {User.is_online: True, User.last_seen: now, User.last_active: now},
            "connect",
        )

    def disconnect(self, user_id: int) -> None:
        self._update(
            user_id, {User.is_online: False, User.last_seen: utcnow()}, "disconnect"
        )

    def touch(self, user: User) -> None:
        """
        Refresh activity. ``last_active`` always moves; ``last_seen`` only once per
        ``presence_seen_interval_seconds`` to keep writes down.
        """
        now = utcnow()
        values = {User.last_active: now}
        last_seen = as_utc(user.last_seen)
        interval = timedelta(seconds=settings.presence_seen_interval_seconds)
        if last_seen is None or now - last_seen > interval:
            values[User.last_seen] = now
        self._update(user.id, values, "touch")

    def online(self) -> List[User]:
        return (
            self.db.query(User)
            .filter(User.is_online.is_(True))
            .order_by(User.last_seen.desc())
            .all()
        )
