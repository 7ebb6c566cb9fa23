# app/routers/auth.py
import logging

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import get_db
from app.core.limiter import limiter
from app.core.session import AttemptSession, get_attempt_session
from app.schemas.user import LoginRequest, UserCountResponse, UserCreate, UserResponse
from app.services.presence import PresenceService
from app.services.user import UserService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Accounts"])


@router.post("/login", response_model=UserResponse)
@limiter.limit(settings.login_rate_limit)
def login(
    request: Request,
    login_in: LoginRequest,
    db: Session = Depends(get_db),
    session: AttemptSession = Depends(get_attempt_session),
):
    """
    Email-only login. Creates the account on first use and binds it to this
    browser session.
    """
    user = UserService(db).login(login_in)

    session.login(user.id, user.name)
    session.save()

    presence = PresenceService(db)
    presence.connect(user.id)
    db.refresh(user)
    return user


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
def logout(
    db: Session = Depends(get_db),
    session: AttemptSession = Depends(get_attempt_session),
):
    """
    Forget this browser session, including any attempt in progress.
    """
    if session.user_id:
        PresenceService(db).disconnect(session.user_id)
        logger.info(f"User {session.user_id} logged out")
    session.destroy()
    return None


@router.post("/api/users", response_model=UserResponse, status_code=201)
def create_user(
    user_in: UserCreate,
    db: Session = Depends(get_db),
):
    return UserService(db).create_user(user_in)


@router.get("/api/user-count", response_model=UserCountResponse)
def user_count(db: Session = Depends(get_db)):
    return {"count": UserService(db).count_users()}
