# app/services/user.py
import logging
import math
from typing import List, Optional, Tuple

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from app.core.decorator import db_exception
from app.models.result import Result
from app.models.user import User
from app.schemas.user import LoginRequest, UserCreate

logger = logging.getLogger(__name__)


class UserService:
    def __init__(self, db: Session):
        self.db = db

    def get_user(self, user_id: int) -> Optional[User]:
        return self.db.query(User).filter(User.id == user_id).first()

    def get_by_email(self, email: str) -> Optional[User]:
        return self.db.query(User).filter(User.email == email).first()

    @db_exception
    def login(self, login_in: LoginRequest) -> User:
        """
        Email-only login. Unknown emails get an account on the spot;
        known ones are returned unchanged.
        """
        user = self.get_by_email(login_in.email)
        if user is None:
            user = User(**login_in.model_dump())
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)
            logger.info(f"🆕 Created new user: {user.name} ({user.email})")

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user"
            )

        logger.info(f"🔔 Login: {user.name} ({user.email})")
        return user

    @db_exception
    def create_user(self, user_in: UserCreate) -> User:
        if self.get_by_email(user_in.email):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="Email already registered",
            )

        user = User(**user_in.model_dump())
        self.db.add(user)
        self.db.commit()
        self.db.refresh(user)
        logger.info(f"🔔 New user {user.name} ({user.email}) signed up")
        return user

    def count_users(self) -> int:
        return self.db.query(User).count()

    def list_users(
        self, page: int = 1, size: int = 20, search: Optional[str] = None
    ) -> Tuple[List[User], dict]:
        query = self.db.query(User)

        if search:
            query = query.filter(
                or_(User.name.ilike(f"%{search}%"), User.email.ilike(f"%{search}%"))
            )

        total = query.count()
        offset = (page - 1) * size
        users = (
            query.order_by(User.created_at.desc(), User.id.desc())
            .offset(offset)
            .limit(size)
            .all()
        )

        pagination = {
            "total": total,
            "page": page,
            "size": size,
            "total_pages": math.ceil(total / size) if size > 0 else 0,
        }
        return users, pagination

    @db_exception
    def toggle_user(self, user_id: int) -> User:
        user = self.get_user(user_id)
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="User not found"
            )
        user.is_active = not user.is_active
        self.db.commit()
        self.db.refresh(user)
        return user


class ResultService:
    def __init__(self, db: Session):
        self.db = db

    def get_result(self, result_id: int) -> Result:
        result = self.db.query(Result).filter(Result.id == result_id).first()
        if not result:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Result not found"
            )
        return result

    def list_for_user(self, user_id: int) -> List[Result]:
        return (
            self.db.query(Result)
            .options(joinedload(Result.test))
            .filter(Result.user_id == user_id)
            .order_by(Result.created_at.desc(), Result.id.desc())
            .all()
        )
