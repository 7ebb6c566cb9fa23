# app/schemas/user.py

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class UserBase(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    email: EmailStr
    country: str = Field(default="", max_length=100)
    state: str = Field(default="", max_length=100)
    exam_date: Optional[date] = None

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, v):
        return v.strip().lower() if isinstance(v, str) else v


class UserCreate(UserBase):
    pass


class LoginRequest(UserBase):
    """Email-only login: unknown emails are registered on the fly."""


class UserResponse(BaseModel):
    id: int
    name: str
    email: str
    country: str
    state: str
    exam_date: Optional[date] = None
    is_active: bool
    is_online: bool
    last_seen: Optional[datetime] = None
    last_active: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class UserListResponse(BaseModel):
    users: List[UserResponse]
    total: int
    page: int
    size: int
    total_pages: int


class UserCountResponse(BaseModel):
    count: int
