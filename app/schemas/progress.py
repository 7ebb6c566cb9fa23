# app/schemas/progress.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class LiveProgressItem(BaseModel):
    user_id: int
    user_name: Optional[str] = None
    user_email: Optional[str] = None
    test_id: int
    test_title: Optional[str] = None
    index: int
    total: int
    percent: int
    status: str
    updated_at: datetime


class LiveProgressResponse(BaseModel):
    window_minutes: int
    items: List[LiveProgressItem]


class LiveUser(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    email: str
    last_seen: Optional[datetime] = None
    last_active: Optional[datetime] = None


class LiveUsersResponse(BaseModel):
    count: int
    users: List[LiveUser]


class SweepResponse(BaseModel):
    exited: int
    older_than_minutes: int
