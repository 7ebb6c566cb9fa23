# app/schemas/practice.py
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ==================== Test Schemas ====================


class PracticeTestBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    time_limit: Optional[int] = Field(None, ge=1, description="Advisory limit in minutes")
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class PracticeTestCreate(PracticeTestBase):
    is_active: bool = True


class PracticeTestUpdate(BaseModel):
    title: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None
    category: Optional[str] = Field(None, max_length=100)
    time_limit: Optional[int] = Field(None, ge=1)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None


class AccessUpdate(BaseModel):
    access_type: Literal["infinite", "limited"]
    max_users: Optional[int] = None


class PracticeTestResponse(PracticeTestBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    is_active: bool
    is_open_access: bool
    max_users: int
    created_at: datetime
    updated_at: Optional[datetime] = None


class PracticeTestSummary(PracticeTestResponse):
    question_count: int = 0


# ==================== Question Schemas ====================


class QuestionBase(BaseModel):
    prompt_text: str = Field(..., min_length=1)
    choices: List[str] = Field(..., min_length=2)
    correct_answer: str = Field(..., min_length=1)
    explanation: Optional[str] = None
    option_explanations: List[Optional[str]] = Field(default_factory=list)
    category: Optional[str] = Field(None, max_length=100)
    image_urls: List[str] = Field(default_factory=list)
    image_labels: List[str] = Field(default_factory=list)


class QuestionCreate(QuestionBase):
    test_id: int


class QuestionUpdate(BaseModel):
    test_id: Optional[int] = None
    prompt_text: Optional[str] = Field(None, min_length=1)
    choices: Optional[List[str]] = Field(None, min_length=2)
    correct_answer: Optional[str] = Field(None, min_length=1)
    explanation: Optional[str] = None
    option_explanations: Optional[List[Optional[str]]] = None
    category: Optional[str] = Field(None, max_length=100)
    choice_vote_counts: Optional[List[int]] = None
    image_urls: Optional[List[str]] = None
    image_labels: Optional[List[str]] = None

    @model_validator(mode="after")
    def check_vote_counts(self):
        if self.choice_vote_counts is not None and any(
            count < 0 for count in self.choice_vote_counts
        ):
            raise ValueError("choice_vote_counts cannot be negative")
        return self


class QuestionResponse(QuestionBase):
    model_config = ConfigDict(from_attributes=True)

    id: int
    test_id: int
    choice_vote_counts: List[int]
    assigned_at: Optional[datetime] = None
    created_at: datetime


class QuestionListResponse(BaseModel):
    questions: List[QuestionResponse]
    total: int


# ==================== Import Schemas ====================


class QuestionDraft(BaseModel):
    """One validated spreadsheet row, ready to become a Question"""

    row: int
    prompt_text: str
    choices: List[str]
    correct_answer: str
    category: str
    explanation: Optional[str] = None


class ImportRowError(BaseModel):
    row: int
    message: str


class QuestionImportResponse(BaseModel):
    test_id: int
    imported: int
    errors: List[ImportRowError]
