# app/schemas/exam.py
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

# ==================== Question Page Schemas ====================


class ChoiceView(BaseModel):
    letter: str
    text: str
    # Only filled in feedback mode
    vote_percent: Optional[int] = None
    explanation: Optional[str] = None


class ImageView(BaseModel):
    url: str
    label: str


class QuestionPage(BaseModel):
    """A question as shown to a student - correct answer only in feedback mode"""

    test_id: int
    test_title: str
    question_id: int
    index: int
    total_questions: int
    is_last_question: bool
    next_index: Optional[int] = None
    progress_percent: int
    prompt_text: str
    choices: List[ChoiceView]
    images: List[ImageView]
    saved_answer: Optional[str] = None
    marked: bool = False
    elapsed_test_seconds: int = 0
    time_limit: Optional[int] = None

    feedback: bool = False
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None


# ==================== Answer Submission Schemas ====================


class QuestionSubmission(BaseModel):
    """Form-style submission of the current question's answer"""

    model_config = ConfigDict(populate_by_name=True)

    test_id: int = Field(..., alias="testId")
    question_id: int = Field(..., alias="questionId")
    index: int = Field(..., ge=0)
    answer: Optional[Union[str, int]] = None


class PathQuestionSubmission(BaseModel):
    index: int = Field(..., ge=0)
    answer: Optional[Union[str, int]] = None


class ProgressAnswerRequest(BaseModel):
    """Background autosave sent without leaving the page"""

    model_config = ConfigDict(populate_by_name=True)

    test_id: int = Field(..., alias="testId")
    question_id: int = Field(..., alias="questionId")
    chosen: Optional[Union[str, int]] = None
    elapsed_sec: Optional[int] = Field(None, alias="elapsedSec")
    marked: Optional[bool] = None


class ProgressAnswerResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    ok: bool
    saved: Optional[str] = None
    session_counts: Dict[str, int] = Field(..., serialization_alias="sessionCounts")
