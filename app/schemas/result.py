# app/schemas/result.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class DetailedResult(BaseModel):
    question_id: int
    selected_answer: Optional[str] = None
    selected_text: Optional[str] = None
    correct_answer: Optional[str] = None
    correct_text: Optional[str] = None
    is_correct: bool
    time_spent: int = 0


class ResultResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    test_id: int
    user_id: Optional[int] = None
    score: int
    total_questions: int
    correct_answers: int
    time_taken: int
    detailed_results: List[DetailedResult]
    created_at: datetime


class ResultSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    test_id: int
    test_title: Optional[str] = None
    score: int
    total_questions: int
    correct_answers: int
    time_taken: int
    created_at: datetime


class ResultListResponse(BaseModel):
    results: List[ResultSummary]
    total: int
