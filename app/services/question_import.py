# app/services/question_import.py
"""
Bulk question import from an .xlsx sheet.

Expected header row (case-insensitive): Question, A, B, C, D [, E, ...],
Correct Answer, and optionally Category and Explanation. Every data row is validated
into a QuestionDraft or rejected with a row-level error; one bad row never sinks the
rest of the sheet.
"""

import io
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fastapi import HTTPException, UploadFile, status
from openpyxl import load_workbook
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.decorator import db_exception
from app.models.question import Question
from app.schemas.practice import ImportRowError, QuestionDraft
from app.services.practice import PracticeTestService
from app.utils.answers import index_for, resolve_correct_letter
from app.utils.clock import utcnow

logger = logging.getLogger(__name__)

REQUIRED_HEADERS = ("question", "correct answer", "a", "b")


def _cell_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _header_map(header_row: Sequence[Any]) -> Dict[str, int]:
    columns = {}
    for position, cell in enumerate(header_row):
        name = _cell_text(cell).casefold()
        if name and name not in columns:
            columns[name] = position
    return columns


def _choice_columns(columns: Dict[str, int]) -> List[int]:
    letters = sorted(
        name for name in columns if len(name) == 1 and "a" <= name <= "z"
    )
    return [columns[letter] for letter in letters]


def parse_question_rows(
    rows: Sequence[Sequence[Any]],
    default_category: Optional[str] = None,
) -> Tuple[List[QuestionDraft], List[ImportRowError]]:
    """
    Validate sheet rows (first row is the header) into drafts and row errors.
    Row numbers are 1-based, as shown in a spreadsheet.
    """
    default_category = default_category or settings.import_default_category
    if not rows:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="The sheet is empty"
        )

    columns = _header_map(rows[0])
    missing = [name for name in REQUIRED_HEADERS if name not in columns]
    if missing:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Missing required columns: {', '.join(missing)}",
        )
    choice_columns = _choice_columns(columns)

    def cell(row: Sequence[Any], name: str) -> str:
        position = columns.get(name)
        if position is None or position >= len(row):
            return ""
        return _cell_text(row[position])

    drafts: List[QuestionDraft] = []
    errors: List[ImportRowError] = []

    for offset, row in enumerate(rows[1:], start=2):
        if not row or all(_cell_text(value) == "" for value in row):
            continue

        prompt = cell(row, "question")
        if not prompt:
            errors.append(ImportRowError(row=offset, message="Question text is empty"))
            continue

        choices = []
        for position in choice_columns:
            text = _cell_text(row[position]) if position < len(row) else ""
            if not text:
                break
            choices.append(text)
        if len(choices) < 2:
            errors.append(
                ImportRowError(row=offset, message="At least two choices are required")
            )
            continue

        raw_correct = cell(row, "correct answer")
        correct = resolve_correct_letter(raw_correct, choices)
        if correct is None or not 0 <= index_for(correct) < len(choices):
            errors.append(
                ImportRowError(
                    row=offset,
                    message=f"Correct answer {raw_correct!r} does not match any choice",
                )
            )
            continue

        drafts.append(
            QuestionDraft(
                row=offset,
                prompt_text=prompt,
                choices=choices,
                correct_answer=correct,
                category=cell(row, "category") or default_category,
                explanation=cell(row, "explanation") or None,
            )
        )

    return drafts, errors


def read_workbook_rows(content: bytes) -> List[List[Any]]:
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except Exception as e:
        logger.warning(f"Unreadable workbook upload: {e}")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="File is not a valid .xlsx workbook",
        )

    try:
        sheet = workbook.active
        if sheet is None:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="No active sheet"
            )
        return [list(row) if row else [] for row in sheet.iter_rows(values_only=True)]
    finally:
        workbook.close()


class QuestionImportService:
    def __init__(self, db: Session):
        self.db = db

    async def import_upload(self, test_id: int, upload: UploadFile):
        filename = (upload.filename or "").lower()
        if not filename.endswith(".xlsx"):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Only .xlsx files are supported",
            )

        content = await upload.read()
        if len(content) > settings.max_upload_size_mb * 1024 * 1024:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"File exceeds {settings.max_upload_size_mb} MB",
            )

        return self.import_rows(test_id, read_workbook_rows(content))

    def import_rows(
        self, test_id: int, rows: Sequence[Sequence[Any]]
    ) -> Tuple[int, List[ImportRowError]]:
        PracticeTestService(self.db).get_test(test_id)
        drafts, errors = parse_question_rows(rows)
        imported = self._insert(test_id, drafts)

        logger.info(
            f"Imported {imported} questions into test {test_id} "
            f"({len(errors)} rows rejected)"
        )
        return imported, errors

    @db_exception
    def _insert(self, test_id: int, drafts: List[QuestionDraft]) -> int:
        now = utcnow()
        questions = [
            Question(
                test_id=test_id,
                prompt_text=draft.prompt_text,
                choices=draft.choices,
                correct_answer=draft.correct_answer,
                category=draft.category,
                explanation=draft.explanation,
                option_explanations=[],
                image_urls=[],
                image_labels=[],
                choice_vote_counts=[0] * len(draft.choices),
                assigned_at=now,
            )
            for draft in drafts
        ]
        self.db.add_all(questions)
        self.db.commit()
        return len(questions)
