"""
Spreadsheet question import: row validation and the upload endpoint
"""

import io

import pytest
from fastapi import HTTPException
from openpyxl import Workbook

from app.models.question import Question
from app.services.question_import import parse_question_rows

ADMIN_HEADERS = {"Authorization": "Bearer test-admin-token"}
XLSX = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

HEADER = ["Question", "A", "B", "C", "D", "Correct Answer", "Category", "Explanation"]


def _workbook_bytes(rows):
    workbook = Workbook()
    sheet = workbook.active
    for row in rows:
        sheet.append(row)
    buffer = io.BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def test_valid_rows_become_drafts():
    rows = [
        [" question ", "a", "b", "c", "d", "CORRECT ANSWER", "Category", "Explanation"],
        ["Unit of absorbed dose?", "Gray", "Sievert", "Roentgen", "Curie", "A", None, None],
        ["Grid ratio is?", "h/D", "D/h", None, None, "d/h", "Grids", "Height over gap"],
        ["Numbered answer", "One", "Two", "Three", None, 3, "Misc", None],
    ]

    drafts, errors = parse_question_rows(rows, default_category="General")

    assert errors == []
    assert [d.correct_answer for d in drafts] == ["A", "B", "C"]
    assert drafts[0].category == "General"
    assert drafts[1].choices == ["h/D", "D/h"]
    assert drafts[1].explanation == "Height over gap"
    assert [d.row for d in drafts] == [2, 3, 4]


def test_bad_rows_are_reported_and_skipped():
    rows = [
        HEADER,
        [None, "A1", "B1", None, None, "A"],
        [],
        ["Only one choice", "Lonely", None, "C", None, "A"],
        ["Unknown correct", "X", "Y", None, None, "Z"],
        ["Out of range index", "X", "Y", None, None, "7"],
        ["Fine", "X", "Y", None, None, "b"],
    ]

    drafts, errors = parse_question_rows(rows)

    assert [d.prompt_text for d in drafts] == ["Fine"]
    assert [(e.row, e.message) for e in errors] == [
        (2, "Question text is empty"),
        (4, "At least two choices are required"),
        (5, "Correct answer 'Z' does not match any choice"),
        (6, "Correct answer '7' does not match any choice"),
    ]


def test_missing_headers_fail_the_whole_sheet():
    with pytest.raises(HTTPException) as exc_info:
        parse_question_rows([["Question", "A", "Answer"], ["q", "x", "A"]])

    assert exc_info.value.status_code == 400
    assert "correct answer" in exc_info.value.detail
    assert "b" in exc_info.value.detail


def test_upload_imports_valid_rows(client, db, make_test):
    test, _ = make_test()
    content = _workbook_bytes(
        [
            HEADER,
            ["Unit of absorbed dose?", "Gray", "Sievert", "Roentgen", "Curie", "A"],
            ["Broken", "Only"],
        ]
    )

    response = client.post(
        f"/admin/tests/{test.id}/questions/import",
        files={"file": ("questions.xlsx", content, XLSX)},
        headers=ADMIN_HEADERS,
    )

    assert response.status_code == 200
    body = response.json()
    assert body["imported"] == 1
    assert body["errors"] == [{"row": 3, "message": "At least two choices are required"}]

    question = db.query(Question).filter(Question.test_id == test.id).one()
    assert question.choice_vote_counts == [0, 0, 0, 0]
    assert question.category == "General"
    assert question.assigned_at is not None


def test_upload_rejects_other_formats(client, make_test):
    test, _ = make_test()

    response = client.post(
        f"/admin/tests/{test.id}/questions/import",
        files={"file": ("questions.csv", b"Question,A,B", "text/csv")},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Only .xlsx files are supported"

    response = client.post(
        f"/admin/tests/{test.id}/questions/import",
        files={"file": ("questions.xlsx", b"not a zip", XLSX)},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "File is not a valid .xlsx workbook"


def test_upload_to_unknown_test(client):
    content = _workbook_bytes([HEADER, ["Q", "X", "Y", None, None, "A"]])

    response = client.post(
        "/admin/tests/999/questions/import",
        files={"file": ("questions.xlsx", content, XLSX)},
        headers=ADMIN_HEADERS,
    )
    assert response.status_code == 404
