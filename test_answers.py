"""
Answer token normalization and correct-answer resolution
"""

import pytest

from app.utils.answers import (
    choice_text,
    default_image_labels,
    normalize_answer,
    resolve_correct_letter,
)


@pytest.mark.parametrize("n, letter", [(0, "A"), (1, "B"), (2, "C"), (3, "D")])
def test_integers_in_range_are_zero_based(n, letter):
    assert normalize_answer(n, 4) == letter
    assert normalize_answer(str(n), 4) == letter


def test_one_based_fallback_only_past_zero_based_range():
    # 4 can't be a zero-based index of 4 choices
    assert normalize_answer(4, 4) == "D"
    assert normalize_answer("4", 4) == "D"
    assert normalize_answer(5, 4) is None
    assert normalize_answer(-1, 4) is None


def test_letters_are_uppercased_even_out_of_range():
    assert normalize_answer("b", 4) == "B"
    assert normalize_answer(" c ", 4) == "C"
    assert normalize_answer("z", 4) == "Z"


@pytest.mark.parametrize("raw", [None, "", "AB", "1.5", "?", True, [1], "choice"])
def test_unmappable_tokens(raw):
    assert normalize_answer(raw, 4) is None


def test_resolve_correct_letter_by_text():
    choices = ["Collimation", "Filtration", "Shielding"]
    assert resolve_correct_letter("b", choices) == "B"
    assert resolve_correct_letter("2", choices) == "C"
    assert resolve_correct_letter("  shielding ", choices) == "C"
    assert resolve_correct_letter("Lead apron", choices) is None
    assert resolve_correct_letter(None, choices) is None


def test_choice_text():
    choices = ["Collimation", "Filtration"]
    assert choice_text(choices, "B") == "Filtration"
    assert choice_text(choices, "D") is None
    assert choice_text(choices, None) is None


def test_default_image_labels():
    urls = ["/a.png", "/b.png", "/c.png"]
    assert default_image_labels(urls, ["Lateral"]) == ["Lateral", "Image B", "Image C"]
    assert default_image_labels([], ["ignored"]) == []
