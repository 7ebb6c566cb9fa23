# app/utils/answers.py
"""
Answer token helpers.

Students' selections arrive as letters ("b"), zero-based indexes ("1") or one-based
indexes ("2"), depending on which page or client sent them. Everything is reduced to a
single uppercase letter before it is stored or compared.
"""

from typing import Any, List, Optional, Sequence


def letter_for(index: int) -> str:
    return chr(ord("A") + index)


def index_for(letter: str) -> int:
    return ord(letter.upper()) - ord("A")


def normalize_answer(raw_value: Any, num_choices: int) -> Optional[str]:
    """
    Convert a raw answer token into a canonical uppercase letter.

    - A single alphabetic character is uppercased and returned as-is, even when it
      falls outside the available choices.
    - An integer is read as a zero-based index when ``0 <= n < num_choices``, otherwise
      as a one-based index when ``1 <= n <= num_choices``.
    - Anything else yields ``None``.
    """
    if raw_value is None or isinstance(raw_value, bool):
        return None

    if isinstance(raw_value, int):
        number = raw_value
    else:
        token = str(raw_value).strip()
        if len(token) == 1 and token.isalpha():
            return token.upper()
        try:
            number = int(token)
        except ValueError:
            return None

    if 0 <= number < num_choices:
        return letter_for(number)
    if 1 <= number <= num_choices:
        return letter_for(number - 1)
    return None


def resolve_correct_letter(correct_answer: Any, choices: Sequence[str]) -> Optional[str]:
    """
    Resolve a stored correct answer to a letter.

    Letters and indexes go through ``normalize_answer``; free text is matched
    case-insensitively against the choice texts.
    """
    letter = normalize_answer(correct_answer, len(choices))
    if letter is not None:
        return letter

    if correct_answer is None:
        return None
    wanted = str(correct_answer).strip().casefold()
    if not wanted:
        return None
    for i, choice in enumerate(choices):
        if choice is not None and str(choice).strip().casefold() == wanted:
            return letter_for(i)
    return None


def choice_text(choices: Sequence[str], letter: Optional[str]) -> Optional[str]:
    if not letter:
        return None
    position = index_for(letter)
    if 0 <= position < len(choices):
        return choices[position]
    return None


def default_image_labels(image_urls: Sequence[str], labels: Sequence[str]) -> List[str]:
    """Pair every image url with a label, falling back to "Image A", "Image B", ..."""
    return [
        labels[i] if i < len(labels) and labels[i] else f"Image {letter_for(i)}"
        for i in range(len(image_urls))
    ]
