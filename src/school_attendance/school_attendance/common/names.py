"""Student name, gender and spreadsheet header normalization."""
from __future__ import annotations

from typing import Any, Optional, Tuple

from ..core.enums import Gender

_MALE = {"male", "erkak", "m", "1"}
_FEMALE = {"female", "ayol", "f", "2"}


def normalize_name_part(value: Any) -> str:
    if value is None:
        return ""
    return " ".join(str(value).split())


def build_full_name(last_name: Any, first_name: Any) -> str:
    parts = [normalize_name_part(last_name), normalize_name_part(first_name)]
    return " ".join(p for p in parts if p)


def split_full_name(full_name: Any) -> Tuple[str, str]:
    """Return ``(last_name, first_name)``; the first token is the last name."""
    tokens = normalize_name_part(full_name).split(" ")
    tokens = [t for t in tokens if t]
    if not tokens:
        return "", ""
    if len(tokens) == 1:
        return "", tokens[0]
    return tokens[0], " ".join(tokens[1:])


def normalize_gender(value: Any) -> Optional[Gender]:
    if value is None:
        return None
    key = str(value).strip().lower()
    if key in _MALE:
        return Gender.MALE
    if key in _FEMALE:
        return Gender.FEMALE
    return None


def normalize_header(value: Any) -> str:
    if value is None:
        return ""
    text = str(value).strip()
    if text.startswith("*"):
        text = text[1:].strip()
    return text.lower()
