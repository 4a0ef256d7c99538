"""
Identifier normalization and validation.

Plates follow the Brazilian registry formats (legacy `ABC1234` and Mercosul
`ABC1D23`); national ids are CPF numbers with two check digits. Both are
normalized before being used as cache and dedup keys, so `abc-1234` and
`ABC1234` never produce two lookups.
"""

from __future__ import annotations

import re
from typing import Literal, Optional

PlateFormat = Literal["legacy", "mercosul", "invalid"]

_NON_ALNUM = re.compile(r"[^A-Za-z0-9]")
_NON_DIGIT = re.compile(r"\D")
_LEGACY_PLATE = re.compile(r"^[A-Z]{3}[0-9]{4}$")
_MERCOSUL_PLATE = re.compile(r"^[A-Z]{3}[0-9][A-Z][0-9]{2}$")


def normalize_plate(plate: str) -> str:
    return _NON_ALNUM.sub("", plate or "").upper()


def plate_format(plate: str) -> PlateFormat:
    """Classify a plate after normalization."""
    cleaned = normalize_plate(plate)
    if _LEGACY_PLATE.match(cleaned):
        return "legacy"
    if _MERCOSUL_PLATE.match(cleaned):
        return "mercosul"
    return "invalid"


def is_valid_plate(plate: str) -> bool:
    return plate_format(plate) != "invalid"


def normalize_national_id(national_id: str) -> str:
    return _NON_DIGIT.sub("", national_id or "")


def _check_digit(digits: str) -> int:
    weight = len(digits) + 1
    total = sum(int(d) * (weight - i) for i, d in enumerate(digits))
    digit = 11 - (total % 11)
    return 0 if digit > 9 else digit


def is_valid_national_id(national_id: str) -> bool:
    """
    Validate a CPF: eleven digits, not all equal, both check digits matching.
    """
    cleaned = normalize_national_id(national_id)
    if len(cleaned) != 11 or len(set(cleaned)) == 1:
        return False
    first = _check_digit(cleaned[:9])
    second = _check_digit(cleaned[:10])
    return cleaned[9:] == f"{first}{second}"


def resolve_national_id(national_id: Optional[str]) -> Optional[str]:
    """Return the normalized national id, or None when it cannot be looked up."""
    if not national_id:
        return None
    cleaned = normalize_national_id(national_id)
    return cleaned if is_valid_national_id(cleaned) else None


def format_national_id(national_id: str) -> str:
    cleaned = normalize_national_id(national_id)
    if len(cleaned) != 11:
        return national_id
    return f"{cleaned[:3]}.{cleaned[3:6]}.{cleaned[6:9]}-{cleaned[9:]}"


__all__ = [
    "PlateFormat",
    "normalize_plate",
    "plate_format",
    "is_valid_plate",
    "normalize_national_id",
    "is_valid_national_id",
    "resolve_national_id",
    "format_national_id",
]
