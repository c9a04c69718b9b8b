"""Syntactic checks for billing codes and confidence scores.

These helpers only answer "could this string be a code of that kind?".  They
never consult a code table, never raise and treat anything that is not a
string as invalid.
"""

from __future__ import annotations

import math
import re
from typing import Any, Optional

# E/M: five digits with the fixed ``99`` family prefix (99213, 99309).
EM_CODE_RE = re.compile(r"^99\d{3}$")
# ICD-10-CM: letter, digit, digit/letter, optional decimal with 1-4 characters (E11.9, I10, Z00.00).
DIAGNOSIS_CODE_RE = re.compile(r"^[A-Z][0-9][0-9A-Z](\.[0-9A-Z]{1,4})?$")
# CPT/HCPCS: 4-5 alphanumerics (J3420, 99213, G0001).
PROCEDURE_CODE_RE = re.compile(r"^[A-Z0-9]{4,5}$")


def normalize_code(code: Any) -> str:
    """Return ``code`` trimmed and upper-cased; non-strings become ``""``."""

    if not isinstance(code, str):
        return ""
    return code.strip().upper()


def is_valid_em_code(code: Any) -> bool:
    if not isinstance(code, str) or not code:
        return False
    return bool(EM_CODE_RE.match(code.strip()))


def is_valid_diagnosis_code(code: Any) -> bool:
    if not isinstance(code, str) or not code:
        return False
    return bool(DIAGNOSIS_CODE_RE.match(normalize_code(code)))


def is_valid_procedure_code(code: Any) -> bool:
    if not isinstance(code, str) or not code:
        return False
    return bool(PROCEDURE_CODE_RE.match(normalize_code(code)))


def clamp_confidence(value: Any) -> Optional[float]:
    """Parse ``value`` into a confidence clamped to ``[0, 1]``.

    Numbers and numeric strings are accepted; ``None``, booleans, blank or
    non-numeric strings and NaN yield ``None``.
    """

    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        score = float(value)
    elif isinstance(value, str):
        cleaned = value.strip()
        if not cleaned:
            return None
        try:
            score = float(cleaned)
        except ValueError:
            return None
    else:
        return None
    if math.isnan(score):
        return None
    return max(0.0, min(1.0, score))


__all__ = [
    "EM_CODE_RE",
    "DIAGNOSIS_CODE_RE",
    "PROCEDURE_CODE_RE",
    "normalize_code",
    "is_valid_em_code",
    "is_valid_diagnosis_code",
    "is_valid_procedure_code",
    "clamp_confidence",
]
