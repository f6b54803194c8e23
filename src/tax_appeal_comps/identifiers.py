"""Cook County Property Index Number (PIN) helpers.

PINs are 14 digits: volume, township, range/section, block and parcel, usually
written as ``XX-XX-XXX-XXX-XXXX``.
"""

from __future__ import annotations

import re

from .errors import InvalidIdentifier


PIN_LENGTH = 14

_NON_DIGITS = re.compile(r"\D+")


def normalize(raw: object) -> str:
    if raw is None:
        return ""
    return _NON_DIGITS.sub("", str(raw))


def is_valid(raw: object) -> bool:
    return len(normalize(raw)) == PIN_LENGTH


def display(raw: str) -> str:
    digits = normalize(raw)
    if len(digits) != PIN_LENGTH:
        return raw
    return f"{digits[0:2]}-{digits[2:4]}-{digits[4:7]}-{digits[7:10]}-{digits[10:14]}"


def require_valid(raw: object) -> str:
    digits = normalize(raw)
    if len(digits) != PIN_LENGTH:
        raise InvalidIdentifier(raw)
    return digits
