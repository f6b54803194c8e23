from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Generic, Optional, TypeVar


T = TypeVar("T")


class Degraded(str, Enum):
    NOT_CONFIGURED = "not_configured"
    QUOTA_EXHAUSTED = "quota_exhausted"
    QUOTA_EXCEEDED = "quota_exceeded"
    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    NO_DATA = "no_data"
    PROVIDER_ERROR = "provider_error"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """Result of an additive source: a value, or the reason there is none.

    Additive sources never raise past their component; callers branch on
    ``ok`` instead.
    """

    value: Optional[T] = None
    degraded: Optional[Degraded] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.degraded is None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(value=value)

    @classmethod
    def unavailable(cls, reason: Degraded, detail: str = "") -> "Outcome[T]":
        return cls(degraded=reason, detail=detail)
