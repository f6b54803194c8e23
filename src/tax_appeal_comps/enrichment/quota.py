from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Optional, Union


DEFAULT_MONTHLY_CEILING = 25


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def month_key(moment: datetime) -> str:
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m")


class MonthlyQuotaCounter:
    """Calls made to the Secondary Provider in the current UTC calendar month.

    Process-local: each process keeps its own count, so the effective ceiling
    across a deployment is ``ceiling * processes``. The count resets the first
    time a different month is observed.
    """

    def __init__(
        self,
        ceiling: int = DEFAULT_MONTHLY_CEILING,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._ceiling = max(0, int(ceiling))
        self._clock = clock
        self._lock = threading.Lock()
        self._month: Optional[str] = None
        self._used = 0

    def _roll(self) -> None:
        current = month_key(self._clock())
        if current != self._month:
            self._month = current
            self._used = 0

    @property
    def ceiling(self) -> int:
        return self._ceiling

    @property
    def used(self) -> int:
        with self._lock:
            self._roll()
            return self._used

    def remaining(self) -> int:
        with self._lock:
            self._roll()
            return max(0, self._ceiling - self._used)

    def exhausted(self) -> bool:
        return self.remaining() == 0

    def try_acquire(self) -> bool:
        """Reserve one call; False (and no increment) once the ceiling is hit."""

        with self._lock:
            self._roll()
            if self._used >= self._ceiling:
                return False
            self._used += 1
            return True

    def snapshot(self) -> Dict[str, Union[int, str, None]]:
        with self._lock:
            self._roll()
            return {
                "month": self._month,
                "used": self._used,
                "ceiling": self._ceiling,
                "remaining": max(0, self._ceiling - self._used),
            }
