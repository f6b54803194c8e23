"""Assessed value history.

Each assessment year moves through three stages: the Assessor's mailed notice,
the Assessor's certified roll, and the Board of Review. A later stage replaces
an earlier figure only for the fields it actually reports.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from ..models import AssessmentRecord, AssessmentStage
from . import socrata


# Cook County assesses residential property at 10% of market value.
MARKET_MULTIPLIER_BY_YEAR: Dict[int, float] = {
    2024: 10.0,
    2023: 10.0,
    2022: 10.0,
}
DEFAULT_MARKET_MULTIPLIER = 10.0

# Illinois Department of Revenue final multipliers for Cook County.
STATE_EQUALIZER_BY_YEAR: Dict[int, float] = {
    2024: 3.0355,
    2023: 2.9160,
    2022: 2.9160,
}
DEFAULT_STATE_EQUALIZER = 3.0355

STAGE_ORDER = (AssessmentStage.MAILED, AssessmentStage.CERTIFIED, AssessmentStage.BOARD)

_FIELDS = ("land", "bldg", "tot")


def market_multiplier(year: Optional[int]) -> float:
    if year is None:
        return DEFAULT_MARKET_MULTIPLIER
    return MARKET_MULTIPLIER_BY_YEAR.get(int(year), DEFAULT_MARKET_MULTIPLIER)


def state_equalizer(year: Optional[int]) -> float:
    if year is None:
        return DEFAULT_STATE_EQUALIZER
    return STATE_EQUALIZER_BY_YEAR.get(int(year), DEFAULT_STATE_EQUALIZER)


def market_value(total: Optional[float], year: Optional[int]) -> Optional[float]:
    if total is None or total <= 0:
        return None
    return total * market_multiplier(year)


def _stage_value(record: Mapping[str, Any], stage: AssessmentStage, field: str) -> Optional[float]:
    value = socrata.as_float(record.get(f"{stage.value}_{field}"))
    if value is None or value <= 0:
        return None
    return value


def merge_stages(record: Mapping[str, Any]) -> Dict[str, Any]:
    """Collapse mailed/certified/board columns into one set of figures.

    Returns ``{"land", "building", "total", "stage"}``; ``stage`` is the latest
    stage that reported anything, or None when no stage did.
    """

    merged: Dict[str, Optional[float]] = {f: None for f in _FIELDS}
    stage: Optional[AssessmentStage] = None
    for candidate in STAGE_ORDER:
        reported = False
        for field in _FIELDS:
            value = _stage_value(record, candidate, field)
            if value is not None:
                merged[field] = value
                reported = True
        if reported:
            stage = candidate
    return {
        "land": merged["land"],
        "building": merged["bldg"],
        "total": merged["tot"],
        "stage": stage,
    }


def parse_history(rows: Iterable[Mapping[str, Any]]) -> List[AssessmentRecord]:
    history: List[AssessmentRecord] = []
    for row in rows:
        year = socrata.as_int(row.get("year") or row.get("tax_year"))
        if year is None:
            continue
        merged = merge_stages(row)
        history.append(
            AssessmentRecord(
                year=year,
                land=merged["land"],
                building=merged["building"],
                total=merged["total"],
                market_value=market_value(merged["total"], year),
                stage=merged["stage"] or AssessmentStage.MAILED,
            )
        )
    history.sort(key=lambda r: r.year, reverse=True)
    return history


@dataclass(frozen=True)
class AssessmentChange:
    year: int
    total: Optional[float]
    change_amount: Optional[float]
    change_percent: Optional[float]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "year": self.year,
            "total": self.total,
            "change_amount": self.change_amount,
            "change_percent": self.change_percent,
        }


def assessment_changes(history: Sequence[AssessmentRecord]) -> List[AssessmentChange]:
    """Year-over-year change of the total assessed value, newest first."""

    ordered = sorted(history, key=lambda r: r.year, reverse=True)
    changes: List[AssessmentChange] = []
    for i, record in enumerate(ordered):
        prior = ordered[i + 1] if i + 1 < len(ordered) else None
        amount: Optional[float] = None
        percent: Optional[float] = None
        if (
            prior is not None
            and prior.total is not None
            and prior.total > 0
            and record.total is not None
        ):
            amount = record.total - prior.total
            percent = amount / prior.total * 100
        changes.append(
            AssessmentChange(
                year=record.year,
                total=record.total,
                change_amount=amount,
                change_percent=percent,
            )
        )
    return changes
