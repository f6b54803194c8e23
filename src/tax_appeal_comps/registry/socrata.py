"""SODA (Socrata Open Data API) query helpers for the Cook County data catalog.

Records come back as flat JSON objects whose values are almost always strings,
and column names drift between dataset versions, so readers try aliases in order.
"""

from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional, Sequence


DATASETS: Dict[str, str] = {
    "parcel_universe": "tx2p-k2g9",
    "assessed_values": "uzyt-m557",
    "single_family_chars": "bcnq-qi2z",
    "multi_family_chars": "n6jx-6jqg",
    "parcel_sales": "wvhk-k5uv",
    "tax_rates": "9sqg-vznj",
}

MAX_LIMIT = 50000


def escape_literal(value: object) -> str:
    return str(value).replace("'", "''")


def eq(column: str, value: object) -> str:
    return f"{column}='{escape_literal(value)}'"


def ne(column: str, value: object) -> str:
    return f"{column} != '{escape_literal(value)}'"


def gte(column: str, value: object) -> str:
    return f"{column} >= '{escape_literal(value)}'"


def contains_ci(column: str, value: object) -> str:
    return f"upper({column}) like upper('%{escape_literal(value)}%')"


def all_of(clauses: Sequence[str]) -> str:
    return " AND ".join(c for c in clauses if c)


def build_params(
    where: str,
    *,
    limit: int = 1,
    order: Optional[str] = None,
) -> Dict[str, str]:
    params = {
        "$where": where,
        "$limit": str(max(1, min(int(limit), MAX_LIMIT))),
    }
    if order:
        params["$order"] = order
    return params


def dataset_url(base_url: str, dataset: str) -> str:
    return f"{base_url.rstrip('/')}/{DATASETS[dataset]}.json"


def first(record: Optional[Mapping[str, Any]], *keys: str) -> Any:
    """Return the first non-empty value among ``keys``."""

    if not record:
        return None
    for key in keys:
        value = record.get(key)
        if value not in (None, ""):
            return value
    return None


def as_str(value: object) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def as_float(value: object) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = str(value).strip().replace(",", "").replace("$", "")
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    if not math.isfinite(number):
        return None
    return number


def as_int(value: object) -> Optional[int]:
    number = as_float(value)
    if number is None:
        return None
    return int(number)


def as_positive_int(value: object) -> Optional[int]:
    number = as_int(value)
    if number is None or number <= 0:
        return None
    return number


def as_date(value: object) -> Optional[str]:
    """``2023-05-01T00:00:00.000`` -> ``2023-05-01``."""

    text = as_str(value)
    if not text or len(text) < 10:
        return None
    head = text[:10]
    parts = head.split("-")
    if len(parts) != 3 or not all(p.isdigit() for p in parts):
        return None
    return head


def records(payload: Any) -> List[Dict[str, Any]]:
    if not isinstance(payload, list):
        return []
    return [r for r in payload if isinstance(r, dict)]
