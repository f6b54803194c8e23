from __future__ import annotations

import csv
import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .. import identifiers
from ..models import MergedComparable, SubjectProperty
from .merge import has_discrepancy


@dataclass(frozen=True)
class ComparableReport:
    """What the evidence assembler consumes: the subject plus its comparables."""

    subject: SubjectProperty
    comparables: List[MergedComparable] = field(default_factory=list)
    include_secondary_source: bool = False
    generated_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "subject": self.subject.to_dict(),
            "comparables": [c.to_dict() for c in self.comparables],
            "include_secondary_source": self.include_secondary_source,
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
        }


def resolve_output_paths(out: str) -> Tuple[Path, Path]:
    out_path = Path(out)
    if out_path.suffix.lower() == ".json":
        return out_path, out_path.with_suffix(".csv")
    if out_path.suffix.lower() == ".csv":
        return out_path.with_suffix(".json"), out_path
    # treat as a base path; create <base>.json and <base>.csv
    return out_path.with_suffix(".json"), out_path.with_suffix(".csv")


def _round(value: Any) -> Any:
    if isinstance(value, float):
        return round(value, 6)
    if isinstance(value, dict):
        return {k: _round(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_round(v) for v in value]
    return value


def report_json(report: ComparableReport) -> str:
    return json.dumps(_round(report.to_dict()), sort_keys=True, indent=2) + "\n"


def write_report_json(report: ComparableReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report_json(report), encoding="utf-8")


CSV_FIELDS = [
    "pin",
    "origin",
    "source",
    "address",
    "city",
    "sale_date",
    "sale_price",
    "living_area",
    "price_per_unit_area",
    "year_built",
    "bedrooms",
    "bathrooms",
    "building_class",
    "distance_miles",
    "in_both_sources",
    "provider_living_area",
    "living_area_differs",
]


def _fmt(value: Optional[float], spec: str) -> str:
    return "" if value is None else format(value, spec)


def summary_row(comp: MergedComparable) -> Dict[str, str]:
    provider_area = comp.secondary_values.get("living_area")
    return {
        "pin": identifiers.display(comp.pin),
        "origin": comp.origin.value,
        "source": comp.source_label,
        "address": comp.address or "",
        "city": comp.city or "",
        "sale_date": comp.sale_date or "",
        "sale_price": _fmt(comp.sale_price, ".0f"),
        "living_area": _fmt(comp.living_area, ".0f"),
        "price_per_unit_area": _fmt(comp.price_per_unit_area, ".2f"),
        "year_built": "" if comp.year_built is None else str(comp.year_built),
        "bedrooms": "" if comp.bedrooms is None else str(comp.bedrooms),
        "bathrooms": _fmt(comp.bathrooms, "g"),
        "building_class": comp.building_class or "",
        "distance_miles": _fmt(comp.distance_from_subject, ".3f"),
        "in_both_sources": "yes" if comp.in_both_sources else "no",
        "provider_living_area": _fmt(provider_area, ".0f"),
        "living_area_differs": (
            "yes"
            if comp.in_both_sources and has_discrepancy(comp.living_area, provider_area)
            else ""
        ),
    }


def write_summary_csv(report: ComparableReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.DictWriter(handle, fieldnames=CSV_FIELDS)
        writer.writeheader()
        for comp in report.comparables:
            writer.writerow(summary_row(comp))


def write_report(report: ComparableReport, out: str) -> Tuple[Path, Path]:
    json_path, csv_path = resolve_output_paths(out)
    write_report_json(report, json_path)
    write_summary_csv(report, csv_path)
    return json_path, csv_path
