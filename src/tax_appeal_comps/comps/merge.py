from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from ..geodesy import distance_between
from ..models import (
    ComparableCandidate,
    Coordinates,
    Enrichment,
    FullEnrichment,
    MergedComparable,
    ParcelLocation,
    price_per_unit_area,
)


ENRICHABLE_FIELDS = ("living_area", "year_built", "bedrooms", "bathrooms")


def dedupe(
    candidates: Iterable[ComparableCandidate], exclude: Iterable[str] = ()
) -> List[ComparableCandidate]:
    """Keep the first candidate per PIN, dropping any PIN in ``exclude``."""

    seen = set(exclude)
    kept: List[ComparableCandidate] = []
    for candidate in candidates:
        if candidate.pin in seen:
            continue
        seen.add(candidate.pin)
        kept.append(candidate)
    return kept


def needs_enrichment(candidate: ComparableCandidate) -> bool:
    return any(getattr(candidate, name) is None for name in ENRICHABLE_FIELDS)


def with_location(
    candidate: ComparableCandidate, location: Optional[ParcelLocation]
) -> ComparableCandidate:
    if location is None:
        return candidate
    return replace(
        candidate,
        address=candidate.address or location.address,
        city=candidate.city or location.city,
        zip_code=candidate.zip_code or location.zip_code,
        coordinates=candidate.coordinates or location.coordinates,
    )


def has_discrepancy(
    primary_value: Optional[float], secondary_value: Optional[float]
) -> bool:
    """Whether a "County / Provider" pair is worth showing side by side."""

    if primary_value is None and secondary_value is None:
        return False
    if primary_value is None or secondary_value is None:
        return True
    return primary_value != secondary_value


def merge_candidate(
    candidate: ComparableCandidate,
    subject_coordinates: Optional[Coordinates],
    enrichment: Optional[Enrichment] = None,
) -> MergedComparable:
    """Build the merged record, filling only fields the registry left null."""

    values: Dict[str, Any] = {
        name: getattr(candidate, name) for name in ENRICHABLE_FIELDS
    }
    secondary: Dict[str, Any] = {}
    if enrichment is not None:
        for name in ENRICHABLE_FIELDS:
            provided = getattr(enrichment, name)
            secondary[name] = provided
            if values[name] is None and provided is not None:
                values[name] = provided
    details: Dict[str, Any] = {}
    if isinstance(enrichment, FullEnrichment):
        details = enrichment.details()

    return MergedComparable(
        pin=candidate.pin,
        origin=candidate.origin,
        source_label=candidate.source_label,
        address=candidate.address,
        city=candidate.city,
        zip_code=candidate.zip_code,
        neighborhood=candidate.neighborhood,
        sale_price=candidate.sale_price,
        sale_date=candidate.sale_date,
        living_area=values["living_area"],
        year_built=values["year_built"],
        bedrooms=values["bedrooms"],
        bathrooms=values["bathrooms"],
        building_class=candidate.building_class,
        assessed_value=candidate.assessed_value,
        coordinates=candidate.coordinates,
        price_per_unit_area=price_per_unit_area(
            candidate.sale_price, values["living_area"]
        ),
        distance_from_subject=distance_between(
            subject_coordinates, candidate.coordinates
        ),
        in_both_sources=enrichment is not None,
        secondary_values=secondary,
        secondary_details=details,
    )
