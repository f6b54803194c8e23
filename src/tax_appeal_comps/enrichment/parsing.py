"""Turn Secondary Provider property payloads into domain records.

The provider mostly sends camelCase JSON numbers, but older payloads and the
comparables endpoint also use snake_case names and numeric strings.
"""

from __future__ import annotations

import math
import re
from typing import Any, List, Mapping, Optional

from .. import identifiers
from ..models import (
    ComparableCandidate,
    Coordinates,
    Enrichment,
    FullEnrichment,
    Origin,
    PriorAssessment,
)


COMPARABLES_SOURCE = "Realie Premium Comparables"

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})")


def num(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            number = float(text)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _int(value: Any) -> Optional[int]:
    number = num(value)
    return None if number is None else int(math.floor(number))


def _first_num(raw: Mapping[str, Any], *keys: str) -> Optional[float]:
    for key in keys:
        number = num(raw.get(key))
        if number is not None:
            return number
    return None


def _text(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _flag(value: Any) -> Optional[bool]:
    return value if isinstance(value, bool) else None


def parse_coordinates(prop: Optional[Mapping[str, Any]]) -> Optional[Coordinates]:
    if not isinstance(prop, Mapping):
        return None
    return Coordinates.from_pair(num(prop.get("latitude")), num(prop.get("longitude")))


def parse_enrichment(prop: Optional[Mapping[str, Any]]) -> Optional[Enrichment]:
    """The four comparable fields, or None when the payload has none of them."""

    if not isinstance(prop, Mapping):
        return None
    enrichment = Enrichment(
        living_area=num(prop.get("buildingArea")),
        year_built=_int(prop.get("yearBuilt")),
        bedrooms=_int(prop.get("totalBedrooms")),
        bathrooms=num(prop.get("totalBathrooms")),
    )
    if enrichment.field_count() == 0:
        return None
    return enrichment


def _prior_assessments(raw: Any) -> List[PriorAssessment]:
    if not isinstance(raw, list):
        return []
    parsed: List[PriorAssessment] = []
    for item in raw:
        if not isinstance(item, Mapping):
            continue
        assessed_year = _int(item.get("assessedYear"))
        total = num(item.get("totalAssessedValue"))
        if assessed_year is None and total is None:
            continue
        parsed.append(
            PriorAssessment(
                assessed_year=assessed_year,
                total_assessed_value=total,
                total_market_value=num(item.get("totalMarketValue")),
                tax_value=num(item.get("taxValue")),
                tax_year=_int(item.get("taxYear")),
            )
        )
    return parsed


def parse_full_enrichment(prop: Optional[Mapping[str, Any]]) -> Optional[FullEnrichment]:
    base = parse_enrichment(prop)
    if base is None:
        return None
    return FullEnrichment(
        living_area=base.living_area,
        year_built=base.year_built,
        bedrooms=base.bedrooms,
        bathrooms=base.bathrooms,
        address_full=_text(prop.get("addressFull")),
        land_area=num(prop.get("landArea")),
        acres=num(prop.get("acres")),
        total_assessed_value=num(prop.get("totalAssessedValue")),
        total_land_value=num(prop.get("totalLandValue")),
        total_building_value=num(prop.get("totalBuildingValue")),
        total_market_value=num(prop.get("totalMarketValue")),
        tax_value=num(prop.get("taxValue")),
        tax_year=_int(prop.get("taxYear")),
        assessed_year=_int(prop.get("assessedYear")),
        garage=_flag(prop.get("garage")),
        garage_count=_int(prop.get("garageCount")),
        fireplace=_flag(prop.get("fireplace")),
        basement_type=_text(prop.get("basementType")),
        roof_type=_text(prop.get("roofType")),
        subdivision=_text(prop.get("subdivision")),
        neighborhood=_text(prop.get("neighborhood")),
        coordinates=parse_coordinates(prop),
        model_value=num(prop.get("modelValue")),
        assessments=_prior_assessments(prop.get("assessments")),
    )


def _sale_date(raw: Mapping[str, Any]) -> Optional[str]:
    for key in (
        "transferDateObject",
        "transfer_date_object",
        "transferDate",
        "transfer_date",
        "saleDate",
        "sale_date",
    ):
        value = raw.get(key)
        if not isinstance(value, str):
            continue
        match = _ISO_DATE.match(value.strip())
        if match:
            return "-".join(match.groups())
    return None


def parse_comparable(raw: Mapping[str, Any]) -> Optional[ComparableCandidate]:
    """One entry of a comparables search; None without a usable 14-digit PIN.

    Provider-reported distance is dropped; distance is only ever computed
    from coordinates.
    """

    pin = identifiers.normalize(
        raw.get("parcelId") or raw.get("parcel_id") or raw.get("pin")
    )
    if not identifiers.is_valid(pin):
        return None

    address = (
        _text(raw.get("addressFull"))
        or _text(raw.get("address"))
        or _text(raw.get("streetAddress"))
        or f"PIN {identifiers.display(pin)}"
    )
    price = _first_num(raw, "transferPrice", "transfer_price", "salePrice", "sale_price")
    area = _first_num(raw, "buildingArea", "building_area")
    year = _first_num(raw, "yearBuilt", "year_built")
    beds = _first_num(raw, "totalBedrooms", "total_bedrooms", "bedrooms")

    return ComparableCandidate(
        pin=pin,
        origin=Origin.SECONDARY_PROVIDER,
        source_label=COMPARABLES_SOURCE,
        address=address,
        city=_text(raw.get("city")) or "",
        zip_code=_text(raw.get("zipCode")) or _text(raw.get("zip_code")) or "",
        sale_price=price if price is not None and price > 0 else None,
        sale_date=_sale_date(raw),
        living_area=area if area is not None and area > 0 else None,
        year_built=int(year) if year is not None else None,
        bedrooms=int(math.floor(beds)) if beds is not None else None,
        bathrooms=_first_num(raw, "totalBathrooms", "total_bathrooms", "bathrooms"),
        coordinates=parse_coordinates(raw),
    )
