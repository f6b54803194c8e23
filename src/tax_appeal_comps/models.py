from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Origin(str, Enum):
    PRIMARY_REGISTRY = "primary_registry"
    SECONDARY_PROVIDER = "secondary_provider"
    MANUAL = "manual"


class AssessmentStage(str, Enum):
    MAILED = "mailed"
    CERTIFIED = "certified"
    BOARD = "board"


@dataclass(frozen=True)
class Coordinates:
    latitude: float
    longitude: float

    @classmethod
    def from_pair(
        cls, latitude: Optional[float], longitude: Optional[float]
    ) -> Optional["Coordinates"]:
        if latitude is None or longitude is None:
            return None
        return cls(float(latitude), float(longitude))


@dataclass(frozen=True)
class AssessmentRecord:
    year: int
    land: Optional[float] = None
    building: Optional[float] = None
    total: Optional[float] = None
    market_value: Optional[float] = None
    stage: AssessmentStage = AssessmentStage.MAILED

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["stage"] = self.stage.value
        return payload


@dataclass(frozen=True)
class Characteristics:
    schema: str
    living_area: Optional[int] = None
    land_area: Optional[int] = None
    year_built: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    building_class: Optional[str] = None
    construction_quality: Optional[str] = None
    exterior_wall: Optional[str] = None
    roof_type: Optional[str] = None
    basement: Optional[str] = None
    air_conditioning: Optional[str] = None
    garage: Optional[str] = None
    assessed_land: Optional[float] = None
    assessed_building: Optional[float] = None
    assessed_total: Optional[float] = None


@dataclass(frozen=True)
class ParcelLocation:
    pin: str
    address: str = ""
    city: str = ""
    zip_code: str = ""
    coordinates: Optional[Coordinates] = None


@dataclass(frozen=True)
class SubjectProperty:
    pin: str
    address: str = ""
    city: str = ""
    state: str = "IL"
    zip_code: str = ""
    county: str = "Cook"

    neighborhood: Optional[str] = None
    township: Optional[str] = None
    coordinates: Optional[Coordinates] = None

    building_class: Optional[str] = None
    construction_quality: Optional[str] = None
    living_area: Optional[int] = None
    land_area: Optional[int] = None
    year_built: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    exterior_wall: Optional[str] = None
    roof_type: Optional[str] = None
    basement: Optional[str] = None
    air_conditioning: Optional[str] = None
    garage: Optional[str] = None

    assessed_land: Optional[float] = None
    assessed_building: Optional[float] = None
    assessed_total: Optional[float] = None
    market_value: Optional[float] = None

    tax_code: Optional[str] = None
    tax_rate: Optional[float] = None
    state_equalizer: Optional[float] = None

    assessment_history: Tuple[AssessmentRecord, ...] = ()

    data_source: str = "Cook County Open Data"
    last_updated: Optional[datetime] = None

    def with_coordinates(self, coordinates: Optional[Coordinates]) -> "SubjectProperty":
        return replace(self, coordinates=coordinates)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["assessment_history"] = [r.to_dict() for r in self.assessment_history]
        payload["last_updated"] = (
            self.last_updated.isoformat() if self.last_updated else None
        )
        return payload


@dataclass(frozen=True)
class ComparableCandidate:
    pin: str
    origin: Origin
    source_label: str

    address: str = ""
    city: str = ""
    zip_code: str = ""
    neighborhood: Optional[str] = None

    sale_price: Optional[float] = None
    sale_date: Optional[str] = None

    living_area: Optional[float] = None
    year_built: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    building_class: Optional[str] = None
    assessed_value: Optional[float] = None

    coordinates: Optional[Coordinates] = None


def price_per_unit_area(
    sale_price: Optional[float], living_area: Optional[float]
) -> Optional[float]:
    if sale_price is None or living_area is None:
        return None
    if sale_price <= 0 or living_area <= 0:
        return None
    return float(sale_price) / float(living_area)


@dataclass(frozen=True)
class MergedComparable:
    pin: str
    origin: Origin
    source_label: str

    address: str = ""
    city: str = ""
    zip_code: str = ""
    neighborhood: Optional[str] = None

    sale_price: Optional[float] = None
    sale_date: Optional[str] = None

    living_area: Optional[float] = None
    year_built: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None
    building_class: Optional[str] = None
    assessed_value: Optional[float] = None

    coordinates: Optional[Coordinates] = None

    price_per_unit_area: Optional[float] = None
    distance_from_subject: Optional[float] = None
    in_both_sources: bool = False
    secondary_values: Dict[str, Any] = field(default_factory=dict)
    secondary_details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["origin"] = self.origin.value
        return payload


@dataclass(frozen=True)
class Enrichment:
    living_area: Optional[float] = None
    year_built: Optional[int] = None
    bedrooms: Optional[int] = None
    bathrooms: Optional[float] = None

    def field_count(self) -> int:
        return sum(
            1
            for v in (self.living_area, self.year_built, self.bedrooms, self.bathrooms)
            if v is not None
        )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class PriorAssessment:
    assessed_year: Optional[int] = None
    total_assessed_value: Optional[float] = None
    total_market_value: Optional[float] = None
    tax_value: Optional[float] = None
    tax_year: Optional[int] = None


# Provider-only facts shown next to a merged comparable.
PROVIDER_DETAIL_FIELDS = (
    "land_area",
    "total_assessed_value",
    "total_market_value",
    "tax_value",
    "tax_year",
    "subdivision",
    "neighborhood",
)


@dataclass(frozen=True)
class FullEnrichment(Enrichment):
    address_full: Optional[str] = None
    land_area: Optional[float] = None
    acres: Optional[float] = None
    total_assessed_value: Optional[float] = None
    total_land_value: Optional[float] = None
    total_building_value: Optional[float] = None
    total_market_value: Optional[float] = None
    tax_value: Optional[float] = None
    tax_year: Optional[int] = None
    assessed_year: Optional[int] = None
    garage: Optional[bool] = None
    garage_count: Optional[int] = None
    fireplace: Optional[bool] = None
    basement_type: Optional[str] = None
    roof_type: Optional[str] = None
    subdivision: Optional[str] = None
    neighborhood: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    model_value: Optional[float] = None
    assessments: List[PriorAssessment] = field(default_factory=list)

    def details(self) -> Dict[str, Any]:
        return {name: getattr(self, name) for name in PROVIDER_DETAIL_FIELDS}


@dataclass(frozen=True)
class EnrichmentCacheEntry:
    """One durable answer from the Secondary Provider.

    ``enrichment`` is None when the provider answered without usable fields.
    ``raw_payload`` is None for rows written without the full payload and an
    empty dict when the provider had no property for the PIN.
    """

    pin: str
    enrichment: Optional[Enrichment]
    raw_payload: Optional[Dict[str, Any]]
    fetched_at: datetime

    @property
    def has_full_payload(self) -> bool:
        return self.raw_payload is not None
