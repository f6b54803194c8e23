from __future__ import annotations

from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field


class Health(BaseModel):
    status: str = "ok"
    provider_configured: bool = False


class Point(BaseModel):
    latitude: float
    longitude: float


class AssessmentYear(BaseModel):
    year: int
    land: Optional[float] = None
    building: Optional[float] = None
    total: Optional[float] = None
    market_value: Optional[float] = None
    stage: str


class AssessmentChange(BaseModel):
    year: int
    total: Optional[float] = None
    change_amount: Optional[float] = None
    change_percent: Optional[float] = None


class Subject(BaseModel):
    """Subject parcel as published by the county registry.

    All characteristics are nullable; missing values are null, never 0.
    """

    pin: str
    pin_display: str
    address: str = ""
    city: str = ""
    state: str = "IL"
    zip_code: str = ""
    county: str = "Cook"
    neighborhood: Optional[str] = None
    township: Optional[str] = None
    coordinates: Optional[Point] = None

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

    assessment_history: List[AssessmentYear] = Field(default_factory=list)
    assessment_changes: List[AssessmentChange] = Field(default_factory=list)

    data_source: str = ""
    last_updated: Optional[str] = None


class Comparable(BaseModel):
    pin: str
    origin: str
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
    coordinates: Optional[Point] = None
    price_per_unit_area: Optional[float] = None
    distance_from_subject: Optional[float] = None
    in_both_sources: bool = False
    secondary_values: Dict[str, Optional[Union[int, float]]] = Field(default_factory=dict)
    secondary_details: Dict[str, Optional[Union[int, float, str]]] = Field(default_factory=dict)


class ComparablesResponse(BaseModel):
    pin: str
    include_secondary_source: bool = False
    count: int = 0
    comparables: List[Comparable] = Field(default_factory=list)


class ParcelMatch(BaseModel):
    pin: str
    pin_display: str
    address: str = ""
    city: str = ""
    zip_code: str = ""
    coordinates: Optional[Point] = None


class SearchResponse(BaseModel):
    count: int = 0
    results: List[ParcelMatch] = Field(default_factory=list)


class QuotaSnapshot(BaseModel):
    provider_configured: bool = False
    month: Optional[str] = None
    used: int = 0
    ceiling: int = 0
    remaining: int = 0
