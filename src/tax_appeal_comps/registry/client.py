from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

import httpx

from .. import identifiers
from ..errors import TransientFailure
from ..http_client import gather_in_batches, get_json
from ..models import (
    AssessmentRecord,
    Characteristics,
    ComparableCandidate,
    Coordinates,
    Origin,
    ParcelLocation,
    SubjectProperty,
)
from . import assessments, socrata
from .characteristics import DEFAULT_STRATEGIES, DatasetStrategy, lookup_characteristics


logger = logging.getLogger("tac.registry")

DEFAULT_BASE_URL = "https://datacatalog.cookcountyil.gov/resource"
DATA_SOURCE = "Cook County Open Data"
SALES_SOURCE = "Cook County Open Data - Parcel Sales"

HISTORY_YEARS = 15
TAX_RATE_FLOOR_YEAR = 2013
DEFAULT_SALES_LIMIT = 20
MAX_SALES_LIMIT = 50


@dataclass(frozen=True)
class SalesTolerances:
    """Similarity window for sales comparables.

    Neighborhood and building class always have to match exactly; only the
    sale recency is adjustable. The sales dataset carries no physical
    characteristics, so area and age are not filtered on server side.
    """

    recency_days: int = 730


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clamp_sales_limit(limit: Optional[int]) -> int:
    if limit is None:
        return DEFAULT_SALES_LIMIT
    return max(1, min(int(limit), MAX_SALES_LIMIT))


def _address(record: Mapping[str, Any]) -> str:
    return socrata.as_str(
        socrata.first(record, "prop_address_full", "property_address", "addr")
    ) or ""


def _city(record: Mapping[str, Any]) -> str:
    return socrata.as_str(
        socrata.first(
            record, "prop_address_city_name", "property_city", "cook_municipality_name"
        )
    ) or ""


def _zip(record: Mapping[str, Any]) -> str:
    return socrata.as_str(
        socrata.first(record, "prop_address_zipcode_1", "property_zip", "zip_code")
    ) or ""


def _coordinates(record: Mapping[str, Any]) -> Optional[Coordinates]:
    lat = socrata.as_float(socrata.first(record, "lat", "latitude"))
    lon = socrata.as_float(socrata.first(record, "lon", "longitude"))
    if lat is None or lon is None:
        return None
    # Socrata fills missing points with 0,0 on some exports.
    if lat == 0 and lon == 0:
        return None
    return Coordinates(lat, lon)


def parse_location(pin: str, record: Mapping[str, Any]) -> Optional[ParcelLocation]:
    address = _address(record)
    city = _city(record)
    coordinates = _coordinates(record)
    if not address and not city and coordinates is None:
        return None
    return ParcelLocation(
        pin=pin,
        address=address or f"PIN {identifiers.display(pin)}",
        city=city,
        zip_code=_zip(record),
        coordinates=coordinates,
    )


def _current_values(
    history: Sequence[AssessmentRecord],
    parcel: Mapping[str, Any],
    chars: Optional[Characteristics],
) -> Dict[str, Optional[float]]:
    """Newest history year, then the parcel's stage columns, then chars."""

    values: Dict[str, Optional[float]] = {"land": None, "building": None, "total": None}
    if history:
        newest = history[0]
        values = {"land": newest.land, "building": newest.building, "total": newest.total}
    from_parcel = assessments.merge_stages(parcel)
    for key in values:
        if values[key] is None:
            values[key] = from_parcel[key]
    if chars is not None:
        fallbacks = {
            "land": chars.assessed_land,
            "building": chars.assessed_building,
            "total": chars.assessed_total,
        }
        for key, fallback in fallbacks.items():
            if values[key] is None and fallback is not None and fallback > 0:
                values[key] = fallback
    return values


class RegistryClient:
    """Read-only client for the Cook County open-data catalog.

    Every failure (transport, timeout, non-2xx, undecodable body) surfaces as
    TransientFailure naming the dataset that failed. A missing parcel is not a
    failure: lookups return None.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        base_url: str = DEFAULT_BASE_URL,
        app_token: Optional[str] = None,
        batch_size: int = 5,
        strategies: Sequence[DatasetStrategy] = DEFAULT_STRATEGIES,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._http = http
        self._base_url = base_url
        self._headers = {"X-App-Token": app_token} if app_token else {}
        self._batch_size = max(1, int(batch_size))
        self._strategies = tuple(strategies)
        self._clock = clock

    async def _query(
        self,
        dataset: str,
        where: str,
        limit: int = 1,
        order: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        url = socrata.dataset_url(self._base_url, dataset)
        params = socrata.build_params(where, limit=limit, order=order)
        logger.debug("registry query", extra={"source": dataset, "where": where})
        payload = await get_json(
            self._http, url, source=dataset, params=params, headers=self._headers
        )
        if not isinstance(payload, list):
            raise TransientFailure(dataset, "expected a JSON array of records")
        return socrata.records(payload)

    async def _parcel_record(self, pin: str) -> Optional[Dict[str, Any]]:
        rows = await self._query("parcel_universe", socrata.eq("pin", pin), 1)
        return rows[0] if rows else None

    async def fetch_characteristics(self, pin: str) -> Optional[Characteristics]:
        return await lookup_characteristics(self._query, pin, self._strategies)

    async def fetch_assessment_history(
        self, pin: str, years: int = HISTORY_YEARS
    ) -> List[AssessmentRecord]:
        rows = await self._query(
            "assessed_values", socrata.eq("pin", pin), years, "year DESC"
        )
        return assessments.parse_history(rows)

    async def fetch_tax_rate(
        self, tax_code: Optional[str], year_hint: Optional[int] = None
    ) -> Optional[float]:
        """Composite rate for ``tax_code`` as a decimal (5.525% -> 0.05525).

        Rates are not published every year for every code, so this walks back
        from ``year_hint`` (default: last calendar year) to the floor year.
        """

        if not tax_code:
            return None
        start = year_hint if year_hint is not None else self._clock().year - 1
        for year in range(start, TAX_RATE_FLOOR_YEAR - 1, -1):
            where = socrata.all_of(
                [socrata.eq("tax_code", tax_code), socrata.eq("tax_year", year)]
            )
            rows = await self._query("tax_rates", where, 1)
            if not rows:
                continue
            pct = socrata.as_float(rows[0].get("tax_code_rate"))
            if pct is not None:
                return pct / 100
        return None

    async def fetch_parcel(self, pin: str) -> Optional[SubjectProperty]:
        normalized = identifiers.require_valid(pin)
        parcel = await self._parcel_record(normalized)
        if parcel is None:
            logger.info("parcel not found", extra={"pin": normalized})
            return None

        tax_code = socrata.as_str(
            socrata.first(parcel, "tax_code", "taxcode", "tax_code_display")
        )
        chars, history, tax_rate = await asyncio.gather(
            self.fetch_characteristics(normalized),
            self.fetch_assessment_history(normalized),
            self.fetch_tax_rate(tax_code),
        )

        now = self._clock()
        latest_year = history[0].year if history else None
        current = _current_values(history, parcel, chars)

        def char(name: str) -> Any:
            return getattr(chars, name) if chars is not None else None

        return SubjectProperty(
            pin=normalized,
            address=_address(parcel),
            city=_city(parcel),
            zip_code=_zip(parcel),
            neighborhood=socrata.as_str(socrata.first(parcel, "nbhd_code", "nbhd")),
            township=socrata.as_str(parcel.get("township_name")),
            coordinates=_coordinates(parcel),
            building_class=socrata.as_str(parcel.get("class")) or char("building_class"),
            construction_quality=char("construction_quality"),
            living_area=char("living_area")
            or socrata.as_positive_int(socrata.first(parcel, "bldg_sf", "char_bldg_sf")),
            land_area=char("land_area")
            or socrata.as_positive_int(socrata.first(parcel, "land_sf", "char_land_sf")),
            year_built=char("year_built"),
            bedrooms=char("bedrooms"),
            bathrooms=char("bathrooms"),
            exterior_wall=char("exterior_wall"),
            roof_type=char("roof_type"),
            basement=char("basement"),
            air_conditioning=char("air_conditioning"),
            garage=char("garage"),
            assessed_land=current["land"],
            assessed_building=current["building"],
            assessed_total=current["total"],
            market_value=assessments.market_value(current["total"], latest_year),
            tax_code=tax_code,
            tax_rate=tax_rate,
            state_equalizer=assessments.state_equalizer(
                latest_year if latest_year is not None else now.year
            ),
            assessment_history=tuple(history),
            data_source=DATA_SOURCE,
            last_updated=now,
        )

    def _sales_where(self, subject: SubjectProperty, tolerances: SalesTolerances) -> str:
        since = (self._clock() - timedelta(days=tolerances.recency_days)).date()
        clauses = []
        if subject.neighborhood:
            clauses.append(socrata.eq("nbhd", subject.neighborhood))
        if subject.building_class:
            clauses.append(socrata.eq("class", subject.building_class))
        clauses.append(socrata.gte("sale_date", since.isoformat()))
        clauses.append(socrata.ne("pin", subject.pin))
        return socrata.all_of(clauses)

    async def fetch_comparable_sales(
        self,
        subject: SubjectProperty,
        tolerances: Optional[SalesTolerances] = None,
        limit: Optional[int] = DEFAULT_SALES_LIMIT,
    ) -> List[ComparableCandidate]:
        tolerances = tolerances or SalesTolerances()
        rows = await self._query(
            "parcel_sales",
            self._sales_where(subject, tolerances),
            _clamp_sales_limit(limit),
            "sale_date DESC",
        )

        pins: List[str] = []
        for row in rows:
            pin = identifiers.normalize(row.get("pin"))
            if identifiers.is_valid(pin) and pin not in pins:
                pins.append(pin)
        chars_by_pin = await gather_in_batches(
            pins, self.fetch_characteristics, self._batch_size
        )

        candidates: List[ComparableCandidate] = []
        for row in rows:
            pin = identifiers.normalize(row.get("pin"))
            if not identifiers.is_valid(pin):
                logger.debug("skipping sale without a valid pin", extra={"pin": pin})
                continue
            candidates.append(self._sale_candidate(pin, row, chars_by_pin.get(pin)))
        return candidates

    @staticmethod
    def _sale_candidate(
        pin: str, row: Mapping[str, Any], chars: Optional[Characteristics]
    ) -> ComparableCandidate:
        def pick(name: str, *aliases: str) -> Any:
            value = getattr(chars, name) if chars is not None else None
            if value is None and aliases:
                value = socrata.as_positive_int(socrata.first(row, *aliases))
            return value

        price = socrata.as_float(row.get("sale_price"))
        return ComparableCandidate(
            pin=pin,
            origin=Origin.PRIMARY_REGISTRY,
            source_label=SALES_SOURCE,
            neighborhood=socrata.as_str(row.get("nbhd")),
            sale_price=price if price is not None and price > 0 else None,
            sale_date=socrata.as_date(row.get("sale_date")),
            living_area=pick("living_area", "char_bldg_sf", "bldg_sf"),
            year_built=pick("year_built", "char_yrblt", "yrblt"),
            bedrooms=pick("bedrooms", "char_beds"),
            bathrooms=pick("bathrooms"),
            building_class=socrata.as_str(row.get("class")),
            assessed_value=chars.assessed_total if chars is not None else None,
        )

    async def fetch_location(self, pin: str) -> Optional[ParcelLocation]:
        normalized = identifiers.require_valid(pin)
        record = await self._parcel_record(normalized)
        if record is None:
            return None
        return parse_location(normalized, record)

    async def fetch_locations(
        self, pins: Iterable[str]
    ) -> Dict[str, Optional[ParcelLocation]]:
        """Locations for ``pins`` in fixed-size concurrency groups.

        A lookup that fails leaves that pin mapped to None; the caller gets
        whatever the rest of the batch produced.
        """

        async def one(pin: str) -> Optional[ParcelLocation]:
            try:
                return await self.fetch_location(pin)
            except TransientFailure as exc:
                logger.warning(
                    "location lookup failed",
                    extra={"pin": pin, "source": exc.source, "reason": exc.detail},
                )
                return None

        unique: List[str] = []
        for pin in pins:
            normalized = identifiers.normalize(pin)
            if identifiers.is_valid(normalized) and normalized not in unique:
                unique.append(normalized)
        return await gather_in_batches(unique, one, self._batch_size)

    async def search_by_address(
        self, address: str, city: Optional[str] = None, limit: int = 10
    ) -> List[ParcelLocation]:
        clauses = [socrata.contains_ci("property_address", address.strip())]
        if city:
            clauses.append(socrata.contains_ci("property_city", city.strip()))
        rows = await self._query(
            "parcel_universe", socrata.all_of(clauses), max(1, min(int(limit), 100))
        )
        results: List[ParcelLocation] = []
        for row in rows:
            pin = identifiers.normalize(row.get("pin"))
            if not identifiers.is_valid(pin):
                continue
            location = parse_location(pin, row)
            if location is not None:
                results.append(location)
        return results
