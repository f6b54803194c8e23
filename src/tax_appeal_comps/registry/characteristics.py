"""Physical characteristics lookup.

A parcel is described by exactly one of the residential characteristics
datasets, and the registry does not say which in advance. The lookup walks an
ordered tuple of strategies and keeps the first one that answers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping, Optional, Sequence

from ..models import Characteristics
from . import socrata


# (dataset key, where clause, limit, order) -> list of records
QueryFn = Callable[[str, str, int, Optional[str]], Awaitable[list]]


def _bathrooms(record: Mapping[str, Any]) -> Optional[float]:
    full = socrata.as_int(socrata.first(record, "fbath", "char_fbath"))
    half = socrata.as_int(socrata.first(record, "hbath", "char_hbath"))
    if full is None and half is None:
        return None
    total = (full or 0) + 0.5 * (half or 0)
    return total or None


def parse_characteristics(schema: str, record: Mapping[str, Any]) -> Characteristics:
    return Characteristics(
        schema=schema,
        living_area=socrata.as_positive_int(
            socrata.first(record, "bldg_sf", "char_bldg_sf", "total_bldg_sf")
        ),
        land_area=socrata.as_positive_int(
            socrata.first(record, "land_sf", "char_land_sf")
        ),
        year_built=socrata.as_positive_int(socrata.first(record, "yrblt", "char_yrblt")),
        bedrooms=socrata.as_int(socrata.first(record, "beds", "char_beds")),
        bathrooms=_bathrooms(record),
        building_class=socrata.as_str(socrata.first(record, "class")),
        construction_quality=socrata.as_str(
            socrata.first(
                record,
                "cnst_qlty",
                "char_cnst_qlty",
                "condition_desirability_and_utility",
            )
        ),
        exterior_wall=socrata.as_str(socrata.first(record, "ext_wall", "char_ext_wall")),
        roof_type=socrata.as_str(socrata.first(record, "roof_cnst", "char_roof_cnst")),
        basement=socrata.as_str(socrata.first(record, "bsmt", "char_bsmt")),
        air_conditioning=socrata.as_str(socrata.first(record, "air", "char_air")),
        garage=socrata.as_str(socrata.first(record, "gar1_size", "char_gar1_size")),
        assessed_land=socrata.as_float(socrata.first(record, "av_land", "pri_est_land")),
        assessed_building=socrata.as_float(
            socrata.first(record, "av_bldg", "pri_est_bldg")
        ),
        assessed_total=socrata.as_float(socrata.first(record, "tot_val")),
    )


@dataclass(frozen=True)
class DatasetStrategy:
    """Look a PIN up in one characteristics dataset, newest tax year first."""

    name: str
    dataset: str

    async def lookup(self, query: QueryFn, pin: str) -> Optional[Characteristics]:
        rows = await query(self.dataset, socrata.eq("pin", pin), 1, "tax_year DESC")
        if not rows:
            return None
        return parse_characteristics(self.name, rows[0])


SINGLE_FAMILY = DatasetStrategy(name="single_family", dataset="single_family_chars")
MULTI_FAMILY = DatasetStrategy(name="multi_family", dataset="multi_family_chars")

DEFAULT_STRATEGIES: Sequence[DatasetStrategy] = (SINGLE_FAMILY, MULTI_FAMILY)


async def lookup_characteristics(
    query: QueryFn,
    pin: str,
    strategies: Sequence[DatasetStrategy] = DEFAULT_STRATEGIES,
) -> Optional[Characteristics]:
    for strategy in strategies:
        found = await strategy.lookup(query, pin)
        if found is not None:
            return found
    return None
