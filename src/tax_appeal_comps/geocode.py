"""Coordinates for parcels the registry has no point for.

The provider's address lookup wants the street line alone, so unit markers and
a trailing ``, CITY, ST 60601`` segment are stripped first. Calls share the
provider's monthly quota.
"""

from __future__ import annotations

import logging
import re
from typing import Optional

from .enrichment.parsing import parse_coordinates
from .enrichment.provider import SecondaryProviderClient
from .models import Coordinates
from .outcomes import Degraded, Outcome


logger = logging.getLogger("tac.geocode")

UNIT_PATTERN = re.compile(
    r"(?:\b(?:APT|UNIT|STE|SUITE)\b\.?|#)\s*([A-Z0-9\-]+)\s*$", re.IGNORECASE
)
_CITY_STATE_ZIP = re.compile(
    r"\s*,\s*[A-Za-z\s]+\s*,?\s*(?:[A-Z]{2}\s+)?\d{5}(-\d{4})?\s*$", re.IGNORECASE
)

_EXPECTED = (Degraded.NOT_FOUND, Degraded.NOT_CONFIGURED, Degraded.QUOTA_EXHAUSTED)


def parse_unit(address: Optional[str]) -> Optional[str]:
    """``"123 MAIN ST APT 2B"`` -> ``"2B"``."""

    if not address or not address.strip():
        return None
    street = _CITY_STATE_ZIP.sub("", address.strip()).strip()
    match = UNIT_PATTERN.search(street)
    return match.group(1).strip() if match else None


def parse_street(address: Optional[str]) -> str:
    if not address or not address.strip():
        return ""
    original = address.strip()
    street = _CITY_STATE_ZIP.sub("", original).strip()
    street = UNIT_PATTERN.sub("", street).strip().rstrip(",").strip()
    return street or original


class GeocodeResolver:
    def __init__(self, provider: SecondaryProviderClient) -> None:
        self._provider = provider

    async def resolve(
        self,
        address: str,
        unit: Optional[str] = None,
        state: str = "IL",
        city: Optional[str] = None,
        county: Optional[str] = None,
    ) -> Outcome[Coordinates]:
        street = parse_street(address)
        if not street:
            return Outcome.unavailable(Degraded.NOT_FOUND, "address is required")
        if unit is None:
            unit = parse_unit(address)

        outcome = await self._provider.lookup_address(
            street, unit=unit, state=state, city=city, county=county
        )
        if not outcome.ok:
            level = logging.INFO if outcome.degraded in _EXPECTED else logging.WARNING
            logger.log(
                level,
                "geocode unavailable",
                extra={"reason": outcome.degraded.value, "detail": outcome.detail},
            )
            return Outcome.unavailable(outcome.degraded, outcome.detail)

        coordinates = parse_coordinates(outcome.value)
        if coordinates is None:
            return Outcome.unavailable(Degraded.NO_DATA, "no coordinates in response")
        return Outcome.success(coordinates)
