"""HTTP client for the Secondary Provider (Realie property data API).

Every request goes through one gate: a missing credential or an exhausted
monthly quota short-circuits without I/O, otherwise one quota slot is taken
before the request is sent. A slot is spent even when the request then fails.
Nothing here raises for provider trouble; callers get an ``Outcome``.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Mapping, Optional

import httpx

from ..outcomes import Degraded, Outcome
from .quota import MonthlyQuotaCounter


logger = logging.getLogger("tac.enrichment")

DEFAULT_BASE_URL = "https://app.realie.ai/api/public"
MAX_COMPARABLE_RESULTS = 50

_STATUS_REASONS = {
    401: Degraded.UNAUTHORIZED,
    403: Degraded.QUOTA_EXCEEDED,
    404: Degraded.NOT_FOUND,
    429: Degraded.QUOTA_EXCEEDED,
}


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and isinstance(body.get("error"), str):
        return body["error"]
    return f"HTTP {response.status_code}"


class SecondaryProviderClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        quota: MonthlyQuotaCounter,
        *,
        api_key: Optional[str] = None,
        base_url: str = DEFAULT_BASE_URL,
        state: str = "IL",
        county: str = "Cook",
    ) -> None:
        self._http = http
        self._quota = quota
        self._api_key = api_key or None
        self._base_url = base_url.rstrip("/")
        self.state = state
        self.county = county

    @property
    def configured(self) -> bool:
        return self._api_key is not None

    @property
    def quota(self) -> MonthlyQuotaCounter:
        return self._quota

    async def _get(self, path: str, params: Mapping[str, Any]) -> Outcome[Dict[str, Any]]:
        if self._api_key is None:
            return Outcome.unavailable(
                Degraded.NOT_CONFIGURED, "provider API key is not configured"
            )
        if not self._quota.try_acquire():
            logger.info(
                "provider quota exhausted",
                extra={"reason": Degraded.QUOTA_EXHAUSTED.value, "path": path},
            )
            return Outcome.unavailable(
                Degraded.QUOTA_EXHAUSTED,
                f"monthly ceiling of {self._quota.ceiling} calls reached",
            )

        url = f"{self._base_url}/{path.strip('/')}/"
        try:
            response = await self._http.get(
                url, params=dict(params), headers={"Authorization": self._api_key}
            )
        except httpx.TimeoutException as exc:
            return Outcome.unavailable(Degraded.PROVIDER_ERROR, f"timeout: {exc}")
        except httpx.HTTPError as exc:
            return Outcome.unavailable(
                Degraded.PROVIDER_ERROR, f"{type(exc).__name__}: {exc}"
            )

        if response.status_code >= 400:
            reason = _STATUS_REASONS.get(response.status_code, Degraded.PROVIDER_ERROR)
            return Outcome.unavailable(reason, _error_message(response))

        try:
            payload = response.json()
        except (json.JSONDecodeError, ValueError) as exc:
            return Outcome.unavailable(Degraded.PROVIDER_ERROR, f"invalid JSON: {exc}")
        if not isinstance(payload, dict):
            return Outcome.unavailable(
                Degraded.PROVIDER_ERROR, "expected a JSON object"
            )
        return Outcome.success(payload)

    @staticmethod
    def _property(outcome: Outcome[Dict[str, Any]]) -> Outcome[Dict[str, Any]]:
        if not outcome.ok:
            return outcome
        prop = outcome.value.get("property")
        return Outcome.success(prop if isinstance(prop, dict) else {})

    async def lookup_parcel(self, pin: str) -> Outcome[Dict[str, Any]]:
        """The provider's ``property`` object for ``pin`` ({} when absent)."""

        outcome = await self._get(
            "property/parcelId",
            {"state": self.state, "county": self.county, "parcelId": pin},
        )
        return self._property(outcome)

    async def lookup_address(
        self,
        street: str,
        *,
        unit: Optional[str] = None,
        state: Optional[str] = None,
        city: Optional[str] = None,
        county: Optional[str] = None,
    ) -> Outcome[Dict[str, Any]]:
        params: Dict[str, Any] = {"state": state or self.state, "address": street}
        if unit and unit.strip():
            params["unitNumberStripped"] = unit.strip()
        # The provider only narrows by city when the county comes with it.
        if city and city.strip() and county and county.strip():
            params["city"] = city.strip()
            params["county"] = county.strip()
        outcome = await self._get("property/address", params)
        return self._property(outcome)

    async def search_comparables(
        self,
        latitude: float,
        longitude: float,
        *,
        radius_miles: float = 1.0,
        time_frame_months: int = 18,
        max_results: int = 25,
    ) -> Outcome[List[Dict[str, Any]]]:
        outcome = await self._get(
            "premium/comparables",
            {
                "latitude": latitude,
                "longitude": longitude,
                "radius": radius_miles,
                "timeFrame": time_frame_months,
                "maxResults": max(1, min(int(max_results), MAX_COMPARABLE_RESULTS)),
            },
        )
        if not outcome.ok:
            return Outcome.unavailable(outcome.degraded, outcome.detail)
        raw = outcome.value.get("comparables")
        if raw is None:
            raw = outcome.value.get("comparable")
        if not isinstance(raw, list):
            return Outcome.success([])
        return Outcome.success([c for c in raw if isinstance(c, dict)])
