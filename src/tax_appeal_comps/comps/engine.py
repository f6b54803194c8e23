"""Comparable discovery: registry sales, optionally widened by the provider.

The registry is authoritative: if its sales query fails the whole call fails.
Everything the provider contributes (radius comparables, field enrichment,
geocoding) is additive and degrades to "registry only" with a log line.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

import httpx

from ..enrichment.cache import EnrichmentCache
from ..enrichment.parsing import parse_comparable
from ..enrichment.provider import SecondaryProviderClient
from ..enrichment.quota import MonthlyQuotaCounter
from ..enrichment.store import SQLiteEnrichmentStore
from ..errors import FatalSourceFailure, StoreUnavailable, TransientFailure
from ..geocode import GeocodeResolver
from ..http_client import build_async_client, gather_in_batches
from ..models import (
    ComparableCandidate,
    Coordinates,
    FullEnrichment,
    MergedComparable,
    ParcelLocation,
    SubjectProperty,
)
from ..outcomes import Degraded, Outcome
from ..registry.client import RegistryClient, SalesTolerances
from ..settings import Settings, get_settings
from . import merge


logger = logging.getLogger("tac.comps")

_EXPECTED = (Degraded.NOT_CONFIGURED, Degraded.QUOTA_EXHAUSTED, Degraded.NOT_FOUND)


class ComparableEngine:
    def __init__(
        self,
        registry: RegistryClient,
        cache: Optional[EnrichmentCache] = None,
        geocoder: Optional[GeocodeResolver] = None,
        *,
        batch_size: int = 5,
        max_enrichment_lookups: int = 15,
        secondary_radius_miles: float = 1.0,
        secondary_time_frame_months: int = 18,
        secondary_max_results: int = 25,
        store: Optional[SQLiteEnrichmentStore] = None,
        closers: Sequence[Callable[[], Awaitable[None]]] = (),
    ) -> None:
        self.registry = registry
        self.cache = cache
        self.geocoder = geocoder
        self.store = store
        self._batch_size = max(1, int(batch_size))
        self._max_enrichment_lookups = max(0, int(max_enrichment_lookups))
        self._radius_miles = secondary_radius_miles
        self._time_frame_months = secondary_time_frame_months
        self._max_results = secondary_max_results
        self._closers = list(closers)

    @property
    def provider(self) -> Optional[SecondaryProviderClient]:
        return self.cache.provider if self.cache is not None else None

    @property
    def quota(self) -> Optional[MonthlyQuotaCounter]:
        provider = self.provider
        return provider.quota if provider is not None else None

    async def aclose(self) -> None:
        for close in self._closers:
            await close()
        self._closers = []
        if self.store is not None:
            self.store.close()

    async def __aenter__(self) -> "ComparableEngine":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def fetch_subject(self, pin: str) -> Optional[SubjectProperty]:
        try:
            return await self.registry.fetch_parcel(pin)
        except TransientFailure as exc:
            logger.error(
                "registry failure", extra={"pin": pin, "source": exc.source}
            )
            raise FatalSourceFailure(exc.source, exc.detail) from exc

    async def search(
        self, address: str, city: Optional[str] = None, limit: int = 10
    ) -> List[ParcelLocation]:
        try:
            return await self.registry.search_by_address(address, city, limit)
        except TransientFailure as exc:
            logger.error("registry failure", extra={"source": exc.source})
            raise FatalSourceFailure(exc.source, exc.detail) from exc

    async def _primary_candidates(
        self,
        subject: SubjectProperty,
        tolerances: Optional[SalesTolerances],
        limit: int,
    ) -> List[ComparableCandidate]:
        try:
            sales = await self.registry.fetch_comparable_sales(subject, tolerances, limit)
        except TransientFailure as exc:
            logger.error(
                "registry failure", extra={"pin": subject.pin, "source": exc.source}
            )
            raise FatalSourceFailure(exc.source, exc.detail) from exc
        # Sales come newest first, so the first row per PIN is its latest sale.
        return merge.dedupe(sales, exclude=[subject.pin])

    async def _subject_coordinates(
        self, subject: SubjectProperty, allow_geocode: bool
    ) -> Optional[Coordinates]:
        if subject.coordinates is not None:
            return subject.coordinates
        try:
            location = await self.registry.fetch_location(subject.pin)
        except TransientFailure as exc:
            logger.warning(
                "subject location lookup failed",
                extra={"pin": subject.pin, "source": exc.source, "reason": exc.detail},
            )
            location = None
        if location is not None and location.coordinates is not None:
            return location.coordinates
        if not allow_geocode or self.geocoder is None or not subject.address:
            return None
        outcome = await self.geocoder.resolve(
            subject.address,
            state=subject.state,
            city=subject.city or None,
            county=subject.county or None,
        )
        return outcome.value if outcome.ok else None

    async def _secondary_candidates(
        self, coordinates: Optional[Coordinates]
    ) -> List[ComparableCandidate]:
        provider = self.provider
        if provider is None:
            return []
        if coordinates is None:
            logger.info("no subject coordinates; skipping provider comparables")
            return []
        outcome = await provider.search_comparables(
            coordinates.latitude,
            coordinates.longitude,
            radius_miles=self._radius_miles,
            time_frame_months=self._time_frame_months,
            max_results=self._max_results,
        )
        if not outcome.ok:
            level = logging.INFO if outcome.degraded in _EXPECTED else logging.WARNING
            logger.log(
                level,
                "provider comparables unavailable",
                extra={"reason": outcome.degraded.value, "detail": outcome.detail},
            )
            return []
        parsed: List[ComparableCandidate] = []
        for raw in outcome.value:
            candidate = parse_comparable(raw)
            if candidate is not None:
                parsed.append(candidate)
        return parsed

    async def _enrichments(
        self, candidates: Sequence[ComparableCandidate]
    ) -> Dict[str, FullEnrichment]:
        """Provider data per PIN: cached answers for every candidate, plus
        network lookups (capped) for candidates missing a field."""

        if self.cache is None:
            return {}
        outcomes: Dict[str, Outcome[FullEnrichment]] = {}
        missing: List[str] = []
        for candidate in candidates:
            cached = self.cache.cached_full_enrichment(candidate.pin)
            if cached is not None:
                outcomes[candidate.pin] = cached
            elif merge.needs_enrichment(candidate):
                missing.append(candidate.pin)
        fetched = await gather_in_batches(
            missing[: self._max_enrichment_lookups],
            self.cache.get_full_enrichment,
            self._batch_size,
        )
        outcomes.update(fetched)

        found: Dict[str, FullEnrichment] = {}
        for pin, outcome in outcomes.items():
            if outcome.ok:
                found[pin] = outcome.value
            else:
                logger.debug(
                    "no enrichment", extra={"pin": pin, "reason": outcome.degraded.value}
                )
        return found

    async def find_comparables(
        self,
        subject: SubjectProperty,
        limit: int = 20,
        include_secondary_source: bool = False,
        tolerances: Optional[SalesTolerances] = None,
    ) -> List[MergedComparable]:
        primary = await self._primary_candidates(subject, tolerances, limit)

        locations = await self.registry.fetch_locations([c.pin for c in primary])
        primary = [merge.with_location(c, locations.get(c.pin)) for c in primary]

        subject_coordinates = await self._subject_coordinates(
            subject, allow_geocode=include_secondary_source
        )

        secondary: List[ComparableCandidate] = []
        if include_secondary_source:
            secondary = await self._secondary_candidates(subject_coordinates)
            secondary = merge.dedupe(
                secondary, exclude=[subject.pin] + [c.pin for c in primary]
            )

        enrichments = await self._enrichments(primary)

        merged = [
            merge.merge_candidate(c, subject_coordinates, enrichments.get(c.pin))
            for c in primary
        ]
        merged.extend(merge.merge_candidate(c, subject_coordinates) for c in secondary)
        logger.info(
            "comparables assembled",
            extra={
                "pin": subject.pin,
                "primary": len(primary),
                "secondary": len(secondary),
                "enriched": len(enrichments),
            },
        )
        return merged


def build_engine(
    settings: Optional[Settings] = None,
    *,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    store: Optional[SQLiteEnrichmentStore] = None,
) -> ComparableEngine:
    """Wire an engine from settings; ``transport`` lets tests fake HTTP."""

    settings = settings or get_settings()
    registry_http = build_async_client(settings.registry_timeout_s, transport)
    provider_http = build_async_client(settings.provider_timeout_s, transport)

    registry = RegistryClient(
        registry_http,
        base_url=settings.registry_base_url,
        app_token=settings.registry_app_token,
        batch_size=settings.batch_size,
    )
    provider = SecondaryProviderClient(
        provider_http,
        MonthlyQuotaCounter(settings.monthly_quota),
        api_key=settings.provider_api_key,
        base_url=settings.provider_base_url,
        state=settings.provider_state,
        county=settings.provider_county,
    )
    if store is None:
        try:
            store = SQLiteEnrichmentStore(settings.cache_path)
        except StoreUnavailable as exc:
            logger.warning(
                "enrichment store unavailable; memory only", extra={"reason": str(exc)}
            )
    return ComparableEngine(
        registry,
        EnrichmentCache(provider, store),
        GeocodeResolver(provider),
        batch_size=settings.batch_size,
        max_enrichment_lookups=settings.max_enrichment_lookups,
        secondary_radius_miles=settings.secondary_radius_miles,
        secondary_time_frame_months=settings.secondary_time_frame_months,
        secondary_max_results=settings.secondary_max_results,
        store=store,
        closers=[registry_http.aclose, provider_http.aclose],
    )
