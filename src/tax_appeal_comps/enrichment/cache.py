"""Two-tier, fetch-once cache in front of the Secondary Provider.

Lookups go process memory, then the durable store, then the network. Once a
PIN has an entry (including a "provider has nothing" entry) it is never
fetched again, with one exception: a durable row written without the raw
payload is re-fetched once by ``get_full_enrichment`` to backfill it.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Set

from .. import identifiers
from ..errors import StoreUnavailable
from ..models import Enrichment, EnrichmentCacheEntry, FullEnrichment
from ..outcomes import Degraded, Outcome
from .parsing import parse_enrichment, parse_full_enrichment
from .provider import SecondaryProviderClient
from .store import EnrichmentStore


logger = logging.getLogger("tac.enrichment")

# Outcomes that never reached the network.
_NO_CALL = (Degraded.NOT_CONFIGURED, Degraded.QUOTA_EXHAUSTED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _field_count(entry: Optional[EnrichmentCacheEntry]) -> int:
    if entry is None or entry.enrichment is None:
        return 0
    return entry.enrichment.field_count()


def merge_entries(
    old: Optional[EnrichmentCacheEntry], new: EnrichmentCacheEntry
) -> Optional[EnrichmentCacheEntry]:
    """The entry to persist after a fetch, or None to keep ``old`` as is.

    A fetch replaces the stored fields only when it is richer, and adds the
    raw payload when the stored row lacks one. An empty payload (the provider
    no longer knows the PIN) never overwrites a row that has fields.
    """

    if old is None:
        return new
    richer = _field_count(new) > _field_count(old)
    backfill = old.raw_payload is None and bool(new.raw_payload)
    if not richer and not backfill:
        return None
    return EnrichmentCacheEntry(
        pin=new.pin,
        enrichment=new.enrichment if richer else old.enrichment,
        raw_payload=new.raw_payload if new.raw_payload else old.raw_payload,
        fetched_at=new.fetched_at,
    )


def _empty_reason(entry: EnrichmentCacheEntry) -> Degraded:
    return Degraded.NOT_FOUND if entry.raw_payload == {} else Degraded.NO_DATA


def _full_from_entry(entry: EnrichmentCacheEntry) -> Optional[FullEnrichment]:
    if entry.raw_payload:
        full = parse_full_enrichment(entry.raw_payload)
        if full is not None:
            return full
    if entry.enrichment is None:
        return None
    # Without a usable payload only the four comparable fields are known.
    return FullEnrichment(**entry.enrichment.to_dict())


class EnrichmentCache:
    def __init__(
        self,
        provider: SecondaryProviderClient,
        store: Optional[EnrichmentStore] = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._provider = provider
        self._store = store
        self._clock = clock
        self._memory: Dict[str, EnrichmentCacheEntry] = {}
        self._memory_full: Dict[str, FullEnrichment] = {}
        self._backfill_tried: Set[str] = set()
        self._inflight: Dict[str, "asyncio.Future[Outcome[EnrichmentCacheEntry]]"] = {}
        self._stats = {
            "memory_hits": 0,
            "durable_hits": 0,
            "network_calls": 0,
            "store_errors": 0,
        }

    @property
    def provider(self) -> SecondaryProviderClient:
        return self._provider

    def _read_durable(self, pin: str) -> Optional[EnrichmentCacheEntry]:
        if self._store is None:
            return None
        try:
            return self._store.get(pin)
        except StoreUnavailable as exc:
            self._stats["store_errors"] += 1
            logger.warning(
                "enrichment store read failed",
                extra={"pin": pin, "reason": str(exc)},
            )
            return None

    def _write_durable(self, entry: EnrichmentCacheEntry) -> None:
        if self._store is None:
            return
        try:
            self._store.upsert(entry)
        except StoreUnavailable as exc:
            self._stats["store_errors"] += 1
            logger.warning(
                "enrichment store write failed",
                extra={"pin": entry.pin, "reason": str(exc)},
            )

    def _cached_entry(self, pin: str) -> Optional[EnrichmentCacheEntry]:
        entry = self._memory.get(pin)
        if entry is not None:
            self._stats["memory_hits"] += 1
            return entry
        entry = self._read_durable(pin)
        if entry is not None:
            self._stats["durable_hits"] += 1
            self._memory[pin] = entry
        return entry

    def _remember(self, entry: EnrichmentCacheEntry) -> None:
        self._memory[entry.pin] = entry
        if entry.raw_payload:
            full = parse_full_enrichment(entry.raw_payload)
            if full is not None:
                self._memory_full[entry.pin] = full

    async def _fetch(self, pin: str) -> Outcome[EnrichmentCacheEntry]:
        outcome = await self._provider.lookup_parcel(pin)
        if outcome.degraded not in _NO_CALL:
            self._stats["network_calls"] += 1

        if outcome.ok:
            payload: Dict[str, Any] = outcome.value
        elif outcome.degraded is Degraded.NOT_FOUND:
            payload = {}
        else:
            logger.info(
                "enrichment unavailable",
                extra={"pin": pin, "reason": outcome.degraded.value, "detail": outcome.detail},
            )
            return Outcome.unavailable(outcome.degraded, outcome.detail)

        fetched = EnrichmentCacheEntry(
            pin=pin,
            enrichment=parse_enrichment(payload),
            raw_payload=payload,
            fetched_at=self._clock(),
        )
        existing = self._memory.get(pin) or self._read_durable(pin)
        merged = merge_entries(existing, fetched)
        if merged is None:
            merged = existing
        else:
            self._write_durable(merged)
        self._remember(merged)
        return Outcome.success(merged)

    async def _fetch_shared(self, pin: str) -> Outcome[EnrichmentCacheEntry]:
        task = self._inflight.get(pin)
        if task is None:
            task = asyncio.ensure_future(self._fetch(pin))
            self._inflight[pin] = task
            task.add_done_callback(lambda _done, key=pin: self._inflight.pop(key, None))
        return await asyncio.shield(task)

    async def get_enrichment(self, pin: str) -> Outcome[Enrichment]:
        """Parsed comparable fields for ``pin``; at most one network call ever."""

        normalized = identifiers.require_valid(pin)
        entry = self._cached_entry(normalized)
        if entry is None:
            fetched = await self._fetch_shared(normalized)
            if not fetched.ok:
                return Outcome.unavailable(fetched.degraded, fetched.detail)
            entry = fetched.value
        if entry.enrichment is None:
            return Outcome.unavailable(_empty_reason(entry))
        return Outcome.success(entry.enrichment)

    def _full_outcome(self, entry: EnrichmentCacheEntry) -> Outcome[FullEnrichment]:
        full = _full_from_entry(entry)
        if full is None:
            return Outcome.unavailable(_empty_reason(entry))
        if entry.raw_payload:
            self._memory_full[entry.pin] = full
        return Outcome.success(full)

    def cached_full_enrichment(self, pin: str) -> Optional[Outcome[FullEnrichment]]:
        """What memory or the durable store already holds for ``pin``.

        Never touches the network or the quota. None means no tier has an
        entry yet.
        """

        normalized = identifiers.require_valid(pin)
        full = self._memory_full.get(normalized)
        if full is not None:
            self._stats["memory_hits"] += 1
            return Outcome.success(full)
        entry = self._cached_entry(normalized)
        if entry is None:
            return None
        return self._full_outcome(entry)

    async def get_full_enrichment(self, pin: str) -> Outcome[FullEnrichment]:
        normalized = identifiers.require_valid(pin)
        full = self._memory_full.get(normalized)
        if full is not None:
            self._stats["memory_hits"] += 1
            return Outcome.success(full)

        entry = self._cached_entry(normalized)
        if entry is None:
            fetched = await self._fetch_shared(normalized)
            if not fetched.ok:
                return Outcome.unavailable(fetched.degraded, fetched.detail)
            entry = fetched.value
        elif not entry.has_full_payload and normalized not in self._backfill_tried:
            # One backfill attempt per PIN per process.
            self._backfill_tried.add(normalized)
            logger.info("backfilling raw payload", extra={"pin": normalized})
            fetched = await self._fetch_shared(normalized)
            if fetched.ok:
                entry = fetched.value
            else:
                logger.info(
                    "backfill skipped",
                    extra={"pin": normalized, "reason": fetched.degraded.value},
                )
        return self._full_outcome(entry)

    def stats(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = dict(self._stats)
        payload["memory_entries"] = len(self._memory)
        payload["inflight"] = len(self._inflight)
        payload["quota"] = self._provider.quota.snapshot()
        return payload
