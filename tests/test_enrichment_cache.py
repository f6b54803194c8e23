import asyncio
from datetime import datetime, timezone

import httpx
import pytest

from tax_appeal_comps.enrichment import (
    EnrichmentCache,
    MonthlyQuotaCounter,
    SQLiteEnrichmentStore,
    SecondaryProviderClient,
)
from tax_appeal_comps.enrichment.cache import merge_entries
from tax_appeal_comps.errors import InvalidIdentifier
from tax_appeal_comps.models import Enrichment, EnrichmentCacheEntry
from tax_appeal_comps.outcomes import Degraded


PIN = "17042210321008"
OTHER = "17042210321009"
NOW = datetime(2025, 6, 1, tzinfo=timezone.utc)

PROPERTY = {
    "buildingArea": 1720,
    "yearBuilt": 1931,
    "totalBedrooms": 3,
    "totalBathrooms": 2,
    "addressFull": "100 N STATE ST",
    "latitude": 41.88,
    "longitude": -87.63,
}


def _cache(fake_api, store=None, api_key="secret", ceiling=25):
    provider = SecondaryProviderClient(
        fake_api.client(), MonthlyQuotaCounter(ceiling=ceiling), api_key=api_key
    )
    return EnrichmentCache(provider, store, clock=lambda: NOW)


def _serve(fake_api, properties):
    def route(request):
        prop = properties.get(request.url.params.get("parcelId"))
        if prop is None:
            return httpx.Response(404, json={"error": "Property not found"})
        return {"property": prop}

    fake_api.provider["property/parcelId"] = route


def test_one_network_call_per_pin(fake_api):
    _serve(fake_api, {PIN: PROPERTY})
    cache = _cache(fake_api)

    first = asyncio.run(cache.get_enrichment(PIN))
    second = asyncio.run(cache.get_enrichment("17-04-221-032-1008"))

    assert first.ok
    assert first.value.living_area == 1720
    assert second.value == first.value
    assert len(fake_api.provider_calls()) == 1
    stats = cache.stats()
    assert stats["network_calls"] == 1
    assert stats["memory_hits"] == 1
    assert stats["quota"]["used"] == 1


def test_durable_hit_across_instances(fake_api, tmp_path):
    _serve(fake_api, {PIN: PROPERTY})
    path = str(tmp_path / "enrichment.sqlite")

    asyncio.run(_cache(fake_api, SQLiteEnrichmentStore(path)).get_enrichment(PIN))
    fresh = _cache(fake_api, SQLiteEnrichmentStore(path))
    outcome = asyncio.run(fresh.get_enrichment(PIN))

    assert outcome.value.year_built == 1931
    assert len(fake_api.provider_calls()) == 1
    assert fresh.stats()["durable_hits"] == 1


def test_not_found_is_cached(fake_api, tmp_path):
    _serve(fake_api, {})
    path = str(tmp_path / "enrichment.sqlite")
    cache = _cache(fake_api, SQLiteEnrichmentStore(path))

    assert asyncio.run(cache.get_enrichment(PIN)).degraded is Degraded.NOT_FOUND
    assert asyncio.run(cache.get_enrichment(PIN)).degraded is Degraded.NOT_FOUND
    later = _cache(fake_api, SQLiteEnrichmentStore(path))
    assert asyncio.run(later.get_enrichment(PIN)).degraded is Degraded.NOT_FOUND
    assert len(fake_api.provider_calls()) == 1


def test_answer_without_fields_is_no_data(fake_api):
    _serve(fake_api, {PIN: {"addressFull": "100 N STATE ST"}})
    cache = _cache(fake_api)
    assert asyncio.run(cache.get_enrichment(PIN)).degraded is Degraded.NO_DATA
    assert asyncio.run(cache.get_enrichment(PIN)).degraded is Degraded.NO_DATA
    assert len(fake_api.provider_calls()) == 1


def test_unconfigured_provider_is_not_cached_and_not_counted(fake_api):
    cache = _cache(fake_api, api_key=None)
    outcome = asyncio.run(cache.get_enrichment(PIN))
    assert outcome.degraded is Degraded.NOT_CONFIGURED
    assert cache.stats()["network_calls"] == 0
    assert cache.stats()["memory_entries"] == 0


def test_quota_exhaustion_degrades(fake_api):
    _serve(fake_api, {PIN: PROPERTY, OTHER: PROPERTY})
    cache = _cache(fake_api, ceiling=1)
    assert asyncio.run(cache.get_enrichment(PIN)).ok
    assert asyncio.run(cache.get_enrichment(OTHER)).degraded is Degraded.QUOTA_EXHAUSTED
    assert len(fake_api.provider_calls()) == 1


def test_concurrent_requests_share_one_fetch(fake_api):
    _serve(fake_api, {PIN: PROPERTY})
    cache = _cache(fake_api)

    async def both():
        return await asyncio.gather(cache.get_enrichment(PIN), cache.get_enrichment(PIN))

    first, second = asyncio.run(both())
    assert first.value == second.value
    assert len(fake_api.provider_calls()) == 1
    assert cache.stats()["inflight"] == 0


def test_store_outage_falls_back_to_memory(fake_api, caplog):
    _serve(fake_api, {PIN: PROPERTY})
    store = SQLiteEnrichmentStore(":memory:")
    store.close()
    cache = _cache(fake_api, store)

    assert asyncio.run(cache.get_enrichment(PIN)).ok
    assert asyncio.run(cache.get_enrichment(PIN)).ok
    assert len(fake_api.provider_calls()) == 1
    assert cache.stats()["store_errors"] >= 2
    assert "enrichment store" in caplog.text


def test_full_enrichment_backfills_row_without_payload(fake_api, tmp_path):
    _serve(fake_api, {PIN: PROPERTY})
    store = SQLiteEnrichmentStore(str(tmp_path / "e.sqlite"))
    store.upsert(
        EnrichmentCacheEntry(
            pin=PIN,
            enrichment=Enrichment(living_area=1700.0),
            raw_payload=None,
            fetched_at=NOW,
        )
    )
    cache = _cache(fake_api, store)

    assert asyncio.run(cache.get_enrichment(PIN)).value.living_area == 1700.0
    assert fake_api.provider_calls() == []

    full = asyncio.run(cache.get_full_enrichment(PIN))
    assert full.ok
    assert full.value.address_full == "100 N STATE ST"
    assert full.value.coordinates.latitude == 41.88
    assert len(fake_api.provider_calls()) == 1
    assert store.get(PIN).raw_payload["buildingArea"] == 1720

    asyncio.run(cache.get_full_enrichment(PIN))
    assert len(fake_api.provider_calls()) == 1


def test_invalid_pin_raises(fake_api):
    with pytest.raises(InvalidIdentifier):
        asyncio.run(_cache(fake_api).get_enrichment("123"))


def test_merge_entries_prefers_richer_and_backfills():
    sparse = EnrichmentCacheEntry(PIN, Enrichment(bedrooms=3), None, NOW)
    rich = EnrichmentCacheEntry(PIN, Enrichment(bedrooms=2, year_built=1900), {"a": 1}, NOW)
    empty = EnrichmentCacheEntry(PIN, None, {}, NOW)

    assert merge_entries(None, sparse) is sparse
    assert merge_entries(sparse, rich).enrichment == rich.enrichment

    backfilled = merge_entries(sparse, EnrichmentCacheEntry(PIN, None, {"b": 2}, NOW))
    assert backfilled.enrichment == sparse.enrichment
    assert backfilled.raw_payload == {"b": 2}

    # A 404 on backfill leaves the row as it was.
    assert merge_entries(sparse, empty) is None

    assert merge_entries(rich, empty) is None


def test_backfill_not_found_keeps_stored_fields(fake_api, tmp_path):
    _serve(fake_api, {})
    store = SQLiteEnrichmentStore(str(tmp_path / "e.sqlite"))
    store.upsert(EnrichmentCacheEntry(PIN, Enrichment(living_area=1700.0), None, NOW))
    cache = _cache(fake_api, store)

    full = asyncio.run(cache.get_full_enrichment(PIN))
    assert full.ok
    assert full.value.living_area == 1700.0
    assert full.value.address_full is None
    assert store.get(PIN).raw_payload is None

    assert asyncio.run(cache.get_full_enrichment(PIN)).ok
    assert len(fake_api.provider_calls()) == 1


def test_cached_full_enrichment_never_calls_provider(fake_api, tmp_path):
    store = SQLiteEnrichmentStore(str(tmp_path / "e.sqlite"))
    cache = _cache(fake_api, store)
    assert cache.cached_full_enrichment(PIN) is None

    store.upsert(EnrichmentCacheEntry(PIN, Enrichment(living_area=1720.0), PROPERTY, NOW))
    store.upsert(EnrichmentCacheEntry(OTHER, None, {}, NOW))

    found = cache.cached_full_enrichment(PIN)
    assert found.value.address_full == "100 N STATE ST"
    assert found.value.details()["land_area"] is None
    assert cache.cached_full_enrichment(OTHER).degraded is Degraded.NOT_FOUND
    assert fake_api.provider_calls() == []
    assert cache.stats()["durable_hits"] == 2
