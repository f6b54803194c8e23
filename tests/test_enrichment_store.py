from datetime import datetime, timezone

import pytest

from tax_appeal_comps.enrichment import SQLiteEnrichmentStore
from tax_appeal_comps.errors import StoreUnavailable
from tax_appeal_comps.models import Enrichment, EnrichmentCacheEntry


PIN = "17042210321008"
FETCHED = datetime(2025, 5, 1, 12, 30, tzinfo=timezone.utc)


def _entry(enrichment=None, raw_payload=None, pin=PIN):
    return EnrichmentCacheEntry(
        pin=pin, enrichment=enrichment, raw_payload=raw_payload, fetched_at=FETCHED
    )


def test_round_trip_survives_reopen(tmp_path):
    path = tmp_path / "cache" / "enrichment.sqlite"
    store = SQLiteEnrichmentStore(str(path))
    store.upsert(
        _entry(
            Enrichment(living_area=1500.0, year_built=1920, bedrooms=3, bathrooms=1.5),
            {"buildingArea": 1500, "yearBuilt": 1920},
        )
    )
    store.close()

    reopened = SQLiteEnrichmentStore(str(path))
    entry = reopened.get(PIN)
    assert entry.enrichment.living_area == 1500.0
    assert entry.enrichment.bathrooms == 1.5
    assert entry.raw_payload == {"buildingArea": 1500, "yearBuilt": 1920}
    assert entry.fetched_at == FETCHED
    reopened.close()


def test_has_data_distinguishes_empty_answer(tmp_path):
    store = SQLiteEnrichmentStore(str(tmp_path / "e.sqlite"))
    store.upsert(_entry(None, {}))
    store.upsert(_entry(Enrichment(), None, pin="17042210321009"))

    not_found = store.get(PIN)
    assert not_found.enrichment is None
    assert not_found.raw_payload == {}
    assert not_found.has_full_payload

    all_null = store.get("17042210321009")
    assert all_null.enrichment == Enrichment()
    assert not all_null.has_full_payload

    assert store.summary() == {"entries": 2, "with_data": 1, "with_payload": 1}


def test_upsert_replaces_row(tmp_path):
    store = SQLiteEnrichmentStore(str(tmp_path / "e.sqlite"))
    store.upsert(_entry(Enrichment(bedrooms=2)))
    store.upsert(_entry(Enrichment(bedrooms=4), {"totalBedrooms": 4}))
    assert store.get(PIN).enrichment.bedrooms == 4
    assert store.summary()["entries"] == 1


def test_missing_pin_is_none():
    store = SQLiteEnrichmentStore(":memory:")
    assert store.get(PIN) is None


def test_closed_store_is_unavailable():
    store = SQLiteEnrichmentStore(":memory:")
    store.close()
    with pytest.raises(StoreUnavailable):
        store.get(PIN)
    with pytest.raises(StoreUnavailable):
        store.upsert(_entry())


def test_unopenable_path_is_unavailable(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("not a directory")
    with pytest.raises(StoreUnavailable):
        SQLiteEnrichmentStore(str(blocker / "nested" / "e.sqlite"))
