import asyncio

from tax_appeal_comps.registry.characteristics import (
    DEFAULT_STRATEGIES,
    MULTI_FAMILY,
    SINGLE_FAMILY,
    lookup_characteristics,
    parse_characteristics,
)


class RecordingQuery:
    def __init__(self, rows_by_dataset):
        self.rows_by_dataset = rows_by_dataset
        self.calls = []

    async def __call__(self, dataset, where, limit, order):
        self.calls.append((dataset, where, limit, order))
        return self.rows_by_dataset.get(dataset, [])


def test_strategies_are_single_then_multi_family():
    assert [s.name for s in DEFAULT_STRATEGIES] == ["single_family", "multi_family"]


def test_single_family_answer_wins_without_multi_family_query():
    query = RecordingQuery({"single_family_chars": [{"bldg_sf": "1400", "yrblt": "1925"}]})
    chars = asyncio.run(lookup_characteristics(query, "17042210321008"))
    assert chars.schema == "single_family"
    assert chars.living_area == 1400
    assert [c[0] for c in query.calls] == ["single_family_chars"]
    assert query.calls[0][1:] == ("pin='17042210321008'", 1, "tax_year DESC")


def test_falls_back_to_multi_family():
    query = RecordingQuery({"multi_family_chars": [{"char_bldg_sf": "3200", "char_beds": "6"}]})
    chars = asyncio.run(lookup_characteristics(query, "17042210321008"))
    assert chars.schema == "multi_family"
    assert chars.living_area == 3200
    assert chars.bedrooms == 6
    assert [c[0] for c in query.calls] == ["single_family_chars", "multi_family_chars"]


def test_no_dataset_answers():
    query = RecordingQuery({})
    assert asyncio.run(lookup_characteristics(query, "17042210321008")) is None


def test_custom_strategy_order():
    query = RecordingQuery({"multi_family_chars": [{"bldg_sf": "900"}]})
    chars = asyncio.run(
        lookup_characteristics(query, "17042210321008", (MULTI_FAMILY, SINGLE_FAMILY))
    )
    assert chars.schema == "multi_family"
    assert len(query.calls) == 1


def test_bathrooms_count_half_baths_as_half():
    chars = parse_characteristics("single_family", {"fbath": "2", "hbath": "1"})
    assert chars.bathrooms == 2.5
    assert parse_characteristics("single_family", {}).bathrooms is None
    assert parse_characteristics("single_family", {"fbath": "0"}).bathrooms is None


def test_parse_tries_aliases_and_keeps_missing_as_none():
    chars = parse_characteristics(
        "single_family",
        {
            "char_bldg_sf": "1,450",
            "char_land_sf": "3125",
            "char_yrblt": "1918",
            "class": "211",
            "condition_desirability_and_utility": "AVERAGE",
            "ext_wall": "Masonry",
            "tot_val": "31000",
        },
    )
    assert chars.living_area == 1450
    assert chars.land_area == 3125
    assert chars.year_built == 1918
    assert chars.building_class == "211"
    assert chars.construction_quality == "AVERAGE"
    assert chars.exterior_wall == "Masonry"
    assert chars.assessed_total == 31000
    assert chars.bedrooms is None
    assert chars.garage is None
