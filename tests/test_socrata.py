from tax_appeal_comps.registry import socrata


def test_build_params_clamps_limit_and_orders():
    params = socrata.build_params("pin='1'", limit=0, order="year DESC")
    assert params == {"$where": "pin='1'", "$limit": "1", "$order": "year DESC"}
    assert socrata.build_params("x", limit=10**9)["$limit"] == str(socrata.MAX_LIMIT)
    assert "$order" not in socrata.build_params("x")


def test_literals_are_single_quote_escaped():
    assert socrata.eq("property_address", "O'HARE") == "property_address='O''HARE'"
    assert socrata.contains_ci("property_city", "o'x") == (
        "upper(property_city) like upper('%o''x%')"
    )


def test_all_of_skips_empty_clauses():
    assert socrata.all_of(["a='1'", "", "b='2'"]) == "a='1' AND b='2'"


def test_dataset_url_uses_catalog_ids():
    url = socrata.dataset_url("https://datacatalog.cookcountyil.gov/resource/", "parcel_sales")
    assert url == "https://datacatalog.cookcountyil.gov/resource/wvhk-k5uv.json"


def test_first_tries_aliases_in_order():
    record = {"prop_address_full": "", "property_address": "1 MAIN ST"}
    assert socrata.first(record, "prop_address_full", "property_address") == "1 MAIN ST"
    assert socrata.first(None, "x") is None


def test_value_parsers():
    assert socrata.as_float("$1,250.50") == 1250.5
    assert socrata.as_float("nan") is None
    assert socrata.as_float(True) is None
    assert socrata.as_int("1925.0") == 1925
    assert socrata.as_positive_int("0") is None
    assert socrata.as_str("  ") is None
    assert socrata.as_date("2023-05-01T00:00:00.000") == "2023-05-01"
    assert socrata.as_date("May 2023") is None


def test_records_drops_non_objects():
    assert socrata.records([{"a": 1}, "x", None]) == [{"a": 1}]
    assert socrata.records({"error": True}) == []
