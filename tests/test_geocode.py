import asyncio

import pytest

from tax_appeal_comps.enrichment import MonthlyQuotaCounter, SecondaryProviderClient
from tax_appeal_comps.geocode import GeocodeResolver, parse_street, parse_unit
from tax_appeal_comps.outcomes import Degraded


@pytest.mark.parametrize(
    "address, street, unit",
    [
        ("123 MAIN ST APT 2B", "123 MAIN ST", "2B"),
        ("123 Main St #4, Chicago, IL 60601", "123 Main St", "4"),
        ("55 E Erie St Unit 1203", "55 E Erie St", "1203"),
        ("100 N State St, Chicago, IL 60602-1234", "100 N State St", None),
        ("1 W Madison St", "1 W Madison St", None),
    ],
)
def test_street_and_unit_parsing(address, street, unit):
    assert parse_street(address) == street
    assert parse_unit(address) == unit


def test_blank_address():
    assert parse_street("   ") == ""
    assert parse_unit(None) is None


def _resolver(fake_api, api_key="secret"):
    provider = SecondaryProviderClient(
        fake_api.client(), MonthlyQuotaCounter(), api_key=api_key
    )
    return GeocodeResolver(provider)


def test_resolve_strips_address_and_returns_point(fake_api):
    fake_api.provider["property/address"] = {
        "property": {"latitude": 41.8781, "longitude": -87.6298}
    }
    outcome = asyncio.run(
        _resolver(fake_api).resolve("123 Main St #4, Chicago, IL 60601")
    )
    assert outcome.ok
    assert outcome.value.latitude == 41.8781
    request = fake_api.provider_calls("property/address")[0]
    assert request.url.params["address"] == "123 Main St"
    assert request.url.params["unitNumberStripped"] == "4"
    assert request.url.params["state"] == "IL"


def test_resolve_without_coordinates_is_no_data(fake_api):
    fake_api.provider["property/address"] = {"property": {"buildingArea": 1200}}
    outcome = asyncio.run(_resolver(fake_api).resolve("1 W Madison St"))
    assert outcome.degraded is Degraded.NO_DATA


def test_resolve_empty_address_skips_provider(fake_api):
    outcome = asyncio.run(_resolver(fake_api).resolve(""))
    assert outcome.degraded is Degraded.NOT_FOUND
    assert fake_api.calls == []


def test_resolve_passes_through_degradation(fake_api):
    outcome = asyncio.run(_resolver(fake_api, api_key=None).resolve("1 W Madison St"))
    assert outcome.degraded is Degraded.NOT_CONFIGURED

    missing = asyncio.run(_resolver(fake_api).resolve("1 W Madison St"))
    assert missing.degraded is Degraded.NOT_FOUND
