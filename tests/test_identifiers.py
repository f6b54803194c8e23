import pytest

from tax_appeal_comps import identifiers
from tax_appeal_comps.errors import InvalidIdentifier


def test_normalize_strips_everything_but_digits():
    assert identifiers.normalize("17-04-221-032-1008") == "17042210321008"
    assert identifiers.normalize(" 17 04 221 032 1008 ") == "17042210321008"
    assert identifiers.normalize(None) == ""


def test_is_valid_requires_exactly_fourteen_digits():
    assert identifiers.is_valid("17-04-221-032-1008")
    assert not identifiers.is_valid("17-04-221-032")
    assert not identifiers.is_valid("170422103210081")
    assert not identifiers.is_valid("")
    assert not identifiers.is_valid("abc")


def test_display_formats_valid_pins_and_passes_others_through():
    assert identifiers.display("17042210321008") == "17-04-221-032-1008"
    assert identifiers.display("1704") == "1704"
    assert identifiers.display("not a pin") == "not a pin"


@pytest.mark.parametrize(
    "raw",
    ["17042210321008", "17-04-221-032-1008", "00000000000001", "99 99 999 999 9999"],
)
def test_display_round_trip_is_stable(raw):
    pin = identifiers.normalize(raw)
    assert identifiers.normalize(identifiers.display(pin)) == pin


def test_require_valid_returns_normalized_pin():
    assert identifiers.require_valid("17-04-221-032-1008") == "17042210321008"


def test_require_valid_rejects_malformed_pin():
    with pytest.raises(InvalidIdentifier) as info:
        identifiers.require_valid("17-04-221")
    assert "14 digits" in str(info.value)
    assert isinstance(info.value, ValueError)
