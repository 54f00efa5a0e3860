"""Tests for response parse functions."""

from decimal import Decimal

import pytest

from weighscale.models import WeightUnit
from weighscale.parsers import make_regex_parser, parse_weight_response


def test_parses_weight_line():
    reading = parse_weight_response("W: 12.340 kg\r\n")
    assert reading.value == Decimal("12.34")
    assert reading.unit is WeightUnit.KILOGRAM
    assert reading.is_stable
    assert reading.metadata["raw"] == "W: 12.340 kg"


@pytest.mark.parametrize("response, value, unit", [
    ("W:5g", Decimal("5"), WeightUnit.GRAM),
    ("W: -0.5 lb", Decimal("-0.5"), WeightUnit.POUND),
    ("w: 3.25 OZ", Decimal("3.25"), WeightUnit.OUNCE),
    ("W: 120 mg", Decimal("120"), WeightUnit.MILLIGRAM),
    ("W: .5 kg", Decimal("0.5"), WeightUnit.KILOGRAM),
    ("W: -.25 g", Decimal("-0.25"), WeightUnit.GRAM),
])
def test_parses_units(response, value, unit):
    reading = parse_weight_response(response)
    assert reading.value == value
    assert reading.unit is unit


def test_bare_number_is_grams():
    reading = parse_weight_response(" 250.5 \r\n")
    assert reading.value == Decimal("250.5")
    assert reading.unit is WeightUnit.GRAM


@pytest.mark.parametrize("response", ["ERR", "", "W: kg", "NaN", "OVERLOAD"])
def test_unparsable_returns_none(response):
    assert parse_weight_response(response) is None


def test_regex_parser_with_unit_and_stability():
    parse = make_regex_parser(r"(?P<value>[-+]?\s*\d+\.\d+)\s*(?P<unit>kg|g)", unstable_marker="US")
    stable = parse("ST,GS,+  1.250kg")
    assert stable.value == Decimal("1.250")
    assert stable.unit is WeightUnit.KILOGRAM
    assert stable.is_stable

    unstable = parse("US,GS,+  1.300kg")
    assert not unstable.is_stable
    assert parse("nothing here") is None


def test_regex_parser_default_unit():
    parse = make_regex_parser(r"N\s+(?P<value>\d+\.\d+)", default_unit=WeightUnit.POUND)
    reading = parse("N   10.50")
    assert reading.unit is WeightUnit.POUND
    assert reading.value == Decimal("10.50")


def test_regex_parser_needs_value_group():
    with pytest.raises(ValueError):
        make_regex_parser(r"\d+")
