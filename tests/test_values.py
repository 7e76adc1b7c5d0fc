from decimal import Decimal

import pytest

from core.values import (
    Classification,
    Empty,
    Numeric,
    Text,
    compare_values,
    format_value,
    normalize_unit,
    parse_value,
    value_to_dict,
)


@pytest.mark.parametrize("raw, magnitude, unit", [
    ("26.0 psi", "26.0", "psi"),
    ("-0.10 deg", "-0.10", "deg"),
    ("+12.2 deg", "12.2", "deg"),
    ("54%", "54", "%"),
    ("1,250 lbs", "1250", "lbs"),
    (".5 in", ".5", "in"),
    ("  3 clicks  ", "3", "clicks"),
    ("42", "42", None),
    ("450 lbs/in", "450", "lbs/in"),
    ("119F", "119", "F"),
])
def test_parse_numeric(raw, magnitude, unit):
    value = parse_value(raw)

    assert isinstance(value, Numeric)
    assert value.magnitude == Decimal(magnitude)
    assert value.unit == unit
    assert str(value) == raw.strip()


@pytest.mark.parametrize("raw", ["", "   ", "-", "—", "–", "N/A", "n/a", "NA", "none", None])
def test_parse_placeholders_are_empty(raw):
    assert isinstance(parse_value(raw), Empty)


@pytest.mark.parametrize("raw", ["High", "Blue", "3/8", "1.2.3", "12 deg left", "ARB 3"])
def test_parse_text(raw):
    value = parse_value(raw)

    assert isinstance(value, Text)
    assert value.text == raw


def test_unit_aliases_are_normalized():
    assert parse_value("2.5 degrees").unit == "deg"
    assert parse_value("2.5°").unit == "deg"
    assert parse_value("300 lb/in").unit == "lbs/in"
    assert parse_value("300 lbf/in", {"lbf/in": "lbs/in"}).unit == "lbs/in"
    assert normalize_unit(None) is None
    assert normalize_unit("kPa") == "kPa"


def test_numeric_equality_ignores_raw_text():
    assert parse_value("26.0 psi") == parse_value("26.00 psi")
    assert parse_value("1,250 lbs") == parse_value("1250 lbs")


@pytest.mark.parametrize("a, b", [
    ("-0.10 deg", "0.05 deg"),
    ("26.0 psi", "26.5 psi"),
    ("54%", "55%"),
    ("-3", "7"),
    ("1,000 lbs", "1,000.5 lbs"),
])
def test_compare_is_antisymmetric(a, b):
    left, right = parse_value(a), parse_value(b)

    assert compare_values(left, right) is Classification.INCREASED
    assert compare_values(right, left) is Classification.DECREASED
    assert compare_values(right, left) is compare_values(left, right).inverse()
    assert compare_values(left, left) is Classification.UNCHANGED
    assert compare_values(right, right) is Classification.UNCHANGED


def test_compare_within_epsilon_is_unchanged():
    a = Numeric(Decimal("1.0000000000"), "in")
    b = Numeric(Decimal("1.0000000001"), "in")

    assert compare_values(a, b) is Classification.UNCHANGED
    assert compare_values(a, b, epsilon=Decimal("0")) is Classification.INCREASED


def test_compare_differing_units_is_incomparable():
    assert compare_values(parse_value("450 lbs/in"), parse_value("450 N/mm")) is Classification.INCOMPARABLE
    assert compare_values(parse_value("450"), parse_value("450 lbs/in")) is Classification.INCOMPARABLE


def test_compare_text_and_empty():
    assert compare_values(Text("High"), Text("High")) is Classification.UNCHANGED
    assert compare_values(Text("High"), Text("Low")) is Classification.INCOMPARABLE
    assert compare_values(Text("5"), parse_value("5")) is Classification.INCOMPARABLE
    assert compare_values(Empty(), Empty("N/A")) is Classification.UNCHANGED
    assert compare_values(Empty(), parse_value("5 deg")) is Classification.INCOMPARABLE
    assert compare_values(Text("High"), Empty()) is Classification.INCOMPARABLE


def test_classification_inverse():
    assert Classification.INCREASED.inverse() is Classification.DECREASED
    assert Classification.DECREASED.inverse() is Classification.INCREASED
    assert Classification.UNCHANGED.inverse() is Classification.UNCHANGED
    assert Classification.INCOMPARABLE.inverse() is Classification.INCOMPARABLE


def test_format_and_serialize():
    assert format_value(None) == "(absent)"
    assert format_value(Empty("—")) == "(empty)"
    assert format_value(parse_value("26.0 psi")) == "26.0 psi"
    assert str(Numeric(Decimal("1.5"), "in")) == "1.5 in"

    assert value_to_dict(None) is None
    assert value_to_dict(parse_value("-0.10 deg")) == {
        "kind": "numeric",
        "magnitude": "-0.10",
        "unit": "deg",
        "display": "-0.10 deg",
    }
    assert value_to_dict(Text("High")) == {"kind": "text", "display": "High"}
    assert value_to_dict(Empty("N/A")) == {"kind": "empty", "display": "N/A"}
