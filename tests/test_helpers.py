"""
Tests for the tolerant conversion helpers.
"""
import pytest

from peakplay.utils.helpers import parse_count, safe_int, safe_str, safe_strip


@pytest.mark.parametrize("raw,expected", [
    ("1,234,567", 1234567),
    (" 42 ", 42),
    ("", 0),
    (None, 0),
    ("NEW", 0),
    ("-3", -3),
])
def test_parse_count(raw, expected):
    assert parse_count(raw) == expected


def test_safe_int_defaults():
    assert safe_int("7") == 7
    assert safe_int(3.9) == 3
    assert safe_int(True) == 0
    assert safe_int("x", default=-1) == -1


def test_safe_str_and_strip():
    assert safe_str(None) == ""
    assert safe_str(5) == "5"
    assert safe_strip("  Espresso \n") == "Espresso"
    assert safe_strip(None) == ""
