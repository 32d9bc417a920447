from __future__ import annotations

import datetime as dt

import pytest

from policytree.core.durations import format_duration, parse_duration
from policytree.core.errors import DurationParseError


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("10s", dt.timedelta(seconds=10)),
        ("20ms", dt.timedelta(milliseconds=20)),
        ("500 us", dt.timedelta(microseconds=500)),
        ("2000ns", dt.timedelta(microseconds=2)),
        ("3 seconds", dt.timedelta(seconds=3)),
        ("1m", dt.timedelta(minutes=1)),
        ("5min", dt.timedelta(minutes=5)),
        ("2h", dt.timedelta(hours=2)),
        ("1 day", dt.timedelta(days=1)),
        ("15Millis", dt.timedelta(milliseconds=15)),
    ],
)
def test_parse_human_units(text: str, expected: dt.timedelta) -> None:
    assert parse_duration(text) == expected


def test_parse_iso_8601() -> None:
    assert parse_duration("PT10S") == dt.timedelta(seconds=10)
    assert parse_duration("P1D") == dt.timedelta(days=1)
    assert parse_duration("pt1m30s") == dt.timedelta(minutes=1, seconds=30)


def test_numbers_are_seconds_and_timedeltas_pass_through() -> None:
    assert parse_duration(5) == dt.timedelta(seconds=5)
    assert parse_duration(0.25) == dt.timedelta(milliseconds=250)
    value = dt.timedelta(seconds=42)
    assert parse_duration(value) is value


@pytest.mark.parametrize("value", ["10xyz", "", "   ", "fast", "10", "1.5s", "-5s", True, -1, [1]])
def test_rejects_unparseable_values(value: object) -> None:
    with pytest.raises(DurationParseError):
        parse_duration(value)


def test_unknown_unit_message_names_the_unit() -> None:
    with pytest.raises(DurationParseError, match="xyz"):
        parse_duration("10xyz")


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (dt.timedelta(0), "0s"),
        (dt.timedelta(seconds=30), "30s"),
        (dt.timedelta(minutes=2), "2m"),
        (dt.timedelta(milliseconds=1500), "1500ms"),
        (dt.timedelta(days=1), "1d"),
        (dt.timedelta(microseconds=7), "7us"),
    ],
)
def test_format_duration_uses_shortest_exact_unit(value: dt.timedelta, expected: str) -> None:
    assert format_duration(value) == expected


@pytest.mark.parametrize("value", ["99999999999d", 10**20, float("inf"), float("nan")])
def test_out_of_range_amounts_are_parse_errors(value: object) -> None:
    with pytest.raises(DurationParseError):
        parse_duration(value)
