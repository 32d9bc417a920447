"""
Duration parsing for behavior documents.

Accepts short human units (``"10s"``, ``"500ms"``, ``"1m"``) and ISO-8601
durations (``"PT10S"``). Plain numbers are read as seconds.
"""

from __future__ import annotations

import datetime as dt
import re

from pydantic import TypeAdapter, ValidationError

from .errors import DurationParseError

_HUMAN_DURATION = re.compile(r"^(\d+)\s*([a-zA-Z]+)$")
_ISO_ADAPTER = TypeAdapter(dt.timedelta)

# Microseconds per unit. timedelta has microsecond resolution, so ns values round.
_UNIT_MICROS: dict[str, float] = {}
for _names, _micros in (
    (("ns", "nanos", "nanosecond", "nanoseconds"), 0.001),
    (("us", "micros", "microsecond", "microseconds"), 1),
    (("ms", "millis", "millisecond", "milliseconds"), 1_000),
    (("s", "sec", "second", "seconds"), 1_000_000),
    (("m", "min", "minute", "minutes"), 60_000_000),
    (("h", "hr", "hour", "hours"), 3_600_000_000),
    (("d", "day", "days"), 86_400_000_000),
):
    for _name in _names:
        _UNIT_MICROS[_name] = _micros


def parse_duration(value: object) -> dt.timedelta:
    """
    Convert ``value`` into a :class:`datetime.timedelta`.

    Raises :class:`DurationParseError` for unknown units, malformed tokens,
    booleans, negative amounts, and amounts ``timedelta`` cannot hold.
    """

    if isinstance(value, dt.timedelta):
        result = value
    elif isinstance(value, bool):
        raise DurationParseError(f"Cannot parse duration from boolean {value!r}")
    elif isinstance(value, int | float):
        result = _bounded(value, seconds=value)
    elif isinstance(value, str):
        result = _parse_text(value)
    else:
        raise DurationParseError(f"Cannot parse duration from {type(value).__name__}")
    if result < dt.timedelta(0):
        raise DurationParseError(f"Duration must not be negative: {value!r}")
    return result


def _bounded(value: object, **amount: float) -> dt.timedelta:
    # timedelta stops at 999999999 days and rejects inf and nan.
    try:
        return dt.timedelta(**amount)
    except (OverflowError, ValueError) as exc:
        raise DurationParseError(f"Duration out of range: {value!r}") from exc


def _parse_text(value: str) -> dt.timedelta:
    text = value.strip()
    if not text:
        raise DurationParseError("Cannot parse an empty duration")
    match = _HUMAN_DURATION.match(text)
    if match:
        unit = match.group(2).lower()
        if unit not in _UNIT_MICROS:
            raise DurationParseError(
                f"Cannot parse duration {value!r}: unknown unit {match.group(2)!r}"
            )
        return _bounded(value, microseconds=int(match.group(1)) * _UNIT_MICROS[unit])
    if text.upper().startswith(("P", "-P")):
        try:
            return _ISO_ADAPTER.validate_python(text.upper())
        except (ValidationError, OverflowError) as exc:
            raise DurationParseError(f"Cannot parse ISO-8601 duration {value!r}") from exc
    raise DurationParseError(
        f"Cannot parse duration {value!r}. Expected <number><unit> "
        "(e.g. '10s', '20ms', '1m') or an ISO-8601 duration"
    )


def format_duration(value: dt.timedelta) -> str:
    """Render a duration in the shortest exact human unit."""

    micros = (value.days * 86_400 + value.seconds) * 1_000_000 + value.microseconds
    if micros == 0:
        return "0s"
    for suffix, size in (
        ("d", 86_400_000_000),
        ("h", 3_600_000_000),
        ("m", 60_000_000),
        ("s", 1_000_000),
        ("ms", 1_000),
    ):
        if micros % size == 0:
            return f"{micros // size}{suffix}"
    return f"{micros}us"


__all__ = ["format_duration", "parse_duration"]
