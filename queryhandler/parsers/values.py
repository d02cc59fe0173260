"""Parsing of scalar values in the request."""

from __future__ import annotations

import re
from datetime import datetime, timezone

import orjson
from django.utils.dateparse import parse_date, parse_datetime

from queryhandler.exceptions import ArgumentError, ParseError

#: Only this strict UTC notation is revived into a datetime.
RE_UTC_TIMESTAMP = re.compile(
    r"\A(\d{4})-(\d{2})-(\d{2})T(\d{2}):(\d{2}):(\d{2})(?:\.(\d*))?Z\Z", re.ASCII
)
RE_OBJECT_ID = re.compile(r"\A[a-fA-F0-9]{24}\Z")


def parse_json(raw_value: str | bytes, revive_dates=False):
    """Parse JSON input, raising a :class:`ParseError` for bad input."""
    try:
        value = orjson.loads(raw_value)
    except orjson.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e}") from e

    return revive_utc_timestamps(value) if revive_dates else value


def revive_utc_timestamps(value):
    """Replace all UTC timestamp strings in a decoded JSON structure by datetime values."""
    if isinstance(value, str):
        match = RE_UTC_TIMESTAMP.match(value)
        return parse_utc_timestamp(match) if match else value
    elif isinstance(value, dict):
        return {key: revive_utc_timestamps(item) for key, item in value.items()}
    elif isinstance(value, list):
        return [revive_utc_timestamps(item) for item in value]
    else:
        return value


def parse_utc_timestamp(match: re.Match) -> datetime:
    """Translate a matched ``YYYY-MM-DDTHH:MM:SS[.fff]Z`` value into a datetime."""
    year, month, day, hour, minute, second, fraction = match.groups()
    # Millisecond notation in JSON, microseconds is what Python can store.
    microsecond = int((fraction or "")[:6].ljust(6, "0"))
    try:
        return datetime(
            int(year),
            int(month),
            int(day),
            int(hour),
            int(minute),
            int(second),
            microsecond,
            tzinfo=timezone.utc,
        )
    except ValueError as e:
        raise ParseError(f"Invalid date '{match.string}': {e}") from e


def is_object_id(raw_value: str) -> bool:
    """Tell whether the value has the notation of a 12-byte ObjectId."""
    return bool(RE_OBJECT_ID.match(raw_value))


def is_valid_instant(raw_value: str) -> bool:
    """Tell whether the value can be read as an ISO date or datetime."""
    try:
        return parse_datetime(raw_value) is not None or parse_date(raw_value) is not None
    except ValueError:
        # Well-formatted, but an invalid date (e.g. month 13).
        return False


def parse_int(raw_value: str, name: str) -> int:
    """Translate an integer parameter."""
    try:
        return int(raw_value)
    except (TypeError, ValueError):
        raise ArgumentError(f"Invalid {name} argument: expected an integer.") from None
