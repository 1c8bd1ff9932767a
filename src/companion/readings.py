"""Normalize glucose-feed and weather responses into canonical readings.

The glucose feed's schema is not contractually fixed: depending on the server
version a Nightscout ``/pebble`` endpoint answers with an object holding a
``bgs`` list, a bare list of entries, or a single entry.  Parsing is therefore
an ordered list of named shape matchers tried in sequence; the first structural
match wins and yields a record that is then normalized.

Neither parser ever raises.  Malformed bodies degrade to ``NO_DATA`` (glucose)
or ``None`` (weather), and non-2xx transport statuses to ``NO_CONNECTION``.
"""

from __future__ import annotations

import json
import logging
import math
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable

from src.companion.base import GlucoseReading, GlucoseStatus, ParseFailure, TempUnit
from src.companion.trend import map_trend

logger = logging.getLogger("supercgm.readings")

VALUE_ALIASES = ("sgv", "glucose", "value", "bg", "mbg")
TIMESTAMP_ALIASES = ("datetime", "date", "mills", "timestamp")
DIRECTION_ALIASES = ("direction", "trend")
RECORD_LIST_FIELDS = ("bgs", "entries", "readings", "data")

# Timestamps above this are epoch milliseconds.
_MILLISECONDS_THRESHOLD = 10**12


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _decode(raw: Any) -> Any:
    """Decode a JSON body; already-decoded values pass through."""
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8")
    if isinstance(raw, str):
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise ParseFailure(f"Malformed JSON: {exc}") from exc
        except RecursionError as exc:
            raise ParseFailure("JSON nested too deeply") from exc
    return raw


def _to_number(value: Any) -> float | None:
    """Return a finite float for numbers and numeric strings, else None."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        try:
            number = float(value)
        except OverflowError:
            return None
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except (ValueError, OverflowError):
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _first_present(obj: dict, aliases: tuple[str, ...]) -> Any:
    for alias in aliases:
        if obj.get(alias) is not None:
            return obj[alias]
    return None


def round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


# ---------------------------------------------------------------------------
# Glucose shape matchers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GlucoseRecord:
    """Alias-resolved fields of one reading record, not yet validated."""

    value: Any
    timestamp: Any = None
    direction: Any = None

    @classmethod
    def from_object(cls, obj: Any) -> GlucoseRecord | None:
        if not isinstance(obj, dict):
            return None
        value = _first_present(obj, VALUE_ALIASES)
        if value is None:
            return None
        return cls(
            value=value,
            timestamp=_first_present(obj, TIMESTAMP_ALIASES),
            direction=_first_present(obj, DIRECTION_ALIASES),
        )


class ShapeMatcher(ABC):
    """One candidate response shape of the glucose feed."""

    #: Name used in logs.
    NAME: str = "abstract"

    @abstractmethod
    def match(self, document: Any) -> GlucoseRecord | None:
        """Return the newest record if ``document`` has this shape."""


class RecordListFieldMatcher(ShapeMatcher):
    """``{"bgs": [{...}, ...], ...}``"""

    NAME = "record-list-field"

    def match(self, document: Any) -> GlucoseRecord | None:
        if not isinstance(document, dict):
            return None
        for field_name in RECORD_LIST_FIELDS:
            records = document.get(field_name)
            if isinstance(records, list) and records:
                record = GlucoseRecord.from_object(records[0])
                if record is not None:
                    return record
        return None


class BareRecordListMatcher(ShapeMatcher):
    """``[{...}, ...]``"""

    NAME = "bare-record-list"

    def match(self, document: Any) -> GlucoseRecord | None:
        if isinstance(document, list) and document:
            return GlucoseRecord.from_object(document[0])
        return None


class SingleRecordMatcher(ShapeMatcher):
    """``{"sgv": ..., "date": ...}``"""

    NAME = "single-record"

    def match(self, document: Any) -> GlucoseRecord | None:
        return GlucoseRecord.from_object(document)


GLUCOSE_SHAPES: tuple[ShapeMatcher, ...] = (
    RecordListFieldMatcher(),
    BareRecordListMatcher(),
    SingleRecordMatcher(),
)


def match_glucose_record(document: Any) -> GlucoseRecord | None:
    for matcher in GLUCOSE_SHAPES:
        record = matcher.match(document)
        if record is not None:
            logger.debug("Glucose response matched shape %s", matcher.NAME)
            return record
    return None


def normalize_timestamp(value: Any, now: Callable[[], float] = time.time) -> int:
    """Return epoch seconds; milliseconds are floored, absent or zero means now."""
    number = _to_number(value)
    if not number:
        return int(now())
    if number > _MILLISECONDS_THRESHOLD:
        return math.floor(number / 1000)
    return int(number)


def parse_glucose(
    raw: Any,
    status_code: int | None = 200,
    now: Callable[[], float] = time.time,
) -> GlucoseReading:
    """Extract a glucose reading from an arbitrarily shaped feed response.

    Args:
        raw:         Response body as str/bytes, or an already-decoded value.
        status_code: HTTP status of the response.
        now:         Clock used when the record carries no timestamp.

    Returns:
        A GlucoseReading; ``NO_CONNECTION`` for non-2xx statuses, ``NO_DATA``
        when no record could be extracted.
    """
    if status_code is not None and not 200 <= status_code < 300:
        logger.warning("Glucose feed answered HTTP %s", status_code)
        return GlucoseReading.no_connection()

    try:
        record = match_glucose_record(_decode(raw))
        if record is None:
            logger.info("Glucose response matched no known shape")
            return GlucoseReading.no_data()

        value = _to_number(record.value)
        if value is None:
            logger.info("Glucose value %r is not a finite number", record.value)
            return GlucoseReading.no_data()

        return GlucoseReading(
            status=GlucoseStatus.OK,
            value=int(value),
            timestamp_seconds=normalize_timestamp(record.timestamp, now),
            trend_glyph=map_trend(record.direction),
        )
    except (
        ParseFailure, TypeError, ValueError, AttributeError, OverflowError, UnicodeDecodeError
    ) as exc:
        logger.warning("Could not parse glucose response: %s", exc)
        return GlucoseReading.no_data()


# ---------------------------------------------------------------------------
# Weather
# ---------------------------------------------------------------------------


def _open_meteo_celsius(document: Any) -> float | None:
    """Primary provider: ``{"current_weather": {"temperature": 12.3}}``."""
    if not isinstance(document, dict):
        return None
    current = document.get("current_weather")
    if not isinstance(current, dict):
        return None
    return _to_number(current.get("temperature"))


def _wttr_celsius(document: Any) -> float | None:
    """Fallback provider: ``{"current_condition": [{"temp_C": "12"}]}``."""
    if not isinstance(document, dict):
        return None
    conditions = document.get("current_condition")
    if not isinstance(conditions, list) or not conditions:
        return None
    first = conditions[0]
    if not isinstance(first, dict):
        return None
    return _to_number(first.get("temp_C"))


WEATHER_SHAPES: tuple[Callable[[Any], float | None], ...] = (
    _open_meteo_celsius,
    _wttr_celsius,
)


def celsius_to_fahrenheit(celsius: float) -> int:
    return round_half_up(celsius * 9 / 5 + 32)


def parse_weather(raw: Any, preferred_unit: TempUnit = TempUnit.CELSIUS) -> int | None:
    """Extract the current temperature in ``preferred_unit``.

    Returns:
        The rounded temperature, or None if the body has no known shape.
    """
    try:
        preferred_unit = TempUnit(preferred_unit)
    except ValueError:
        logger.warning("Unknown temperature unit %r; using Celsius", preferred_unit)
        preferred_unit = TempUnit.CELSIUS

    try:
        document = _decode(raw)
        for extract in WEATHER_SHAPES:
            celsius = extract(document)
            if celsius is None:
                continue
            if preferred_unit is TempUnit.FAHRENHEIT:
                return celsius_to_fahrenheit(celsius)
            return round_half_up(celsius)
    except (ParseFailure, OverflowError, UnicodeDecodeError) as exc:
        logger.warning("Could not parse weather response: %s", exc)
    return None
