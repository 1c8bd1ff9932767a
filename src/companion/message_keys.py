"""Device message keys and the configuration chunks pushed to the watch.

The watch resolves message keys by numeric id.  Row keys must stay contiguous:
the watch reads row ``i`` at ``ROW1_TYPE + i`` and ``ROW1_COLOR + i``.
"""

from __future__ import annotations

from typing import Any, Mapping

from src.companion.base import MAX_ROWS, Configuration, GlucoseUnit, TempUnit
from src.companion.palette import hex_to_int

MESSAGE_KEY_BASE = 10000

_SCALAR_KEYS = (
    "WEATHER_TEMP",
    "TEMP_UNIT",
    "BG_SGV",
    "BG_TIMESTAMP",
    "BG_STATUS",
    "BG_UNIT",
    "BG_TREND",
    "SHOW_LEADING_ZERO",
    "DATE_FORMAT",
    "WEEKDAY_LANG",
    "WEATHER_INTERVAL_MIN",
    "BG_FETCH_INTERVAL_MIN",
    "BG_TIMEOUT_MIN",
    "BG_THRESH_LOW",
    "BG_THRESH_HIGH",
    "COLOR_LOW",
    "COLOR_HIGH",
    "COLOR_IN_RANGE",
    "GHOST_COLOR",
    "REQUEST_WEATHER",
    "REQUEST_BG",
)

_ROW_KEYS = tuple(f"ROW{i}_TYPE" for i in range(1, MAX_ROWS + 1)) + tuple(
    f"ROW{i}_COLOR" for i in range(1, MAX_ROWS + 1)
)

MESSAGE_KEYS: dict[str, int] = {
    name: MESSAGE_KEY_BASE + index
    for index, name in enumerate(_SCALAR_KEYS + _ROW_KEYS)
}
KEY_NAMES: dict[int, str] = {key: name for name, key in MESSAGE_KEYS.items()}

MessageValue = int | str


def to_keyed(message: Mapping[str, MessageValue]) -> dict[int, MessageValue]:
    """Translate key names to numeric message keys.

    Raises:
        KeyError: If a key name is unknown.
    """
    return {MESSAGE_KEYS[name]: value for name, value in message.items()}


def to_named(message: Mapping[Any, MessageValue]) -> dict[str, MessageValue]:
    """Translate numeric (or numeric-string) keys back to names.

    Keys that are already names, or unknown, are kept as they are.
    """
    named: dict[str, MessageValue] = {}
    for key, value in message.items():
        if isinstance(key, str) and key.isdigit():
            key = int(key)
        named[KEY_NAMES.get(key, str(key)) if isinstance(key, int) else key] = value
    return named


def config_chunks(config: Configuration) -> list[dict[str, MessageValue]]:
    """Split a configuration into the three dictionaries pushed to the watch.

    Order: row assignments, semantic colors and thresholds, scalar settings.
    """
    rows: dict[str, MessageValue] = {}
    for index, row in enumerate(config.rows, start=1):
        rows[f"ROW{index}_TYPE"] = int(row.type)
        rows[f"ROW{index}_COLOR"] = hex_to_int(row.color)

    colors = config.colors
    semantic: dict[str, MessageValue] = {
        "COLOR_LOW": hex_to_int(colors.low),
        "COLOR_IN_RANGE": hex_to_int(colors.in_range),
        "COLOR_HIGH": hex_to_int(colors.high),
        "GHOST_COLOR": hex_to_int(colors.ghost),
        "BG_THRESH_LOW": config.low,
        "BG_THRESH_HIGH": config.high,
    }

    settings: dict[str, MessageValue] = {
        "SHOW_LEADING_ZERO": 1 if config.show_leading_zero else 0,
        "DATE_FORMAT": int(config.date_format),
        "WEEKDAY_LANG": int(config.weekday_lang),
        "TEMP_UNIT": 1 if config.temp_unit is TempUnit.FAHRENHEIT else 0,
        "WEATHER_INTERVAL_MIN": config.weather_interval_min,
        "BG_FETCH_INTERVAL_MIN": config.bg_fetch_interval_min,
        "BG_TIMEOUT_MIN": config.bg_timeout_min,
        "BG_UNIT": 1 if config.bg_unit is GlucoseUnit.MMOL else 0,
    }
    return [rows, semantic, settings]
