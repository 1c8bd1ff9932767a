"""Map glucose direction strings to the compact glyphs drawn on the watch."""

from __future__ import annotations

from typing import Any

# Nightscout numeric trend codes
_TREND_CODES: dict[int, str] = {
    1: "DoubleUp",
    2: "SingleUp",
    3: "FortyFiveUp",
    4: "Flat",
    5: "FortyFiveDown",
    6: "SingleDown",
    7: "DoubleDown",
}

# Order matters: first match wins.
_TREND_RULES: tuple[tuple[str, str | None, str], ...] = (
    ("doubleup", None, "↑↑"),
    ("singleup", "up", "↑"),
    ("fortyfiveup", None, "↗"),
    ("flat", None, "→"),
    ("fortyfivedown", None, "↘"),
    ("singledown", "down", "↓"),
    ("doubledown", None, "↓↓"),
)


def map_trend(direction: Any) -> str:
    """Return the glyph for a direction such as 'FortyFiveUp', or '' if unknown."""
    if isinstance(direction, int) and not isinstance(direction, bool):
        direction = _TREND_CODES.get(direction)
    if not isinstance(direction, str):
        return ""
    text = direction.strip().lower()
    for needle, exact, glyph in _TREND_RULES:
        if needle in text or text == exact:
            return glyph
    return ""
