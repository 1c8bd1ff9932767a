"""Quantize arbitrary colors onto the watch's fixed hardware palette.

Colors picked on the configuration page come from a continuous picker, but the
watch can only render a small fixed set.  ``quantize`` maps any input onto that
set deterministically: the same input always lands on the same palette member,
and palette members map to themselves, so persisted configurations survive
being re-quantized on every load.

Usage::

    palette = palette_for(profile)
    quantize("#E01010", palette)    # "#FF0000"
    quantize("not a color", palette)  # "#FFFFFF"
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass
from typing import Any

from src.companion.base import DeviceProfile, PaletteClass

logger = logging.getLogger("supercgm.palette")

BLACK = "#000000"
DARK_GRAY = "#555555"
LIGHT_GRAY = "#AAAAAA"
WHITE = "#FFFFFF"
RED = "#FF0000"
GREEN = "#00FF00"
BLUE = "#0000FF"
YELLOW = "#FFFF00"
CYAN = "#00FFFF"
MAGENTA = "#FF00FF"
ORANGE = "#FFAA00"

# Achromatic detection and lightness buckets (mean of the three channels)
_ACHROMATIC_SPREAD = 16
_GRAY_BUCKETS = ((32, BLACK), (72, DARK_GRAY), (160, LIGHT_GRAY))

_HEX_RE = re.compile(r"^[0-9a-fA-F]{6}$")
_SHORT_HEX_RE = re.compile(r"^[0-9a-fA-F]{3}$")

RGB = tuple[int, int, int]


@dataclass(frozen=True)
class DevicePalette:
    """An ordered, immutable set of colors a display can render.

    For monochrome palettes the order is significant: members run from the
    darkest to the lightest tier.
    """

    palette_class: PaletteClass
    colors: tuple[str, ...]

    def member(self, color: Any) -> str | None:
        """Return the canonical spelling of ``color`` if it is a member."""
        if not isinstance(color, str):
            return None
        wanted = color.strip().upper()
        for candidate in self.colors:
            if candidate.upper() == wanted:
                return candidate
        return None

    def __contains__(self, color: object) -> bool:
        return self.member(color) is not None

    def __len__(self) -> int:
        return len(self.colors)


COLOR_PALETTE = DevicePalette(
    PaletteClass.COLOR,
    (
        BLACK,
        DARK_GRAY,
        LIGHT_GRAY,
        WHITE,
        RED,
        GREEN,
        BLUE,
        YELLOW,
        CYAN,
        MAGENTA,
        ORANGE,
    ),
)

MONOCHROME_PALETTE = DevicePalette(PaletteClass.MONOCHROME, (BLACK, WHITE))


def single_color_palette(color: Any) -> DevicePalette:
    """Palette for devices that render every row in one forced color."""
    rgb = parse_rgb(color)
    forced = to_hex(rgb) if rgb is not None else WHITE
    return DevicePalette(PaletteClass.SINGLE_COLOR, (forced,))


def palette_for(profile: DeviceProfile) -> DevicePalette:
    """Return the active palette for a device profile."""
    if profile.forced_color or profile.palette_class is PaletteClass.SINGLE_COLOR:
        return single_color_palette(profile.forced_color)
    if profile.palette_class is PaletteClass.MONOCHROME:
        return MONOCHROME_PALETTE
    return COLOR_PALETTE


# ---------------------------------------------------------------------------
# Parsing helpers
# ---------------------------------------------------------------------------


def parse_rgb(color: Any) -> RGB | None:
    """Parse a color into an (R, G, B) triple, or None if it is malformed.

    Accepts "#RRGGBB", "RRGGBB", "0xRRGGBB", "#RGB", an integer 0xRRGGBB,
    or a sequence of three channel values in 0–255.
    """
    if isinstance(color, bool):
        return None
    if isinstance(color, int):
        if 0 <= color <= 0xFFFFFF:
            return (color >> 16) & 0xFF, (color >> 8) & 0xFF, color & 0xFF
        return None
    if isinstance(color, str):
        text = color.strip()
        if text.startswith("#"):
            text = text[1:]
        elif text[:2].lower() == "0x":
            text = text[2:]
        if _SHORT_HEX_RE.match(text):
            text = "".join(ch * 2 for ch in text)
        if not _HEX_RE.match(text):
            return None
        value = int(text, 16)
        return (value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF
    if isinstance(color, (tuple, list)) and len(color) == 3:
        channels = []
        for channel in color:
            if isinstance(channel, bool) or not isinstance(channel, int):
                return None
            if not 0 <= channel <= 255:
                return None
            channels.append(channel)
        return channels[0], channels[1], channels[2]
    return None


def to_hex(rgb: RGB) -> str:
    return "#{:02X}{:02X}{:02X}".format(*rgb)


def hex_to_int(color: str) -> int:
    """Convert a palette color to the integer form the watch expects.

    Raises:
        ValueError: If ``color`` cannot be parsed.
    """
    rgb = parse_rgb(color)
    if rgb is None:
        raise ValueError(f"Not a color: {color!r}")
    r, g, b = rgb
    return (r << 16) | (g << 8) | b


def luminance(rgb: RGB) -> float:
    """Perceptual luminance approximation used for monochrome tiers."""
    r, g, b = rgb
    return (3 * r + 6 * g + b) / 10


# ---------------------------------------------------------------------------
# Quantization
# ---------------------------------------------------------------------------


def _nearest_tier(rgb: RGB, palette: DevicePalette) -> str:
    last = len(palette) - 1
    position = luminance(rgb) / 255 * last
    index = math.floor(position + 0.5)
    return palette.colors[min(max(index, 0), last)]


def _gray_bucket(rgb: RGB) -> str:
    lightness = sum(rgb) / 3
    for upper, color in _GRAY_BUCKETS:
        if lightness < upper:
            return color
    return WHITE


def _is_achromatic(rgb: RGB) -> bool:
    r, g, b = rgb
    return (
        abs(r - g) < _ACHROMATIC_SPREAD
        and abs(g - b) < _ACHROMATIC_SPREAD
        and abs(r - b) < _ACHROMATIC_SPREAD
    )


def _hue_bucket(rgb: RGB) -> str | None:
    r, g, b = rgb
    if r > 200 and g < 80 and b < 80:
        return RED
    if g > 200 and r < 80 and b < 80:
        return GREEN
    if b > 200 and r < 80 and g < 80:
        return BLUE
    if r > 200 and g > 200 and b < 80:
        return YELLOW
    if g > 200 and b > 200 and r < 80:
        return CYAN
    if r > 200 and b > 200 and g < 80:
        return MAGENTA
    if r > 200 and 120 < g < 200 and b < 40:
        return ORANGE
    return None


def _full_color(rgb: RGB) -> str:
    if _is_achromatic(rgb):
        return _gray_bucket(rgb)
    return _hue_bucket(rgb) or WHITE


def quantize(color: Any, palette: DevicePalette = COLOR_PALETTE) -> str:
    """Map any color onto a member of ``palette``.

    Never raises: malformed input degrades to white (or to the forced color
    of a single-color palette).

    Args:
        color:   Color in any form accepted by ``parse_rgb``.
        palette: Target device palette.

    Returns:
        A member of ``palette`` in its canonical "#RRGGBB" spelling.
    """
    if palette.palette_class is PaletteClass.SINGLE_COLOR:
        return palette.colors[0]

    existing = palette.member(color)
    if existing is not None:
        return existing

    rgb = parse_rgb(color)
    if rgb is None:
        logger.debug("Unparsable color %r, using white", color)
        return WHITE

    if palette.palette_class is PaletteClass.MONOCHROME:
        return _nearest_tier(rgb, palette)
    return _full_color(rgb)
