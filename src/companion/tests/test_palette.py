"""Tests for color quantization onto the device palettes."""

from __future__ import annotations

import pytest

from src.companion.base import DeviceProfile, PaletteClass
from src.companion.palette import (
    BLACK,
    BLUE,
    COLOR_PALETTE,
    CYAN,
    DARK_GRAY,
    GREEN,
    LIGHT_GRAY,
    MAGENTA,
    MONOCHROME_PALETTE,
    ORANGE,
    RED,
    WHITE,
    YELLOW,
    hex_to_int,
    palette_for,
    parse_rgb,
    quantize,
    single_color_palette,
)

# Inputs of every accepted form plus garbage
SAMPLE_INPUTS = [
    "#E01010",
    "e01010",
    "0x10E010",
    "#1010E0",
    "#abc",
    "#F0F0F0",
    "#333333",
    "#FF9900",
    "#808000",
    0x00FFFF,
    (250, 0, 250),
    [12, 12, 12],
    "",
    "purple",
    None,
    True,
    -1,
    0x1000000,
    (300, 0, 0),
    3.5,
    {"r": 1},
]


class TestParseRgb:
    def test_hex_forms(self) -> None:
        assert parse_rgb("#FF8000") == (255, 128, 0)
        assert parse_rgb("ff8000") == (255, 128, 0)
        assert parse_rgb("0xFF8000") == (255, 128, 0)
        assert parse_rgb("#f80") == (255, 136, 0)

    def test_integer_and_tuple(self) -> None:
        assert parse_rgb(0xFF8000) == (255, 128, 0)
        assert parse_rgb((1, 2, 3)) == (1, 2, 3)

    def test_malformed_returns_none(self) -> None:
        for value in ("#GGGGGG", "#12345", True, -5, (1, 2), (1, 2, 256), None):
            assert parse_rgb(value) is None, value

    def test_hex_to_int(self) -> None:
        assert hex_to_int("#00FF00") == 0x00FF00
        with pytest.raises(ValueError):
            hex_to_int("nope")


class TestFullColorQuantization:
    def test_palette_members_map_to_themselves(self) -> None:
        for color in COLOR_PALETTE.colors:
            assert quantize(color) == color

    def test_member_match_is_case_insensitive(self) -> None:
        assert quantize("#ffaa00") == ORANGE
        assert quantize(" #00ffff ") == CYAN

    @pytest.mark.parametrize(
        "color, expected",
        [
            ("#E01010", RED),
            ("#10E010", GREEN),
            ("#1010E0", BLUE),
            ("#E0E010", YELLOW),
            ("#10E0E0", CYAN),
            ("#E010E0", MAGENTA),
            ("#F09610", ORANGE),
        ],
    )
    def test_hue_buckets(self, color: str, expected: str) -> None:
        assert quantize(color) == expected

    @pytest.mark.parametrize(
        "color, expected",
        [
            ("#101010", BLACK),
            ("#404040", DARK_GRAY),
            ("#909090", LIGHT_GRAY),
            ("#C0C0C0", WHITE),
            ("#8C9196", LIGHT_GRAY),
        ],
    )
    def test_achromatic_lightness_buckets(self, color: str, expected: str) -> None:
        assert quantize(color) == expected

    def test_chromatic_without_bucket_is_white(self) -> None:
        # olive: neither achromatic nor in any hue bucket
        assert quantize("#808000") == WHITE

    def test_garbage_is_white(self) -> None:
        for value in ("", "purple", None, 3.5, {"r": 1}):
            assert quantize(value) == WHITE

    def test_short_hex_and_int_forms(self) -> None:
        assert quantize("#f00") == RED
        assert quantize(0x0000FF) == BLUE
        assert quantize((0, 250, 10)) == GREEN


class TestMonochromeQuantization:
    def test_light_colors_become_white(self) -> None:
        assert quantize("#FFFF00", MONOCHROME_PALETTE) == WHITE
        assert quantize("#00FF00", MONOCHROME_PALETTE) == WHITE

    def test_dark_colors_become_black(self) -> None:
        assert quantize("#0000FF", MONOCHROME_PALETTE) == BLACK
        assert quantize("#FF0000", MONOCHROME_PALETTE) == BLACK
        assert quantize("#333333", MONOCHROME_PALETTE) == BLACK

    def test_tier_boundary(self) -> None:
        # L = 128 → 128/255 + 0.5 ≥ 1 → white; L = 127 → black
        assert quantize("#808080", MONOCHROME_PALETTE) == WHITE
        assert quantize("#7F7F7F", MONOCHROME_PALETTE) == BLACK

    def test_garbage_is_white(self) -> None:
        assert quantize("nope", MONOCHROME_PALETTE) == WHITE


class TestSingleColorPalette:
    def test_forced_color_overrides_everything(self) -> None:
        palette = single_color_palette("#00ff00")
        assert palette.colors == (GREEN,)
        for value in ("#FF0000", "garbage", None, 0xFFFFFF):
            assert quantize(value, palette) == GREEN

    def test_unparsable_forced_color_falls_back_to_white(self) -> None:
        assert single_color_palette("nope").colors == (WHITE,)


class TestPaletteFor:
    def test_color_profile(self) -> None:
        profile = DeviceProfile("basalt", PaletteClass.COLOR)
        assert palette_for(profile) is COLOR_PALETTE

    def test_monochrome_profile(self) -> None:
        profile = DeviceProfile("aplite", PaletteClass.MONOCHROME)
        assert palette_for(profile) is MONOCHROME_PALETTE

    def test_forced_color_profile(self) -> None:
        profile = DeviceProfile("basalt", PaletteClass.SINGLE_COLOR, forced_color="#FF0000")
        assert palette_for(profile).colors == (RED,)


class TestQuantizeProperties:
    @pytest.mark.parametrize(
        "palette",
        [COLOR_PALETTE, MONOCHROME_PALETTE, single_color_palette("#FFAA00")],
        ids=["color", "monochrome", "single"],
    )
    def test_result_is_always_a_member(self, palette) -> None:
        for value in SAMPLE_INPUTS:
            assert quantize(value, palette) in palette, value

    @pytest.mark.parametrize(
        "palette",
        [COLOR_PALETTE, MONOCHROME_PALETTE, single_color_palette("#FFAA00")],
        ids=["color", "monochrome", "single"],
    )
    def test_idempotent(self, palette) -> None:
        for value in SAMPLE_INPUTS:
            once = quantize(value, palette)
            assert quantize(once, palette) == once, value
