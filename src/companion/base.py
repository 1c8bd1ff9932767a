"""Canonical models and exceptions for the SuperCGM companion.

The watch-face configuration, the per-fetch readings and the device profile
defined here are the single source of truth shared by the reconciler, the
scheduler, the data sources and the message channel.  The configuration model
keeps the camelCase aliases of the configuration page payload so that the page,
the persisted store and the HTTP surface all speak the same JSON.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum, IntEnum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, field_validator

#: Hardware limit of the watch-face layout.
MAX_ROWS = 5

WEATHER_FLOOR_MINUTES = 5
GLUCOSE_FLOOR_MINUTES = 1


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class CompanionError(Exception):
    """Base class for every error raised inside the companion."""


class ParseFailure(CompanionError):
    """A third-party response body was malformed or had an unexpected shape."""


class TransportFailure(CompanionError):
    """A network request timed out, could not connect, or returned non-2xx."""


class DeliveryFailure(CompanionError):
    """The device rejected or did not acknowledge a message."""


class ConfigurationRejected(CompanionError):
    """A configuration-change payload could not be decoded or validated."""


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class RowType(IntEnum):
    """Semantic type of a display row (wire ids shared with the watch)."""

    WEATHER = 0
    TIME = 1
    DATE = 2
    WEEKDAY = 3
    BATTERY = 4
    GLUCOSE_MONITOR = 5
    STEPS = 6
    HEART_RATE = 7


class TempUnit(str, Enum):
    CELSIUS = "C"
    FAHRENHEIT = "F"


class GlucoseUnit(str, Enum):
    MGDL = "mgdl"
    MMOL = "mmol"


class DateFormat(IntEnum):
    DAY_MONTH = 0  # dd/mm
    MONTH_DAY = 1  # mm/dd


class WeekdayLanguage(IntEnum):
    GERMAN = 0
    ENGLISH = 1


class GlucoseStatus(IntEnum):
    """Status code sent to the watch with every glucose update."""

    OK = 0
    NO_DATA = 1
    NO_CONNECTION = 2


class PaletteClass(str, Enum):
    """Display capability of a device."""

    COLOR = "color"
    MONOCHROME = "monochrome"
    SINGLE_COLOR = "single_color"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


class CompanionModel(BaseModel):
    """Base model with shared config for all companion schemas."""

    model_config = ConfigDict(
        populate_by_name=True,
        str_strip_whitespace=True,
        frozen=True,
        extra="ignore",
    )


def _coerce_color(value: Any) -> Any:
    # The page sends "#rrggbb" strings; older payloads carry the integer wire form.
    if isinstance(value, int) and not isinstance(value, bool):
        return f"#{value & 0xFFFFFF:06X}"
    return value


Color = Annotated[str, BeforeValidator(_coerce_color)]


class Row(CompanionModel):
    """One display slot on the watch."""

    type: RowType
    color: Color = "#FFFFFF"


class SemanticColors(CompanionModel):
    """Colors used to render glucose values relative to the thresholds."""

    low: Color = "#FF0000"
    in_range: Color = Field(default="#00FF00", alias="in")
    high: Color = "#FFFF00"
    ghost: Color = "#555555"


class Configuration(CompanionModel):
    """Complete watch-face configuration as edited on the configuration page.

    Attributes:
        rows:                  Display rows, top to bottom.
        low:                   Low glucose threshold (mg/dL).
        high:                  High glucose threshold (mg/dL).
        colors:                Semantic glucose colors.
        temp_unit:             Temperature unit shown on the watch.
        bg_unit:               Glucose unit shown on the watch.
        weather_interval_min:  Weather polling interval, clamped to ≥ 5.
        bg_fetch_interval_min: Glucose polling interval, clamped to ≥ 1.
        bg_url:                Base URL of the glucose feed (Nightscout site).
        bg_timeout_min:        Age after which the watch greys out a reading.
        show_leading_zero:     Render "07:05" instead of " 7:05".
        date_format:           Day/month ordering.
        weekday_lang:          Language of the weekday row.
    """

    rows: tuple[Row, ...]
    low: int = 80
    high: int = 180
    colors: SemanticColors = Field(default_factory=SemanticColors)
    temp_unit: TempUnit = Field(default=TempUnit.CELSIUS, alias="tempUnit")
    bg_unit: GlucoseUnit = Field(default=GlucoseUnit.MGDL, alias="bgUnit")
    weather_interval_min: int = Field(default=30, alias="weatherIntervalMin")
    bg_fetch_interval_min: int = Field(default=5, alias="bgFetchIntervalMin")
    bg_url: str | None = Field(default=None, alias="bgUrl")
    bg_timeout_min: int = Field(default=20, alias="bgTimeoutMin")
    show_leading_zero: bool = Field(default=True, alias="showLeadingZero")
    date_format: DateFormat = Field(default=DateFormat.DAY_MONTH, alias="dateFormat")
    weekday_lang: WeekdayLanguage = Field(
        default=WeekdayLanguage.GERMAN, alias="weekdayLang"
    )

    @field_validator("bg_url", mode="before")
    @classmethod
    def _blank_url_is_none(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("weather_interval_min")
    @classmethod
    def _weather_floor(cls, value: int) -> int:
        return max(WEATHER_FLOOR_MINUTES, value)

    @field_validator("bg_fetch_interval_min")
    @classmethod
    def _glucose_floor(cls, value: int) -> int:
        return max(GLUCOSE_FLOOR_MINUTES, value)

    def has_row(self, row_type: RowType) -> bool:
        return any(row.type == row_type for row in self.rows)

    @property
    def weather_enabled(self) -> bool:
        return self.has_row(RowType.WEATHER)

    @property
    def glucose_enabled(self) -> bool:
        """Glucose polling needs both a feed URL and a row that shows it."""
        return bool(self.bg_url) and self.has_row(RowType.GLUCOSE_MONITOR)

    def to_payload(self) -> dict[str, Any]:
        """Return the JSON-ready dict using the configuration page's keys."""
        return self.model_dump(by_alias=True, mode="json")


# ---------------------------------------------------------------------------
# Readings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GlucoseReading:
    """Outcome of one glucose fetch.

    Reading fields are only populated when ``status`` is ``OK``.
    """

    status: GlucoseStatus
    value: int | None = None
    timestamp_seconds: int | None = None
    trend_glyph: str = ""

    @classmethod
    def no_data(cls) -> GlucoseReading:
        return cls(status=GlucoseStatus.NO_DATA)

    @classmethod
    def no_connection(cls) -> GlucoseReading:
        return cls(status=GlucoseStatus.NO_CONNECTION)

    def to_message(self, unit: GlucoseUnit = GlucoseUnit.MGDL) -> dict[str, int | str]:
        if self.status is not GlucoseStatus.OK:
            return {"BG_STATUS": int(self.status)}
        return {
            "BG_SGV": self.value,
            "BG_TIMESTAMP": self.timestamp_seconds,
            "BG_STATUS": int(GlucoseStatus.OK),
            "BG_TREND": self.trend_glyph,
            "BG_UNIT": 1 if unit is GlucoseUnit.MMOL else 0,
        }


@dataclass(frozen=True)
class WeatherReading:
    """A temperature reading in the unit it was requested in."""

    temperature: int
    unit: TempUnit
    fetched_at: datetime

    def is_fresh(self, now: datetime, window: timedelta) -> bool:
        return now - self.fetched_at < window

    def to_message(self) -> dict[str, int]:
        return {
            "WEATHER_TEMP": self.temperature,
            "TEMP_UNIT": 1 if self.unit is TempUnit.FAHRENHEIT else 0,
        }


@dataclass(frozen=True)
class Location:
    """Coordinates used for weather lookups.

    Attributes:
        latitude:  Decimal degrees.
        longitude: Decimal degrees.
        source:    'lookup', 'persisted' or 'default'.
    """

    latitude: float
    longitude: float
    source: str = "lookup"


# ---------------------------------------------------------------------------
# Device
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DeviceProfile:
    """Capabilities of the connected watch, fixed for a session.

    Attributes:
        platform:      Platform id (e.g. 'basalt', 'aplite').
        palette_class: Color capability of the display.
        row_count:     Number of rows the layout supports.
        forced_color:  When set, every row renders in this one color.
    """

    platform: str
    palette_class: PaletteClass
    row_count: int = MAX_ROWS
    forced_color: str | None = None

    @property
    def monochrome(self) -> bool:
        return self.palette_class is PaletteClass.MONOCHROME


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
