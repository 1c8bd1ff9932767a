"""SuperCGM watch-face companion.

This package runs on the phone side of the watch-face: it reconciles the user
configuration, polls the weather and glucose feeds, quantizes colors to the
watch palette and delivers small key-value messages to the watch.

Subpackages:
    sources/  : Glucose feed, weather providers and geolocation

Core modules:
    base           : Configuration, readings, device profile and exceptions
    palette        : Color quantization onto the hardware palette
    readings       : Glucose and weather response parsing
    trend          : Glucose direction → glyph
    message_keys   : Message key ids and configuration chunks
    channel        : Sequential, retry-once delivery to the watch
    scheduler      : Weather and glucose polling timers
    reconciler     : Owner of the active configuration
    config_loader  : Load/validate defaults.yaml
    pipeline       : The Companion wiring all of the above
"""

from src.companion.base import (
    Configuration,
    DeviceProfile,
    GlucoseReading,
    GlucoseStatus,
    WeatherReading,
)
from src.companion.channel import MessageChannel, OutboxTransport
from src.companion.config_loader import WatchfaceDefaults, get_defaults
from src.companion.palette import quantize
from src.companion.pipeline import Companion
from src.companion.readings import parse_glucose, parse_weather
from src.companion.trend import map_trend

__all__ = [
    "Companion",
    "Configuration",
    "DeviceProfile",
    "GlucoseReading",
    "GlucoseStatus",
    "MessageChannel",
    "OutboxTransport",
    "WatchfaceDefaults",
    "WeatherReading",
    "get_defaults",
    "map_trend",
    "parse_glucose",
    "parse_weather",
    "quantize",
]
