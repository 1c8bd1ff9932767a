"""Third-party data sources polled by the companion.

Each source wraps one upstream HTTP API and turns its answers into canonical
readings.  Sources never raise on network or parse failures; they degrade to a
status code (glucose) or to a fallback (weather, location).

Available sources:
    GlucoseSource  : Nightscout ``/pebble`` feed
    WeatherService : Open-Meteo with a wttr.in fallback and a short-lived cache
    Locator        : IP geolocation with persisted and default fallbacks
"""

from src.companion.sources.glucose import GlucoseSource
from src.companion.sources.location import Locator
from src.companion.sources.weather import (
    OpenMeteoProvider,
    WeatherProvider,
    WeatherService,
    WttrProvider,
)

__all__ = [
    "GlucoseSource",
    "Locator",
    "OpenMeteoProvider",
    "WeatherProvider",
    "WeatherService",
    "WttrProvider",
]
