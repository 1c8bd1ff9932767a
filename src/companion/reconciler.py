"""Own, constrain, persist and replace the watch-face configuration.

The reconciler holds the single in-memory ``Configuration``.  Everything else
reads the current ``snapshot`` (an immutable model) and never keeps its own
copy.  A configuration-change event replaces the snapshot wholesale: the
payload is decoded and validated first, so a corrupt payload leaves the
previous configuration in effect.
"""

from __future__ import annotations

import json
import logging
from typing import Awaitable, Callable
from urllib.parse import quote, unquote, urlencode

from pydantic import ValidationError

from src.companion.base import (
    Configuration,
    ConfigurationRejected,
    DeviceProfile,
    Row,
    RowType,
)
from src.companion.palette import DevicePalette, palette_for, quantize
from src.companion.storage import KeyValueStore

logger = logging.getLogger("supercgm.reconciler")

CONFIG_KEY = "config"

ConfigListener = Callable[[Configuration], Awaitable[None]]


def decode_configuration(response: str) -> Configuration:
    """Decode a URL-encoded JSON configuration payload.

    Raises:
        ConfigurationRejected: If the payload is not valid JSON or fails validation.
    """
    try:
        data = json.loads(unquote(response))
    except ValueError as exc:
        raise ConfigurationRejected(f"Configuration is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationRejected("Configuration must be a JSON object")
    try:
        return Configuration.model_validate(data)
    except ValidationError as exc:
        raise ConfigurationRejected(f"Configuration failed validation: {exc}") from exc


class ConfigReconciler:
    """Single owner of the active configuration."""

    def __init__(
        self,
        store: KeyValueStore,
        profile: DeviceProfile,
        defaults: Configuration,
    ) -> None:
        """Initialize the reconciler with the defaults in effect.

        Args:
            store:    Persistent key-value store.
            profile:  Capabilities of the connected watch.
            defaults: Configuration used when nothing valid is persisted; must
                      define every row.
        """
        self._store = store
        self._profile = profile
        self._palette = palette_for(profile)
        self._defaults = defaults
        self._listeners: list[ConfigListener] = []
        self._config = self.constrain(defaults)

    @property
    def snapshot(self) -> Configuration:
        return self._config

    @property
    def profile(self) -> DeviceProfile:
        return self._profile

    @property
    def palette(self) -> DevicePalette:
        return self._palette

    def add_listener(self, listener: ConfigListener) -> None:
        """Register an async callback invoked with every applied configuration."""
        self._listeners.append(listener)

    def load(self) -> Configuration:
        """Restore the persisted configuration, or fall back to the defaults."""
        raw = self._store.get(CONFIG_KEY)
        config = self._defaults
        if raw:
            try:
                config = Configuration.model_validate_json(raw)
                logger.info("Restored persisted configuration")
            except ValidationError as exc:
                logger.warning("Persisted configuration is invalid, using defaults: %s", exc)
        else:
            logger.info("No persisted configuration, using defaults")
        self._config = self.constrain(config)
        return self._config

    def constrain(self, config: Configuration) -> Configuration:
        """Apply the device profile: row count, palette and forced color."""
        rows = list(config.rows[: self._profile.row_count])
        for index in range(len(rows), self._profile.row_count):
            rows.append(self._default_row(index))

        rows = [
            row.model_copy(update={"color": quantize(row.color, self._palette)})
            for row in rows
        ]
        colors = config.colors.model_copy(
            update={
                "low": quantize(config.colors.low, self._palette),
                "in_range": quantize(config.colors.in_range, self._palette),
                "high": quantize(config.colors.high, self._palette),
                "ghost": quantize(config.colors.ghost, self._palette),
            }
        )
        return config.model_copy(update={"rows": tuple(rows), "colors": colors})

    def replace(self, config: Configuration) -> Configuration:
        """Constrain, install and persist a new configuration."""
        self._config = self.constrain(config)
        try:
            self._store.set(CONFIG_KEY, self._config.model_dump_json(by_alias=True))
        except OSError as exc:
            logger.error("Configuration applied but not persisted: %s", exc)
        logger.info(
            "Configuration replaced: rows=%s weather=%s glucose=%s",
            [row.type.name for row in self._config.rows],
            self._config.weather_enabled,
            self._config.glucose_enabled,
        )
        return self._config

    async def handle_change(self, response: str | None) -> Configuration | None:
        """Apply a configuration-change event from the configuration page.

        Args:
            response: URL-encoded JSON configuration; empty when the user cancelled.

        Returns:
            The applied configuration, or None if nothing was applied.
        """
        if not response:
            logger.info("Configuration page closed without changes")
            return None
        try:
            config = decode_configuration(response)
        except ConfigurationRejected as exc:
            logger.warning("Keeping previous configuration: %s", exc)
            return None

        applied = self.replace(config)
        for listener in self._listeners:
            await listener(applied)
        return applied

    def configuration_url(self, base_url: str) -> str:
        """Build the configuration page URL carrying the device capabilities."""
        params = {
            "platform": self._profile.platform,
            "mono": 1 if self._profile.monochrome else 0,
            "rows": self._profile.row_count,
        }
        if self._profile.forced_color:
            params["forced_color"] = self._profile.forced_color
        separator = "&" if "?" in base_url else "?"
        fragment = quote(json.dumps(self._config.to_payload(), separators=(",", ":")))
        return f"{base_url}{separator}{urlencode(params)}#{fragment}"

    def _default_row(self, index: int) -> Row:
        if index < len(self._defaults.rows):
            return self._defaults.rows[index]
        return Row(type=RowType.TIME)
