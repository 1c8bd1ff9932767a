"""Load and validate the watch-face defaults.

The defaults live in ``defaults.yaml`` alongside this module: the configuration
used before the user ever saved one, and the display table of every supported
watch platform.  They are loaded once and cached; ``reload_defaults()`` re-reads
the file without a restart.

Usage::

    from src.companion.config_loader import get_defaults

    defaults = get_defaults()
    profile = defaults.profile_for("aplite")      # monochrome, 5 rows
    config = defaults.configuration
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path

import yaml
from pydantic import ValidationError

from src.companion.base import MAX_ROWS, Configuration, DeviceProfile, PaletteClass

logger = logging.getLogger("supercgm.config")

# Path to the YAML file sitting next to this module
_DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


@dataclass(frozen=True)
class PlatformSpec:
    """Display capabilities of one watch platform."""

    name: str
    palette_class: PaletteClass
    row_count: int


@dataclass
class WatchfaceDefaults:
    """Validated contents of defaults.yaml.

    Attributes:
        version:          Schema version string.
        default_platform: Platform assumed when the device reports an unknown one.
        configuration:    Configuration used when nothing has been persisted.
        platforms:        Platform id → display capabilities.
    """

    version: str
    default_platform: str
    configuration: Configuration
    platforms: dict[str, PlatformSpec]
    _raw: dict = field(default_factory=dict, repr=False)

    def platform(self, name: str | None) -> PlatformSpec:
        """Return the spec for a platform, falling back to the default platform."""
        if name and name in self.platforms:
            return self.platforms[name]
        if name:
            logger.warning(
                "Unknown platform %r, assuming %s", name, self.default_platform
            )
        return self.platforms[self.default_platform]

    def profile_for(
        self,
        platform: str | None,
        monochrome: bool | None = None,
        row_count: int | None = None,
        forced_color: str | None = None,
    ) -> DeviceProfile:
        """Build the device profile for a platform, applying capability overrides.

        Args:
            platform:     Platform id reported by the device.
            monochrome:   Override the platform's palette class.
            row_count:    Override the platform's row count (clamped to 1–5).
            forced_color: Force every row to this single color.

        Returns:
            The DeviceProfile for this session.
        """
        spec = self.platform(platform)
        palette_class = spec.palette_class
        if monochrome is not None:
            palette_class = PaletteClass.MONOCHROME if monochrome else PaletteClass.COLOR
        if forced_color:
            palette_class = PaletteClass.SINGLE_COLOR
        rows = spec.row_count if row_count is None else row_count
        return DeviceProfile(
            platform=spec.name,
            palette_class=palette_class,
            row_count=min(max(rows, 1), MAX_ROWS),
            forced_color=forced_color or None,
        )


class ConfigValidationError(ValueError):
    """Raised when defaults.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Watch-face defaults not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _validate_and_build(raw: dict) -> WatchfaceDefaults:
    """Validate the raw YAML dict and construct WatchfaceDefaults.

    Raises:
        ConfigValidationError: If required sections are missing or invalid.
    """
    errors: list[str] = []

    version = str(raw.get("version", "1.0"))

    # ── Platforms ──
    platforms: dict[str, PlatformSpec] = {}
    platforms_raw = raw.get("platforms") or {}
    if not platforms_raw:
        errors.append("'platforms' section is missing or empty")
    for name, spec in platforms_raw.items():
        if not isinstance(spec, dict):
            errors.append(f"platforms.{name} must be a mapping")
            continue
        try:
            palette_class = PaletteClass(spec.get("palette", "color"))
        except ValueError:
            errors.append(f"platforms.{name}.palette {spec.get('palette')!r} is not a palette class")
            continue
        try:
            row_count = int(spec.get("rows", MAX_ROWS))
        except (TypeError, ValueError):
            errors.append(f"platforms.{name}.rows must be an integer, got {spec.get('rows')!r}")
            continue
        if not 1 <= row_count <= MAX_ROWS:
            errors.append(f"platforms.{name}.rows = {row_count} is out of range [1, {MAX_ROWS}]")
        platforms[name] = PlatformSpec(name=name, palette_class=palette_class, row_count=row_count)

    default_platform = raw.get("default_platform", "basalt")
    if platforms and default_platform not in platforms:
        errors.append(f"default_platform {default_platform!r} is not a configured platform")

    # ── Default configuration ──
    configuration: Configuration | None = None
    try:
        configuration = Configuration.model_validate(raw.get("configuration") or {})
    except ValidationError as exc:
        errors.append(f"configuration is invalid: {exc}")
    else:
        if len(configuration.rows) < MAX_ROWS:
            errors.append(
                f"configuration.rows must define all {MAX_ROWS} rows, got {len(configuration.rows)}"
            )

    if errors:
        raise ConfigValidationError(
            f"defaults.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    assert configuration is not None
    return WatchfaceDefaults(
        version=version,
        default_platform=default_platform,
        configuration=configuration,
        platforms=platforms,
        _raw=raw,
    )


def load_defaults(path: Path | None = None) -> WatchfaceDefaults:
    """Load and validate the defaults from disk.

    Args:
        path: Override path to YAML. Uses the bundled defaults.yaml by default.
    """
    target = path or _DEFAULTS_PATH
    raw = _load_yaml(target)
    defaults = _validate_and_build(raw)
    logger.info("Loaded watch-face defaults v%s from %s", defaults.version, target)
    return defaults


# ---------------------------------------------------------------------------
# Global singleton with reload support
# ---------------------------------------------------------------------------

_defaults: WatchfaceDefaults | None = None
_defaults_lock = threading.Lock()


def get_defaults() -> WatchfaceDefaults:
    """Return the cached WatchfaceDefaults, loading them on first call."""
    global _defaults
    if _defaults is None:
        with _defaults_lock:
            if _defaults is None:
                _defaults = load_defaults()
    return _defaults


def reload_defaults(path: Path | None = None) -> WatchfaceDefaults:
    """Reload the defaults from disk and replace the cached instance.

    If validation fails, the previous defaults are kept and the error is
    re-raised.
    """
    global _defaults
    new_defaults = load_defaults(path)
    with _defaults_lock:
        old_version = _defaults.version if _defaults else "none"
        _defaults = new_defaults
    logger.info("Reloaded watch-face defaults: %s → %s", old_version, new_defaults.version)
    return new_defaults
