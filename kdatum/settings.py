"""
KDATUM Application Settings

Numerical tolerances and I/O defaults that are not part of a job
configuration. Users can modify settings via:
1. Settings file (~/.kdatum/settings.toml or custom path)
2. Environment variables (KDATUM_*)
3. Programmatic access via the SettingsManager singleton
"""

from __future__ import annotations

import json
import os
import tomllib
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

import tomli_w


# =============================================================================
# Settings Data Classes
# =============================================================================


@dataclass
class NumericsSettings:
    """Tolerances used by the datuming kernels."""

    # Interpolation weights within this distance of 0 or 1 are snapped
    snap_tolerance: float = 0.01

    # Output times closer than this to the direct arrival carry no energy (s)
    singular_time_tolerance: float = 1e-10

    # Padded FFT length must stay below this
    max_fft_length: int = 720720

    # Traces are padded to at least this multiple of their length
    fft_padding_factor: int = 2


@dataclass
class IOSettings:
    """I/O and data handling parameters."""

    # Trace reading
    trace_chunk_size: int = 1000  # Traces per read chunk

    # Compression
    zarr_compressor: str = "blosc"
    zarr_compression_level: int = 3


@dataclass
class ApplicationSettings:
    """Root settings container with all subsections."""

    numerics: NumericsSettings = field(default_factory=NumericsSettings)
    io: IOSettings = field(default_factory=IOSettings)

    def to_dict(self) -> dict[str, Any]:
        """Convert to nested dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ApplicationSettings":
        """Create from nested dictionary."""
        return cls(
            numerics=NumericsSettings(**data.get("numerics", {})),
            io=IOSettings(**data.get("io", {})),
        )


# =============================================================================
# Settings Manager - Singleton for Global Access
# =============================================================================


class SettingsManager:
    """
    Singleton manager for application settings.

    Usage:
        from kdatum.settings import get_settings

        s = get_settings()
        print(s.numerics.snap_tolerance)

        # Load from file
        load_settings("my_settings.toml")
    """

    _instance: "SettingsManager | None" = None
    _settings: ApplicationSettings
    _settings_path: Path | None = None

    def __new__(cls) -> "SettingsManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
            cls._instance._settings = ApplicationSettings()
            cls._instance._settings_path = None
        return cls._instance

    @property
    def settings(self) -> ApplicationSettings:
        """Get current settings."""
        return self._settings

    @property
    def path(self) -> Path | None:
        """Get path of loaded settings file."""
        return self._settings_path

    def reset(self) -> None:
        """Reset to default settings."""
        self._settings = ApplicationSettings()
        self._settings_path = None

    def update(self, **kwargs) -> None:
        """Update settings from keyword arguments like numerics.snap_tolerance=0.02."""
        for key, value in kwargs.items():
            parts = key.split(".")
            obj = self._settings
            for part in parts[:-1]:
                obj = getattr(obj, part)
            if not hasattr(obj, parts[-1]):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(obj, parts[-1], value)

    def load_from_file(self, path: Path | str) -> None:
        """Load settings from TOML or JSON file."""
        path = Path(path)

        if not path.exists():
            raise FileNotFoundError(f"Settings file not found: {path}")

        with open(path, "rb") as f:
            if path.suffix == ".toml":
                data = tomllib.load(f)
            elif path.suffix == ".json":
                data = json.load(f)
            else:
                raise ValueError(f"Unsupported file format: {path.suffix}")

        self._settings = ApplicationSettings.from_dict(data)
        self._settings_path = path

    def save_to_file(self, path: Path | str) -> None:
        """Save settings to TOML or JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        data = self._settings.to_dict()

        if path.suffix == ".toml":
            with open(path, "wb") as f:
                tomli_w.dump(data, f)
        elif path.suffix == ".json":
            with open(path, "w") as f:
                json.dump(data, f, indent=2)
        else:
            raise ValueError(f"Unsupported file format: {path.suffix}")

        self._settings_path = path

    def load_from_env(self) -> None:
        """Load settings from environment variables (KDATUM_SECTION__NAME)."""
        for key, value in os.environ.items():
            if not key.startswith("KDATUM_") or key == "KDATUM_SETTINGS_PATH":
                continue
            # KDATUM_NUMERICS__SNAP_TOLERANCE -> numerics.snap_tolerance
            setting_key = key[7:].lower().replace("__", ".")

            parsed: Any = value
            if value.lower() in ("true", "false"):
                parsed = value.lower() == "true"
            else:
                try:
                    parsed = int(value)
                except ValueError:
                    try:
                        parsed = float(value)
                    except ValueError:
                        parsed = value

            try:
                self.update(**{setting_key: parsed})
            except AttributeError:
                continue  # not a known setting

    def get_default_path(self) -> Path:
        """Get default settings file path."""
        if "KDATUM_SETTINGS_PATH" in os.environ:
            return Path(os.environ["KDATUM_SETTINGS_PATH"])
        return Path.home() / ".kdatum" / "settings.toml"

    def auto_load(self) -> bool:
        """
        Load settings from default locations.

        Search order:
        1. KDATUM_SETTINGS_PATH environment variable
        2. ./kdatum_settings.toml (current directory)
        3. ~/.kdatum/settings.toml (user config)

        Environment overrides are applied last in every case.

        Returns:
            True if a settings file was loaded, False if using defaults
        """
        candidates = []
        if "KDATUM_SETTINGS_PATH" in os.environ:
            candidates.append(Path(os.environ["KDATUM_SETTINGS_PATH"]))
        candidates.append(Path("kdatum_settings.toml"))
        candidates.append(Path.home() / ".kdatum" / "settings.toml")

        loaded = False
        for candidate in candidates:
            if candidate.exists():
                self.load_from_file(candidate)
                loaded = True
                break

        self.load_from_env()
        return loaded


# =============================================================================
# Module-Level Convenience Functions
# =============================================================================


_manager = SettingsManager()


def get_settings() -> ApplicationSettings:
    """Get the current application settings."""
    return _manager.settings


def get_settings_manager() -> SettingsManager:
    """Get the settings manager singleton."""
    return _manager


def load_settings(path: Path | str) -> ApplicationSettings:
    """Load settings from file and return them."""
    _manager.load_from_file(path)
    return _manager.settings


def save_settings(path: Path | str | None = None) -> Path:
    """Save current settings to file (default location if None)."""
    target = Path(path) if path is not None else _manager.get_default_path()
    _manager.save_to_file(target)
    return target


def reset_settings() -> ApplicationSettings:
    """Reset settings to defaults."""
    _manager.reset()
    return _manager.settings
