"""
KDATUM - 2.5D Kirchhoff receiver datuming

Stationary-phase redatuming of common-source gathers from a recording
surface to a datuming surface.
"""

__version__ = "0.1.0"

from kdatum.config.models import DatumingConfig, load_config
from kdatum.errors import (
    ConfigurationError,
    DatumingError,
    GeometryRangeError,
    NumericalDegeneracyError,
    ResourceError,
)
from kdatum.settings import (
    ApplicationSettings,
    get_settings,
    load_settings,
    reset_settings,
    save_settings,
)

__all__ = [
    "DatumingConfig",
    "load_config",
    "__version__",
    # Errors
    "DatumingError",
    "ConfigurationError",
    "ResourceError",
    "GeometryRangeError",
    "NumericalDegeneracyError",
    # Settings
    "get_settings",
    "load_settings",
    "save_settings",
    "reset_settings",
    "ApplicationSettings",
]
