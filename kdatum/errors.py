"""
Error taxonomy for KDATUM.

Every fatal condition of a datuming run is a subclass of DatumingError and
aborts the run without output. Amplitude validity guards are not errors:
they are reported as GuardReason values by the mapping kernel.
"""

from __future__ import annotations


class DatumingError(Exception):
    """Base class for fatal datuming errors."""


class ConfigurationError(DatumingError, ValueError):
    """Missing or inconsistent parameters, detected before processing."""


class ResourceError(DatumingError, OSError):
    """A table, surface or trace file cannot be opened or is too short."""


class GeometryRangeError(DatumingError):
    """Survey or surface geometry falls outside the traveltime table or surface coverage."""


class NumericalDegeneracyError(DatumingError):
    """The rotated stationary-phase frame has zero width for a non-zero offset."""


__all__ = [
    "DatumingError",
    "ConfigurationError",
    "ResourceError",
    "GeometryRangeError",
    "NumericalDegeneracyError",
]
