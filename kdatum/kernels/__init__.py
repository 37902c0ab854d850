"""Numerical kernels for KDATUM.

The stationary-phase mapper lives in kdatum.kernels.stationary_phase and is
imported from there.
"""

from kdatum.kernels.filter import FilterPlan, apply_filter
from kdatum.kernels.interpolation import linear_sample, locate, snap_fraction

__all__ = [
    "FilterPlan",
    "apply_filter",
    "locate",
    "snap_fraction",
    "linear_sample",
]
