"""
Grid location helpers shared by the surface, table and mapping code.

A coordinate is split into an integer node and a fractional weight. Weights
within ``tol`` of 0 or 1 are snapped to the endpoint to keep floating noise
out of the interpolation.
"""

from __future__ import annotations

import numpy as np
from numba import njit


@njit(cache=True)
def snap_fraction(frac: float, tol: float) -> float:
    """Snap an interpolation weight to 0 or 1 when it is within tol of either."""
    if frac <= tol:
        return 0.0
    if frac >= 1.0 - tol:
        return 1.0
    return frac


@njit(cache=True)
def locate(coord: float, origin: float, step: float, tol: float) -> tuple[int, float]:
    """
    Split a coordinate into a node index and a snapped fraction.

    The index is truncated toward zero and never negative.

    Args:
        coord: Query coordinate
        origin: Coordinate of node 0
        step: Node spacing
        tol: Snap tolerance

    Returns:
        (node index, fraction toward the next node)
    """
    a = (coord - origin) / step
    i = int(a)
    frac = snap_fraction(a - i, tol)
    if i < 0:
        i = 0
    return i, frac


@njit(cache=True)
def linear_sample(trace: np.ndarray, position: float) -> tuple[float, bool]:
    """
    Linear interpolation of a trace at a fractional sample position.

    The last sample is reachable only with a zero fraction.

    Returns:
        (value, valid) where valid is False when the position is off the trace
    """
    n = trace.shape[0]
    i0 = int(np.floor(position))
    frac = position - i0
    if i0 < 0 or i0 > n - 1:
        return 0.0, False
    if i0 == n - 1:
        if frac == 0.0:
            return trace[i0], True
        return 0.0, False
    return (1.0 - frac) * trace[i0] + frac * trace[i0 + 1], True
