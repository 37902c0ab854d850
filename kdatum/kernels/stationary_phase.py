"""
Stationary-phase receiver datuming kernel.

For one common-source trace, every output location ``x`` on the datuming
surface within the aperture receives, at each output time ``t0``, the
filtered input sample at ``t0 + tio`` weighted by a 2.5D amplitude factor.
The factor is evaluated at the stationary point of the data mapping
integral, found in closed form in a frame rotated onto the line from the
source to the output point:

    phi = atan((z - zsx) / (x - sx))          (pi/2 when x == sx)
    xp  = (x - sx) cos(phi) + (z - zsx) sin(phi),  hp = xp / 2
    gxp, gzp = receiver (gx, zi) in the rotated frame

    h == 0:  xst = hp + v0 t0 / 2,  zst = 0
    h != 0:  zst = sqrt(s + p^2) - p,  xst = (gxp - xp) / gzp * zst + xp

    weight = g sqrt(rs + rig) / rig / (sqrt(rs + rog) sqrt|rig - rog|)
    g      = (zs - zi) - dzde (xs - gx)

Invalid stationary points zero the contribution and are reported as a
GuardReason; geometry outside the tables or surfaces raises.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum

import numpy as np
from numba import njit
from numpy.typing import NDArray

from kdatum.data.surface import SurfaceModel
from kdatum.data.traces import Trace
from kdatum.data.traveltime import TraveltimeTableStore
from kdatum.errors import GeometryRangeError, NumericalDegeneracyError
from kdatum.kernels.interpolation import linear_sample
from kdatum.settings import get_settings
from kdatum.utils.logging import get_logger

logger = get_logger(__name__)


class GuardReason(IntEnum):
    """Why a stationary-point contribution was zeroed."""
    NONE = 0
    BEFORE_ARRIVAL = 1
    SUB_RESOLUTION = 2
    NEGATIVE_DEPTH = 3
    NOT_BELOW_OUTPUT = 4
    NEGATIVE_LENGTH = 5
    NON_FINITE = 6


# Kernel-side copies of GuardReason
_NONE = 0
_BEFORE_ARRIVAL = 1
_SUB_RESOLUTION = 2
_NEGATIVE_DEPTH = 3
_NOT_BELOW_OUTPUT = 4
_NEGATIVE_LENGTH = 5
_NON_FINITE = 6
N_GUARD_CODES = 7

# Output location modes
MODE_SKIP = 0
MODE_STATIONARY = 1
MODE_PASSTHROUGH = 2


# =============================================================================
# Low-level Numba JIT functions
# =============================================================================


@njit(cache=True)
def _rotated_frame(
    x: float, z: float, sx: float, zsx: float, gx: float, zi: float
) -> tuple[float, float, float, float]:
    """Rotation angle, output abscissa and receiver coordinates in the source frame."""
    if x == sx:
        phi = np.pi / 2.0
    else:
        phi = np.arctan((z - zsx) / (x - sx))
    c = np.cos(phi)
    s = np.sin(phi)
    xp = (x - sx) * c + (z - zsx) * s
    gxp = (gx - sx) * c + (zi - zsx) * s
    gzp = -(gx - sx) * s + (zi - zsx) * c
    return phi, xp, gxp, gzp


@njit(cache=True)
def _stationary_point(
    t0: float, h: float, xp: float, gxp: float, gzp: float, v0: float
) -> tuple[float, float, bool]:
    """Stationary point (xst, zst) in the rotated frame; False if it is undefined."""
    hp = 0.5 * xp
    if h == 0.0:
        return hp + v0 * t0 / 2.0, 0.0, True

    ctau = (v0 * t0) * (v0 * t0)
    if ctau == 0.0 or gzp == 0.0:
        return 0.0, 0.0, False

    q = (ctau - 4.0 * hp * hp) / (4.0 * ctau)
    dgx = gxp - xp
    denom = gzp * gzp + 4.0 * q * dgx * dgx
    if denom == 0.0:
        return 0.0, 0.0, False

    p = 2.0 * q * dgx * xp * gzp / denom
    s = q * gzp * gzp * (ctau - xp * xp) / denom
    disc = s + p * p
    if not np.isfinite(disc) or disc < 0.0:
        return 0.0, 0.0, False

    zst = np.sqrt(disc) - p
    xst = (dgx / gzp) * zst + xp
    return xst, zst, True


@njit(cache=True)
def _evaluate(
    t0: float,
    sing: float,
    h: float,
    phi: float,
    xp: float,
    gxp: float,
    gzp: float,
    sx: float,
    zsx: float,
    gx: float,
    zi: float,
    dzde: float,
    v0: float,
    min_contrast: float,
    sing_tol: float,
) -> tuple[float, int, float, float, float, float, float]:
    """
    Amplitude weight at one output time.

    Returns:
        (weight, guard code, xs, zs, rig, rog, rs)
    """
    nan = np.nan
    if t0 < sing + sing_tol:
        return 0.0, _BEFORE_ARRIVAL, nan, nan, nan, nan, nan

    xst, zst, ok = _stationary_point(t0, h, xp, gxp, gzp, v0)
    if not ok:
        return 0.0, _NON_FINITE, nan, nan, nan, nan, nan

    c = np.cos(phi)
    s = np.sin(phi)
    xs = xst * c - zst * s + sx
    zs = xst * s + zst * c + zsx

    rig = np.sqrt((xst - gxp) * (xst - gxp) + (zst - gzp) * (zst - gzp))
    rog = np.sqrt((xst - xp) * (xst - xp) + zst * zst)
    rs = np.sqrt(xst * xst + zst * zst)

    if not (np.isfinite(xs) and np.isfinite(zs) and np.isfinite(rig)
            and np.isfinite(rog) and np.isfinite(rs)):
        return 0.0, _NON_FINITE, xs, zs, rig, rog, rs
    if rig - rog < min_contrast:
        return 0.0, _SUB_RESOLUTION, xs, zs, rig, rog, rs
    if zs < 0.0:
        return 0.0, _NEGATIVE_DEPTH, xs, zs, rig, rog, rs
    if rig <= rog:
        return 0.0, _NOT_BELOW_OUTPUT, xs, zs, rig, rog, rs
    if rig < 0.0 or rog < 0.0 or rs < 0.0:
        return 0.0, _NEGATIVE_LENGTH, xs, zs, rig, rog, rs

    denom = np.sqrt(rs + rog) * np.sqrt(abs(rig - rog))
    if denom == 0.0:
        return 0.0, _NON_FINITE, xs, zs, rig, rog, rs

    g = (zs - zi) - dzde * (xs - gx)
    weight = g * np.sqrt(rs + rig) / rig / denom
    if not np.isfinite(weight):
        return 0.0, _NON_FINITE, xs, zs, rig, rog, rs
    return weight, _NONE, xs, zs, rig, rog, rs


@njit(cache=True)
def _accumulate_trace(
    raw: np.ndarray,
    filtered: np.ndarray,
    buffer: np.ndarray,
    nxf: int,
    modes: np.ndarray,
    shifts: np.ndarray,
    sings: np.ndarray,
    phis: np.ndarray,
    xps: np.ndarray,
    gxps: np.ndarray,
    gzps: np.ndarray,
    ft: float,
    dt: float,
    h: float,
    sx: float,
    zsx: float,
    gx: float,
    zi: float,
    dzde: float,
    v0: float,
    min_contrast: float,
    sing_tol: float,
    guard_counts: np.ndarray,
) -> int:
    """
    Scatter-add one trace into its gather buffer.

    Output location ``nxf + k`` uses entry k of the per-location arrays.
    Samples whose source position falls off the trace are skipped.

    Returns:
        Number of non-zero contributions
    """
    nt = buffer.shape[1]
    n_contrib = 0

    for k in range(modes.shape[0]):
        mode = modes[k]
        if mode == MODE_SKIP:
            continue
        ix = nxf + k
        at = shifts[k]

        for it in range(nt):
            pos = it + at

            if mode == MODE_PASSTHROUGH:
                value, valid = linear_sample(raw, pos)
                if not valid:
                    continue
                buffer[ix, it] += value
                guard_counts[_NONE] += 1
                n_contrib += 1
                continue

            value, valid = linear_sample(filtered, pos)
            if not valid:
                continue

            t0 = ft + it * dt
            weight, code, _, _, _, _, _ = _evaluate(
                t0, sings[k], h, phis[k], xps[k], gxps[k], gzps[k],
                sx, zsx, gx, zi, dzde, v0, min_contrast, sing_tol,
            )
            guard_counts[code] += 1
            if code == _NONE:
                buffer[ix, it] += value * weight
                n_contrib += 1

    return n_contrib


# =============================================================================
# Python API
# =============================================================================


@dataclass(frozen=True)
class RotatedFrame:
    """Source-centred frame rotated onto the source-to-output line."""

    phi: float
    xp: float
    gxp: float
    gzp: float

    @property
    def hp(self) -> float:
        """Half of the rotated output abscissa."""
        return 0.5 * self.xp


def rotated_frame(x: float, z: float, sx: float, zsx: float, gx: float, zi: float) -> RotatedFrame:
    """Build the rotated frame of output point (x, z) for source (sx, zsx) and receiver (gx, zi)."""
    phi, xp, gxp, gzp = _rotated_frame(x, z, sx, zsx, gx, zi)
    return RotatedFrame(phi=float(phi), xp=float(xp), gxp=float(gxp), gzp=float(gzp))


@dataclass(frozen=True)
class StationaryPointResult:
    """Outcome of one stationary-point evaluation."""

    weight: float
    reason: GuardReason
    xs: float
    zs: float
    rig: float
    rog: float
    rs: float
    passthrough: bool = False

    @property
    def valid(self) -> bool:
        """True if the contribution is kept."""
        return self.reason == GuardReason.NONE


def evaluate_stationary_point(
    t0: float,
    x: float,
    z: float,
    sx: float,
    zsx: float,
    gx: float,
    zi: float,
    dzde: float,
    v0: float,
    freq: float,
) -> StationaryPointResult:
    """
    Evaluate the stationary point and amplitude weight for one output sample.

    Args:
        t0: Output time
        x, z: Output location on the datuming surface
        sx, zsx: Source position on the recording surface
        gx, zi: Receiver position on the recording surface
        dzde: Recording surface slope at the receiver
        v0: Reference wavespeed
        freq: Dominant frequency

    Raises:
        NumericalDegeneracyError: zero rotated half-offset with a non-zero offset
    """
    h = abs(gx - sx) / 2.0
    frame = rotated_frame(x, z, sx, zsx, gx, zi)

    if frame.hp == 0.0:
        if h != 0.0:
            raise NumericalDegeneracyError(
                f"Datum and recording surface overlap at x={x:g}, z={z:g}"
            )
        return StationaryPointResult(
            weight=1.0, reason=GuardReason.NONE, xs=gx, zs=zi,
            rig=0.0, rog=0.0, rs=0.0, passthrough=True,
        )

    numerics = get_settings().numerics
    sing = np.hypot(x - sx, z - zsx) / v0
    weight, code, xs, zs, rig, rog, rs = _evaluate(
        t0, sing, h, frame.phi, frame.xp, frame.gxp, frame.gzp,
        sx, zsx, gx, zi, dzde, v0, v0 / (4.0 * freq), numerics.singular_time_tolerance,
    )
    return StationaryPointResult(
        weight=float(weight), reason=GuardReason(code),
        xs=float(xs), zs=float(zs), rig=float(rig), rog=float(rog), rs=float(rs),
    )


@dataclass
class TraceMappingResult:
    """Outcome of mapping one trace into its gather."""

    nxf: int
    nxe: int
    n_locations: int = 0
    n_contributions: int = 0
    guard_counts: dict[GuardReason, int] = field(default_factory=dict)

    @property
    def n_guarded(self) -> int:
        """Samples zeroed by a guard."""
        return sum(n for reason, n in self.guard_counts.items() if reason != GuardReason.NONE)


class StationaryPhaseMapper:
    """
    Maps filtered common-source traces onto the datuming surface.

    Args:
        table: Traveltime tables
        surface: Recording and datuming surfaces
        nxgo: Receiver slots per gather
        dxgo: Receiver spacing
        fzo: Top of the depth grid
        depth_limit: Depths at or below this value are outside the tables
        v0: Reference wavespeed
        freq: Dominant frequency
    """

    def __init__(
        self,
        table: TraveltimeTableStore,
        surface: SurfaceModel,
        nxgo: int,
        dxgo: float,
        fzo: float,
        depth_limit: float,
        v0: float,
        freq: float,
    ):
        self.table = table
        self.surface = surface
        self.nxgo = nxgo
        self.dxgo = dxgo
        self.fzo = fzo
        self.depth_limit = depth_limit
        self.v0 = v0
        self.freq = freq

    @property
    def min_path_contrast(self) -> float:
        """Sub-resolution threshold on rig - rog."""
        return self.v0 / (4.0 * self.freq)

    def output_range(self, gx: float, aperture: float, fxin: float) -> tuple[int, int]:
        """Output slot range [nxf, nxe] covered by the aperture around gx."""
        nxf = int((gx - aperture - fxin) / self.dxgo)
        if nxf < 0:
            nxf = 0
        nxe = int((gx + aperture - fxin) / self.dxgo)
        if nxe >= self.nxgo:
            nxe = self.nxgo - 1
        return nxf, nxe

    def _recording_depth(self, x: float, what: str) -> float:
        """
        Recording depth at x, required to lie in [fzo, depth_limit).

        Unlike the datuming surface, the recording surface may sit on the top
        of the tables: receivers at z = 0 over tables starting at z = 0 are
        the common land case, and zi never indexes the tables.
        """
        zr = self.surface.recording_depth(x)
        if zr < self.fzo or zr >= self.depth_limit:
            raise GeometryRangeError(
                f"Recording surface is out of range at {what} x={x:g}: z={zr:g} "
                f"outside [{self.fzo:g}, {self.depth_limit:g})"
            )
        return zr

    def map_trace(
        self,
        trace: Trace,
        filtered: NDArray[np.floating],
        table2d: NDArray[np.float32],
        aperture: float,
        buffer: NDArray[np.float64],
        fxin: float,
    ) -> TraceMappingResult:
        """
        Accumulate one trace into its gather buffer.

        Args:
            trace: Input trace (unfiltered samples)
            filtered: Filtered samples of the trace
            table2d: Source-blended traveltime table at the receiver, (nxt, nzt)
            aperture: Lateral half-aperture
            buffer: Gather buffer (nxgo, nt), modified in place
            fxin: Lateral coordinate of output slot 0 of this gather

        Raises:
            GeometryRangeError: surfaces outside the tables or not covering the gather
            NumericalDegeneracyError: zero rotated half-offset with a non-zero offset
        """
        sx, gx = trace.sx, trace.gx
        h = abs(gx - sx) / 2.0

        nxf, nxe = self.output_range(gx, aperture, fxin)
        self.surface.check_coverage(fxin, nxe)

        zi = self._recording_depth(gx, "receiver")
        dzde = self.surface.slope_at(gx)
        zsx = self._recording_depth(sx, "source")

        n = max(nxe - nxf + 1, 0)
        modes = np.zeros(n, dtype=np.int64)
        shifts = np.zeros(n, dtype=np.float64)
        sings = np.zeros(n, dtype=np.float64)
        phis = np.zeros(n, dtype=np.float64)
        xps = np.zeros(n, dtype=np.float64)
        gxps = np.zeros(n, dtype=np.float64)
        gzps = np.zeros(n, dtype=np.float64)

        for k in range(n):
            x = fxin + (nxf + k) * self.dxgo
            column = self.table.interpolated_column(table2d, x)

            z = self.surface.datum_depth(x)
            if z <= self.fzo or z >= self.depth_limit:
                raise GeometryRangeError(
                    f"Datuming surface is out of travel time range at x={x:g}: z={z:g} "
                    f"outside ({self.fzo:g}, {self.depth_limit:g})"
                )

            tio = self.table.time_at_depth(column, z, self.fzo)
            shifts[k] = (tio - trace.ft) / trace.dt

            # Receivers left of the source are not part of this gather
            if x < sx:
                continue

            phi, xp, gxp, gzp = _rotated_frame(x, z, sx, zsx, gx, zi)
            if 0.5 * xp == 0.0:
                if h != 0.0:
                    raise NumericalDegeneracyError(
                        f"Datum and recording surface overlap at x={x:g}, z={z:g}"
                    )
                modes[k] = MODE_PASSTHROUGH
                continue

            modes[k] = MODE_STATIONARY
            sings[k] = np.hypot(x - sx, z - zsx) / self.v0
            phis[k] = phi
            xps[k] = xp
            gxps[k] = gxp
            gzps[k] = gzp

        counts = np.zeros(N_GUARD_CODES, dtype=np.int64)
        n_contrib = _accumulate_trace(
            np.ascontiguousarray(trace.data, dtype=np.float64),
            np.ascontiguousarray(filtered, dtype=np.float64),
            buffer,
            nxf,
            modes,
            shifts,
            sings,
            phis,
            xps,
            gxps,
            gzps,
            float(trace.ft),
            float(trace.dt),
            float(h),
            float(sx),
            float(zsx),
            float(gx),
            float(zi),
            float(dzde),
            float(self.v0),
            float(self.min_path_contrast),
            float(get_settings().numerics.singular_time_tolerance),
            counts,
        )

        return TraceMappingResult(
            nxf=nxf,
            nxe=nxe,
            n_locations=int(np.count_nonzero(modes)),
            n_contributions=int(n_contrib),
            guard_counts={GuardReason(i): int(c) for i, c in enumerate(counts) if c},
        )
