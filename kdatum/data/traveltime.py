"""
Traveltime table store.

Tables are one-way traveltimes from every grid point ``(x, z)`` to each of
``ns`` source positions. On disk they are raw float32 values, ``ns``
consecutive slices of ``nxt * nzt`` values, lateral-major and depth-minor.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

from kdatum.errors import ResourceError
from kdatum.kernels.interpolation import locate, snap_fraction
from kdatum.settings import get_settings
from kdatum.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class TableGeometry:
    """Regular grid of a traveltime table."""

    fzt: float
    nzt: int
    dzt: float
    fxt: float
    nxt: int
    dxt: float
    fs: float
    ns: int
    ds: float

    @property
    def ext(self) -> float:
        """Last lateral sample."""
        return self.fxt + (self.nxt - 1) * self.dxt

    @property
    def ezt(self) -> float:
        """Last depth sample."""
        return self.fzt + (self.nzt - 1) * self.dzt

    @property
    def es(self) -> float:
        """Lateral coordinate of the last source."""
        return self.fs + (self.ns - 1) * self.ds

    @property
    def slice_size(self) -> int:
        """Number of values per source slice."""
        return self.nxt * self.nzt


def weighted_sum(
    a1: float,
    a2: float,
    t1: NDArray[np.float32],
    t2: NDArray[np.float32],
) -> NDArray[np.float32]:
    """Combine two tables of equal shape as a1*t1 + a2*t2."""
    if t1.shape != t2.shape:
        raise ValueError(f"Table shapes differ: {t1.shape} vs {t2.shape}")
    return (a1 * t1 + a2 * t2).astype(np.float32, copy=False)


class TraveltimeTableStore:
    """
    In-memory traveltime tables, shape (ns, nxt, nzt), read-only after load.
    """

    def __init__(self, tables: NDArray[np.float32], geometry: TableGeometry):
        expected = (geometry.ns, geometry.nxt, geometry.nzt)
        if tables.shape != expected:
            raise ValueError(f"Table shape {tables.shape} does not match geometry {expected}")
        self._tables = np.ascontiguousarray(tables, dtype=np.float32)
        self._tables.flags.writeable = False
        self.geometry = geometry

    @classmethod
    def from_file(cls, path: Path | str, geometry: TableGeometry) -> "TraveltimeTableStore":
        """
        Read ns source slices from a raw float32 file.

        Each slice is read at its own offset.

        Raises:
            ResourceError: if the file is missing or too short
        """
        path = Path(path)
        n = geometry.slice_size
        tables = np.empty((geometry.ns, geometry.nxt, geometry.nzt), dtype=np.float32)

        try:
            with open(path, "rb") as f:
                for i in range(geometry.ns):
                    f.seek(i * n * 4)
                    raw = f.read(n * 4)
                    if len(raw) < n * 4:
                        raise ResourceError(
                            f"Traveltime table {path} is too short: source slice {i} "
                            f"has {len(raw) // 4} of {n} values"
                        )
                    tables[i] = np.frombuffer(raw, dtype=np.float32).reshape(
                        geometry.nxt, geometry.nzt
                    )
        except FileNotFoundError as e:
            raise ResourceError(f"Cannot open traveltime table {path}") from e
        except ResourceError:
            raise
        except OSError as e:
            raise ResourceError(f"Cannot read traveltime table {path}: {e}") from e

        logger.info(
            f"Loaded traveltime tables: ns={geometry.ns} nxt={geometry.nxt} nzt={geometry.nzt}"
        )
        return cls(tables, geometry)

    @property
    def tables(self) -> NDArray[np.float32]:
        """Read-only table array (ns, nxt, nzt)."""
        return self._tables

    def slice(self, source_index: int) -> NDArray[np.float32]:
        """Table of one source, shape (nxt, nzt)."""
        return self._tables[source_index]

    def source_interpolated_table(self, x: float) -> NDArray[np.float32]:
        """
        Blend the two source slices bracketing lateral position x.

        The lower slice index is held at ns-2 so the upper one never exceeds
        ns-1.
        """
        g = self.geometry
        if g.ns == 1:
            return self._tables[0].copy()

        tol = get_settings().numerics.snap_tolerance
        a = (x - g.fs) / g.ds
        i = int(a)
        if i >= g.ns - 1:
            i = g.ns - 2
        if i < 0:
            i = 0
        res = snap_fraction(a - i, tol)
        return weighted_sum(1.0 - res, res, self._tables[i], self._tables[i + 1])

    def interpolated_column(self, table2d: NDArray[np.float32], x: float) -> NDArray[np.float64]:
        """
        Traveltime versus depth at lateral position x, shape (nzt,).

        Blends columns jx and jx+1 of a (nxt, nzt) table. Positions at or
        beyond the last column use the last column.
        """
        g = self.geometry
        tol = get_settings().numerics.snap_tolerance
        jx, ax = locate(x, g.fxt, g.dxt, tol)
        if jx >= g.nxt - 1:
            jx = g.nxt - 2
            ax = 1.0
        return (1.0 - ax) * table2d[jx].astype(np.float64) + ax * table2d[jx + 1]

    def time_at_depth(self, column: NDArray[np.float64], z: float, fzo: float) -> float:
        """Linear interpolation of a traveltime column at depth z."""
        g = self.geometry
        az = (z - fzo) / g.dzt
        jz = int(az)
        if jz >= g.nzt - 1:
            jz = g.nzt - 2
        sz = az - jz
        return float((1.0 - sz) * column[jz] + sz * column[jz + 1])
