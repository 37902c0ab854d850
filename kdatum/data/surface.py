"""
Recording and datuming surface model.

Both surfaces are sampled at ``nxi`` lateral nodes starting at ``fxi`` with
stride ``dxi``. Depth queries interpolate linearly between nodes; queries at or
beyond the last node are clamped onto the last segment.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

import numpy as np
from numpy.typing import NDArray

from kdatum.errors import GeometryRangeError, ResourceError
from kdatum.kernels.interpolation import locate
from kdatum.settings import get_settings
from kdatum.utils.logging import get_logger

logger = get_logger(__name__)


class SurfaceKind(str, Enum):
    """Which of the two surfaces a query addresses."""
    RECORDING = "recording"
    DATUM = "datum"


class ClampPolicy(str, Enum):
    """
    Weight assignment when a query falls at or beyond the last node.

    Both policies step back onto the last segment ``(nxi-2, nxi-1)``.
    LAST_NODE puts the full weight on node nxi-1, NEXT_TO_LAST_NODE on
    node nxi-2.
    """
    LAST_NODE = "last_node"
    NEXT_TO_LAST_NODE = "next_to_last_node"


def read_surface_file(path: Path | str, n: int) -> NDArray[np.float64]:
    """
    Read the first n depth values of a one-column text file.

    Raises:
        ResourceError: if the file cannot be read or holds fewer than n values
    """
    path = Path(path)
    try:
        text = path.read_text()
    except OSError as e:
        raise ResourceError(f"Cannot open surface file {path}: {e}") from e

    values: list[float] = []
    for line in text.splitlines():
        token = line.strip()
        if not token:
            continue
        try:
            values.append(float(token.split()[0]))
        except ValueError as e:
            raise ResourceError(f"Non-numeric value in surface file {path}: {token!r}") from e
        if len(values) == n:
            break

    if len(values) < n:
        raise ResourceError(
            f"Surface file {path} has {len(values)} values, {n} required"
        )
    logger.debug(f"Read {n} surface depths from {path}")
    return np.asarray(values, dtype=np.float64)


class SurfaceModel:
    """
    Sampled recording and datuming surfaces.

    Attributes:
        recording: Recording surface depth per node, shape (nxi,)
        datum: Datuming surface depth per node, shape (nxi,)
        fxi: Lateral coordinate of node 0
        dxi: Node spacing
    """

    def __init__(
        self,
        recording: NDArray[np.float64],
        datum: NDArray[np.float64],
        fxi: float,
        dxi: float,
    ):
        recording = np.ascontiguousarray(recording, dtype=np.float64)
        datum = np.ascontiguousarray(datum, dtype=np.float64)
        if recording.ndim != 1 or recording.shape != datum.shape:
            raise ValueError(
                f"Surface arrays must be 1D of equal length, got {recording.shape} and {datum.shape}"
            )
        if recording.shape[0] < 2:
            raise ValueError("A surface needs at least two nodes")
        if dxi <= 0:
            raise ValueError(f"Surface node spacing must be positive, got {dxi}")

        self.recording = recording
        self.datum = datum
        self.fxi = float(fxi)
        self.dxi = float(dxi)

    @classmethod
    def flat(cls, zrec: float, zdat: float, nxi: int, fxi: float, dxi: float) -> "SurfaceModel":
        """Constant-depth recording and datuming surfaces."""
        return cls(np.full(nxi, zrec), np.full(nxi, zdat), fxi, dxi)

    @classmethod
    def from_files(
        cls,
        nxi: int,
        fxi: float,
        dxi: float,
        zrec: float | None = None,
        recfile: Path | str | None = None,
        zdat: float | None = None,
        datfile: Path | str | None = None,
    ) -> "SurfaceModel":
        """
        Build surfaces from a constant depth or a file, per surface.

        A file takes precedence over a constant depth.
        """
        if recfile is not None:
            rec = read_surface_file(recfile, nxi)
        elif zrec is not None:
            rec = np.full(nxi, zrec, dtype=np.float64)
        else:
            raise ValueError("Recording surface needs zrec or recfile")

        if datfile is not None:
            dat = read_surface_file(datfile, nxi)
        elif zdat is not None:
            dat = np.full(nxi, zdat, dtype=np.float64)
        else:
            raise ValueError("Datuming surface needs zdat or datfile")

        return cls(rec, dat, fxi, dxi)

    @property
    def nxi(self) -> int:
        """Number of surface nodes."""
        return self.recording.shape[0]

    def _samples(self, surface: SurfaceKind) -> NDArray[np.float64]:
        return self.recording if surface == SurfaceKind.RECORDING else self.datum

    def node_and_weight(self, x: float, clamp: ClampPolicy) -> tuple[int, float]:
        """
        Locate x on the node grid.

        Returns:
            (left node mr, weight am of node mr+1)
        """
        tol = get_settings().numerics.snap_tolerance
        mr, am = locate(x, self.fxi, self.dxi, tol)
        if mr >= self.nxi - 1:
            mr = self.nxi - 2
            am = 1.0 if clamp == ClampPolicy.LAST_NODE else 0.0
        return mr, am

    def depth_at(
        self,
        surface: SurfaceKind,
        x: float,
        clamp: ClampPolicy = ClampPolicy.LAST_NODE,
    ) -> float:
        """Absolute interpolated depth of a surface at lateral position x."""
        z = self._samples(surface)
        mr, am = self.node_and_weight(x, clamp)
        return abs((1.0 - am) * z[mr] + am * z[mr + 1])

    def recording_depth(self, x: float) -> float:
        """Recording surface depth at a receiver or source position."""
        return self.depth_at(SurfaceKind.RECORDING, x, ClampPolicy.LAST_NODE)

    def datum_depth(self, x: float) -> float:
        """Datuming surface depth at an output location."""
        return self.depth_at(SurfaceKind.DATUM, x, ClampPolicy.NEXT_TO_LAST_NODE)

    def slope_at(self, x: float) -> float:
        """
        Recording surface slope dz/dx at the node of x.

        One-interval forward difference at node 0, two-interval centered
        difference elsewhere. The node is located with the receiver clamp.
        """
        z = self.recording
        mr, _ = self.node_and_weight(x, ClampPolicy.LAST_NODE)
        if mr == 0:
            return (z[1] - z[0]) / self.dxi
        return (z[mr + 1] - z[mr - 1]) / (2.0 * self.dxi)

    def check_coverage(self, fxin: float, nxe: int) -> None:
        """
        Ensure the surfaces cover a gather starting at fxin up to output index nxe.

        Raises:
            GeometryRangeError: if the gather extends past the last node
        """
        tol = get_settings().numerics.snap_tolerance
        mr, _ = locate(fxin, self.fxi, self.dxi, tol)
        if mr + nxe > self.nxi - 1:
            raise GeometryRangeError(
                f"Topography definition is out of range: gather at {fxin:g} needs node "
                f"{mr + nxe}, surface has {self.nxi} nodes"
            )
