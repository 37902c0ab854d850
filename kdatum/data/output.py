"""
Output accumulation of datumed shot gathers.

Each shot owns a zero-initialised ``(nxgo, nt)`` buffer. Headers of accepted
traces are staged in arrival order and re-emitted in that same order, each
paired with the buffer slot of its gather.
"""

from __future__ import annotations

import math
from collections.abc import Iterator
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from kdatum.data.traces import TraceHeader
from kdatum.errors import GeometryRangeError
from kdatum.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class StagedHeader:
    """A staged header with its gather and slot."""

    header: TraceHeader
    gather: int
    slot: int


class OutputAccumulator:
    """
    Per-shot output buffers, gather counts and FIFO header staging.

    Args:
        n_shots: Number of shot gathers (nxso)
        n_receivers: Receiver slots per gather (nxgo)
        n_samples: Samples per trace (nt)
        dxgo: Receiver spacing
        v0: Reference wavespeed
    """

    def __init__(self, n_shots: int, n_receivers: int, n_samples: int, dxgo: float, v0: float):
        self.n_shots = n_shots
        self.n_receivers = n_receivers
        self.n_samples = n_samples
        self.dxgo = dxgo
        self.v0 = v0

        self._buffers = np.zeros((n_shots, n_receivers, n_samples), dtype=np.float64)
        self._counts = np.zeros(n_shots, dtype=np.int64)
        self._staged: list[StagedHeader] = []
        self._finalized = False

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def counts(self) -> NDArray[np.int64]:
        """Accepted traces per gather."""
        view = self._counts.view()
        view.flags.writeable = False
        return view

    @property
    def n_accepted(self) -> int:
        return len(self._staged)

    def global_scale(self, scale_user: float = 1.0) -> float:
        """Constant of the datuming integral: dxgo / sqrt(2 pi v0) * scale_user."""
        return self.dxgo / math.sqrt(2.0 * math.pi * self.v0) * scale_user

    def gather(self, io: int) -> NDArray[np.float64]:
        """
        Buffer of shot gather io, shape (nxgo, nt).

        Raises:
            GeometryRangeError: if io is not a valid gather index
        """
        if io < 0 or io >= self.n_shots:
            raise GeometryRangeError(
                f"Shot gather index {io} outside survey (nxso={self.n_shots})"
            )
        return self._buffers[io]

    def accept(self, header: TraceHeader, io: int) -> int:
        """
        Stage the header of an accepted trace of gather io.

        Returns:
            Slot of the trace within its gather (arrival ordinal)

        Raises:
            GeometryRangeError: on an invalid gather or more than nxgo traces in it
        """
        if self._finalized:
            raise RuntimeError("Output already finalized")
        self.gather(io)
        slot = int(self._counts[io])
        if slot >= self.n_receivers:
            raise GeometryRangeError(
                f"Shot gather {io} has more than nxgo={self.n_receivers} traces"
            )
        self._counts[io] += 1
        self._staged.append(StagedHeader(header=header, gather=io, slot=slot))
        return slot

    def finalize(self, scale_user: float = 1.0) -> NDArray[np.float64]:
        """
        Scale every gather by the global constant; buffers are read-only afterwards.

        Returns:
            Read-only buffers, shape (nxso, nxgo, nt)
        """
        if self._finalized:
            raise RuntimeError("Output already finalized")
        scale = self.global_scale(scale_user)
        self._buffers *= scale
        self._buffers.flags.writeable = False
        self._finalized = True
        logger.debug(f"Finalized {self.n_shots} gathers with scale {scale:.6g}")
        return self._buffers

    def iter_output(self) -> Iterator[tuple[TraceHeader, NDArray[np.float32]]]:
        """Yield (header, samples) in staging order."""
        if not self._finalized:
            raise RuntimeError("Output not finalized")
        for staged in self._staged:
            yield staged.header, self._buffers[staged.gather, staged.slot].astype(np.float32)
