"""
Frequency-domain 2.5D trace filter.

Multiplies the spectrum by ``sqrt(|w|)`` and rotates its phase by 45 degrees,
the sign of the rotation following the sign of the frequency. With the
``exp(-i w t)`` forward convention of ``scipy.fft`` the operator is
``sqrt(-i w)``, the half-order time derivative needed by the point-source
amplitude correction.

A FilterPlan holds the padded length and the operator for one ``(nt, dt)``
pair and is passed to every call; traces with another sampling are rejected.
"""

from __future__ import annotations

import math

import numpy as np
from numpy.typing import NDArray
from scipy import fft as sp_fft

from kdatum.errors import ConfigurationError
from kdatum.settings import get_settings
from kdatum.utils.logging import get_logger

logger = get_logger(__name__)


class FilterPlan:
    """
    Cached FFT length and operator for traces of nt samples at interval dt.

    Args:
        nt: Number of samples per trace
        dt: Sample interval in seconds

    Raises:
        ConfigurationError: if the padded length reaches the supported maximum
    """

    def __init__(self, nt: int, dt: float):
        if nt < 1:
            raise ConfigurationError(f"Trace length must be positive, got nt={nt}")
        if dt <= 0:
            raise ConfigurationError(f"Sample interval must be positive, got dt={dt}")

        numerics = get_settings().numerics
        nfft = sp_fft.next_fast_len(numerics.fft_padding_factor * nt, real=True)
        if nfft >= numerics.max_fft_length:
            raise ConfigurationError(
                f"Padded nt={nfft} too big (maximum {numerics.max_fft_length})"
            )

        self.nt = nt
        self.dt = dt
        self.nfft = nfft

        omega = 2.0 * np.pi * sp_fft.rfftfreq(nfft, d=dt)
        amp = np.sqrt(omega)
        rotation = np.exp(-1j * np.pi / 4.0)

        self._forward = amp * rotation
        inverse = np.zeros_like(self._forward)
        inverse[1:] = np.conj(rotation) / amp[1:]
        self._inverse = inverse

        logger.debug(f"Filter plan: nt={nt} dt={dt:g} nfft={nfft}")

    def matches(self, nt: int, dt: float) -> bool:
        """True if traces of (nt, dt) can use this plan."""
        return nt == self.nt and math.isclose(dt, self.dt, rel_tol=1e-9, abs_tol=0.0)

    def check(self, nt: int, dt: float) -> None:
        """
        Raises:
            ConfigurationError: if (nt, dt) differs from the plan
        """
        if not self.matches(nt, dt):
            raise ConfigurationError(
                f"Trace sampling changed mid-run: plan has nt={self.nt} dt={self.dt:g}, "
                f"trace has nt={nt} dt={dt:g}"
            )

    def apply(self, trace: NDArray[np.floating], sign: int = 1) -> NDArray[np.float64]:
        """
        Filter one trace and return a new array.

        Args:
            trace: Samples, shape (nt,)
            sign: +1 applies the half-derivative operator, -1 its inverse
                (DC removed)

        Returns:
            Filtered samples, shape (nt,)
        """
        if sign not in (1, -1):
            raise ValueError(f"sign must be +1 or -1, got {sign}")
        trace = np.asarray(trace, dtype=np.float64)
        self.check(trace.shape[0], self.dt)

        spectrum = sp_fft.rfft(trace, n=self.nfft)
        spectrum *= self._forward if sign == 1 else self._inverse
        # irfft normalises by nfft
        return sp_fft.irfft(spectrum, n=self.nfft)[: self.nt]


def apply_filter(trace: NDArray[np.floating], plan: FilterPlan, sign: int = 1) -> NDArray[np.float64]:
    """Filter a trace with an existing plan."""
    return plan.apply(trace, sign)
