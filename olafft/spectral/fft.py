"""Real FFT over the framer's scratch rows.

Scratch rows are ``2 * fft_size`` floats long. A forward transform stores the
``fft_size // 2 + 1`` non-negative frequency bins as interleaved
``re, im`` pairs at the start of the row; the inverse reads them back and
leaves the time-domain frame in ``row[:fft_size]``.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


class RealFFT:
    """Forward/inverse real FFT of order ``fft_order`` (size 2**fft_order)."""

    def __init__(self, fft_order: int):
        if fft_order < 1:
            raise ValueError(f"fft_order must be >= 1, got {fft_order}")
        self.fft_order = fft_order
        self.size = 1 << fft_order
        self.num_bins = self.size // 2 + 1

    def forward(self, scratch: NDArray[np.float32], num_channels: int) -> None:
        """Replace each time-domain row with its interleaved spectrum."""
        n = self.size
        packed = 2 * self.num_bins
        spectrum = np.fft.rfft(scratch[:num_channels, :n], axis=1)
        scratch[:num_channels, 0:packed:2] = spectrum.real
        scratch[:num_channels, 1:packed:2] = spectrum.imag
        scratch[:num_channels, packed:] = 0.0

    def inverse(self, scratch: NDArray[np.float32], num_channels: int) -> None:
        """Replace each interleaved spectrum with its time-domain frame."""
        n = self.size
        spectrum = self.view_spectrum(scratch, num_channels)
        scratch[:num_channels, :n] = np.fft.irfft(spectrum, n=n, axis=1)
        scratch[:num_channels, n:] = 0.0

    def view_spectrum(self, scratch: NDArray[np.float32], num_channels: int) -> NDArray[np.complex128]:
        """Complex copy of the interleaved bins, shape (num_channels, num_bins)."""
        packed = 2 * self.num_bins
        rows = scratch[:num_channels, :packed].astype(np.float64)
        return rows[:, 0::2] + 1j * rows[:, 1::2]

    def store_spectrum(
        self,
        scratch: NDArray[np.float32],
        spectrum: NDArray[np.complexfloating],
        num_channels: int,
    ) -> None:
        """Write complex bins back into the interleaved layout."""
        packed = 2 * self.num_bins
        scratch[:num_channels, 0:packed:2] = spectrum.real
        scratch[:num_channels, 1:packed:2] = spectrum.imag

    def bin_frequencies(self, sample_rate: float) -> NDArray[np.float64]:
        """Center frequency in Hz of every non-negative bin."""
        return np.fft.rfftfreq(self.size, d=1.0 / sample_rate)
