"""Analysis window construction for the overlap-add framer.

The framer applies the window once, before the frame callback. No synthesis
window is used, so perfect reconstruction needs the window itself to sum to a
constant when shifted by the hop size (COLA).
"""

from __future__ import annotations

import logging
from typing import Callable, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray
from scipy.signal import get_window

logger = logging.getLogger(__name__)

# Builder signature: (fft_size, hop_size) -> window of length fft_size
WindowBuilder = Callable[[int, int], ArrayLike]
WindowSpec = Union[ArrayLike, WindowBuilder, None]


def hop_compensation(fft_size: int, hop_size: int) -> float:
    """Gain that undoes the overlap of N/H periodic Hann windows.

    Equals 1 / (N / H / 2) = 2H / N: 1.0 at 50% overlap, 0.5 at 75%, ...
    """
    return 2.0 * hop_size / fft_size


def hann_window(fft_size: int, hop_size: int) -> NDArray[np.float32]:
    """Periodic Hann window scaled for unit overlap-add gain.

    Args:
        fft_size: Frame length N
        hop_size: Hop size H

    Returns:
        float32 window of length N
    """
    n = np.arange(fft_size, dtype=np.float64)
    window = 0.5 * (1.0 - np.cos(2.0 * np.pi * n / fft_size))
    return (window * hop_compensation(fft_size, hop_size)).astype(np.float32)


def scipy_window(name: str) -> WindowBuilder:
    """Return a builder for any periodic window known to ``scipy.signal``.

    The window is normalized so its overlap-add sum at the requested hop is
    one. Windows that are not COLA at that hop will still reconstruct with a
    ripple; :func:`is_cola` tells them apart.

    Example:
        >>> proc = OverlappingFFTProcessor(10, 2, window=scipy_window("hamming"))
    """

    def build(fft_size: int, hop_size: int) -> NDArray[np.float32]:
        window = get_window(name, fft_size, fftbins=True).astype(np.float64)
        gain = np.mean(overlap_add_sum(window, hop_size))
        if gain <= 0:
            raise ValueError(f"Window '{name}' has non-positive overlap-add gain")
        return (window / gain).astype(np.float32)

    return build


def overlap_add_sum(window: ArrayLike, hop_size: int) -> NDArray[np.float64]:
    """Sum of the window shifted by every multiple of hop_size, over one hop."""
    window = np.asarray(window, dtype=np.float64)
    n_shifts = int(np.ceil(len(window) / hop_size))
    padded = np.zeros(n_shifts * hop_size, dtype=np.float64)
    padded[: len(window)] = window
    return padded.reshape(n_shifts, hop_size).sum(axis=0)


def is_cola(window: ArrayLike, hop_size: int, tol: float = 1e-5) -> bool:
    """Check the constant overlap-add property of a window at a hop size."""
    total = overlap_add_sum(window, hop_size)
    return bool(np.max(total) - np.min(total) <= tol * max(1.0, float(np.max(np.abs(total)))))


def build_window(source: WindowSpec, fft_size: int, hop_size: int) -> NDArray[np.float32]:
    """Resolve a window argument (None, array or builder) to a float32 array.

    Raises:
        ValueError: If the resulting window is not one-dimensional with length fft_size
    """
    if source is None:
        window = hann_window(fft_size, hop_size)
    elif callable(source):
        window = np.asarray(source(fft_size, hop_size), dtype=np.float32)
    else:
        window = np.asarray(source, dtype=np.float32)

    if window.ndim != 1 or len(window) != fft_size:
        raise ValueError(
            f"Window must have length {fft_size}, got shape {window.shape}"
        )
    return window
