"""Spectral frame callbacks built on numpy's real FFT."""

from olafft.spectral.effects import (
    GateConfig,
    LowpassFFTProcessor,
    LowpassFilter,
    Passthrough,
    SpectralEffect,
    SpectralGate,
    create_effect,
)
from olafft.spectral.fft import RealFFT

__all__ = [
    "RealFFT",
    "SpectralEffect",
    "Passthrough",
    "LowpassFilter",
    "LowpassFFTProcessor",
    "GateConfig",
    "SpectralGate",
    "create_effect",
]
