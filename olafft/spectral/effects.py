"""Frame callbacks that edit the spectrum of each frame.

Every effect is a callable ``effect(scratch, num_channels)`` that can be handed
to :class:`~olafft.framing.processor.OverlappingFFTProcessor` as its frame
callback: forward FFT, spectral edit, inverse FFT, all in the scratch rows.

Usage:
    effect = create_effect("lowpass", fft_order=11, hop_divider=2, cutoff=0.5)
    proc = OverlappingFFTProcessor(11, 2, frame_callback=effect)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from olafft.framing.processor import OverlappingFFTProcessor
from olafft.framing.window import hann_window
from olafft.spectral.fft import RealFFT

logger = logging.getLogger(__name__)


class SpectralEffect:
    """Base frame callback: FFT, :meth:`process_spectrum`, inverse FFT."""

    def __init__(self, fft_order: int):
        self.fft = RealFFT(fft_order)

    @property
    def fft_size(self) -> int:
        return self.fft.size

    def __call__(self, scratch: NDArray[np.float32], num_channels: int) -> None:
        self.fft.forward(scratch, num_channels)
        spectrum = self.fft.view_spectrum(scratch, num_channels)
        spectrum = self.process_spectrum(spectrum, num_channels)
        self.fft.store_spectrum(scratch, spectrum, num_channels)
        self.fft.inverse(scratch, num_channels)

    def process_spectrum(
        self,
        spectrum: NDArray[np.complex128],
        num_channels: int,
    ) -> NDArray[np.complex128]:
        """Return the edited bins, shape (num_channels, fft_size // 2 + 1)."""
        return spectrum


class Passthrough(SpectralEffect):
    """FFT round trip with no edit (checks the transform path itself)."""

    pass


class LowpassFilter(SpectralEffect):
    """Brick-wall lowpass: clears every bin at or above ``cutoff * Nyquist``."""

    def __init__(self, fft_order: int, cutoff: float = 0.5):
        """
        Args:
            fft_order: FFT size as a power of two
            cutoff: Cutoff as a fraction of Nyquist, in (0, 1]
        """
        super().__init__(fft_order)
        if not 0.0 < cutoff <= 1.0:
            raise ValueError(f"cutoff must be in (0, 1], got {cutoff}")
        self.cutoff = cutoff
        self.cutoff_bin = int(round(cutoff * (self.fft_size // 2)))

    def process_spectrum(self, spectrum, num_channels):
        spectrum[:, self.cutoff_bin :] = 0.0
        return spectrum


class LowpassFFTProcessor(OverlappingFFTProcessor):
    """
    Framer with a built-in lowpass, overriding the per-frame hook.

    The interleaved spectrum is edited directly in the scratch rows: the
    floats from ``2 * cutoff_bin`` on hold every bin from the cutoff up to and
    including Nyquist.
    """

    def __init__(self, fft_order: int = 11, hop_divider: int = 2, cutoff: float = 0.5, **kwargs):
        super().__init__(fft_order, hop_divider, **kwargs)
        if not 0.0 < cutoff <= 1.0:
            raise ValueError(f"cutoff must be in (0, 1], got {cutoff}")
        self.fft = RealFFT(fft_order)
        self.cutoff_bin = int(round(cutoff * (self.fft_size // 2)))

    def process_frame_in_buffer(self, num_channels: int) -> None:
        scratch = self.scratch
        self.fft.forward(scratch, num_channels)
        scratch[:num_channels, 2 * self.cutoff_bin :] = 0.0
        self.fft.inverse(scratch, num_channels)


@dataclass
class GateConfig:
    """Spectral gate parameters."""

    # Frames used to estimate the noise profile when auto-learning
    noise_frames: int = 10
    noise_floor: float = 1e-4

    # Gate threshold relative to the noise profile (dB)
    threshold_db: float = 6.0
    # Gain applied to gated bins (dB)
    reduction_db: float = -24.0

    attack_time: float = 0.01
    release_time: float = 0.05

    # Moving-average width across bins (1 = off)
    freq_smoothing: int = 3

    def __post_init__(self) -> None:
        if self.noise_frames < 1:
            raise ValueError(f"noise_frames must be >= 1, got {self.noise_frames}")
        if self.reduction_db > 0:
            raise ValueError(f"reduction_db must be <= 0, got {self.reduction_db}")
        if self.attack_time <= 0 or self.release_time <= 0:
            raise ValueError("attack_time and release_time must be positive")
        if self.freq_smoothing < 1:
            raise ValueError(f"freq_smoothing must be >= 1, got {self.freq_smoothing}")


class SpectralGate(SpectralEffect):
    """
    Noise gate on spectral magnitudes with attack/release smoothing.

    The noise profile is either learned from a reference recording
    (:meth:`learn_noise`) or from the first ``noise_frames`` frames of the
    stream, during which audio passes through unchanged.
    """

    def __init__(
        self,
        fft_order: int,
        hop_size: int,
        sample_rate: float = 48000,
        config: Optional[GateConfig] = None,
        window: Optional[NDArray[np.float32]] = None,
    ):
        super().__init__(fft_order)
        self.hop_size = hop_size
        self.sample_rate = sample_rate
        self.config = config or GateConfig()
        self.window = window if window is not None else hann_window(self.fft_size, hop_size)

        frames_per_sec = sample_rate / hop_size
        self.attack_coeff = float(np.exp(-1.0 / (self.config.attack_time * frames_per_sec)))
        self.release_coeff = float(np.exp(-1.0 / (self.config.release_time * frames_per_sec)))
        self.threshold_mult = 10 ** (self.config.threshold_db / 20)
        self.reduction_mult = 10 ** (self.config.reduction_db / 20)

        # Per-channel state, sized on first use
        self.noise_profile: Optional[NDArray[np.float64]] = None
        self.noise_frames_collected = 0
        self._prev_gain: Optional[NDArray[np.float64]] = None
        self._learned_from_reference = False

    def _ensure_state(self, num_channels: int) -> None:
        if self._prev_gain is None or self._prev_gain.shape[0] < num_channels:
            self._prev_gain = np.ones((num_channels, self.fft.num_bins))
            if self.noise_profile is not None and self.noise_profile.shape[0] < num_channels:
                # Reference profile applies to every channel
                self.noise_profile = np.broadcast_to(
                    self.noise_profile[:1], (num_channels, self.fft.num_bins)
                ).copy()

    def learn_noise(self, noise_audio: NDArray[np.float32]) -> None:
        """
        Learn the noise profile from a noise-only recording.

        Args:
            noise_audio: Mono noise, at least one frame long
        """
        n = self.fft_size
        if len(noise_audio) < n:
            logger.warning("Noise audio too short for learning")
            return

        n_frames = (len(noise_audio) - n) // self.hop_size + 1
        starts = np.arange(n_frames) * self.hop_size
        frames = np.stack([noise_audio[s : s + n] for s in starts]) * self.window
        magnitude = np.abs(np.fft.rfft(frames, axis=1)).mean(axis=0)

        self.noise_profile = np.maximum(magnitude, self.config.noise_floor)[np.newaxis, :]
        self.noise_frames_collected = n_frames
        self._learned_from_reference = True
        self._prev_gain = None
        logger.info(f"Learned noise profile from {n_frames} frames")

    def reset(self) -> None:
        """Forget gain history and, unless learned from a reference, the profile."""
        self._prev_gain = None
        if not self._learned_from_reference:
            self.noise_profile = None
            self.noise_frames_collected = 0

    def _update_noise_profile(self, magnitude: NDArray[np.float64]) -> None:
        if self.noise_profile is None:
            self.noise_profile = magnitude.copy()
        else:
            alpha = 1.0 / (self.noise_frames_collected + 1)
            self.noise_profile = (1 - alpha) * self.noise_profile + alpha * magnitude
        self.noise_frames_collected += 1

    def _compute_gain(self, magnitude: NDArray[np.float64]) -> NDArray[np.float64]:
        """Soft gate: reduction_mult well below threshold, 1.0 well above."""
        threshold = self.noise_profile[: magnitude.shape[0]] * self.threshold_mult
        ratio = magnitude / (threshold + 1e-10)
        soft_gain = 0.5 * (1 + np.tanh(2 * (ratio - 1)))
        gain = self.reduction_mult + soft_gain * (1.0 - self.reduction_mult)

        width = self.config.freq_smoothing
        if width > 1:
            kernel = np.ones(width) / width
            gain = np.stack([np.convolve(row, kernel, mode="same") for row in gain])
        return gain

    def _smooth_gain(self, gain: NDArray[np.float64]) -> NDArray[np.float64]:
        prev = self._prev_gain[: gain.shape[0]]
        smooth = np.where(
            gain > prev,
            self.attack_coeff * prev + (1 - self.attack_coeff) * gain,
            self.release_coeff * prev + (1 - self.release_coeff) * gain,
        )
        self._prev_gain[: gain.shape[0]] = smooth
        return smooth

    def process_spectrum(self, spectrum, num_channels):
        self._ensure_state(num_channels)
        magnitude = np.abs(spectrum)

        if not self._learned_from_reference and self.noise_frames_collected < self.config.noise_frames:
            self._update_noise_profile(magnitude)
            if self.noise_frames_collected == self.config.noise_frames:
                self.noise_profile = np.maximum(self.noise_profile, self.config.noise_floor)
                logger.debug(f"Noise profile learned from {self.noise_frames_collected} frames")
            return spectrum

        gain = self._smooth_gain(self._compute_gain(magnitude))
        return spectrum * gain


def create_effect(
    name: str,
    fft_order: int,
    hop_divider: int,
    sample_rate: float = 48000,
    cutoff: float = 0.5,
    gate_config: Optional[GateConfig] = None,
) -> Optional[SpectralEffect]:
    """
    Factory for frame callbacks by name.

    Args:
        name: "none", "passthrough", "lowpass" or "gate"
        fft_order: FFT size as a power of two
        hop_divider: Hop divider as a power of two
        sample_rate: Stream sample rate (gate smoothing)
        cutoff: Lowpass cutoff as a fraction of Nyquist
        gate_config: Spectral gate parameters

    Returns:
        Frame callback, or None for "none" (identity framing)

    Raises:
        ValueError: If the name is not recognized
    """
    name = name.lower()
    hop_size = (1 << fft_order) >> hop_divider

    if name == "none":
        return None
    elif name == "passthrough":
        return Passthrough(fft_order)
    elif name == "lowpass":
        logger.debug(f"Creating lowpass effect: cutoff={cutoff}")
        return LowpassFilter(fft_order, cutoff=cutoff)
    elif name == "gate":
        logger.debug("Creating spectral gate effect")
        return SpectralGate(fft_order, hop_size, sample_rate=sample_rate, config=gate_config)
    else:
        raise ValueError(
            f"Unknown effect: '{name}'. Valid effects: 'none', 'passthrough', 'lowpass', 'gate'"
        )
