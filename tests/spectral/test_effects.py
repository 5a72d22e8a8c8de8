"""Tests for spectral frame callbacks run through the framer."""

import numpy as np
import pytest

from olafft.framing.processor import OverlappingFFTProcessor
from olafft.host import process_signal
from olafft.spectral.effects import (
    GateConfig,
    LowpassFFTProcessor,
    LowpassFilter,
    Passthrough,
    SpectralGate,
    create_effect,
)

SR = 48000


def _tone(freq, n, amplitude=0.5):
    return (amplitude * np.sin(2 * np.pi * freq * np.arange(n) / SR)).astype(np.float32)


def _peak_db(signal, freq):
    """Peak magnitude (dB) near freq in a Hann-windowed spectrum."""
    spectrum = np.abs(np.fft.rfft(signal * np.hanning(len(signal))))
    k = int(round(freq * len(signal) / SR))
    return 20 * np.log10(spectrum[k - 5 : k + 6].max() + 1e-20)


class TestLowpass:
    """Tests for the brick-wall lowpass (1 kHz kept, 20 kHz removed)."""

    @pytest.mark.parametrize("use_subclass", [True, False])
    def test_lowpass_removes_high_tone(self, use_subclass):
        """S4: 20 kHz is attenuated by at least 60 dB, 1 kHz is preserved."""
        n = SR
        audio = _tone(1000, n) + _tone(20000, n)

        if use_subclass:
            proc = LowpassFFTProcessor(11, 2)
        else:
            proc = OverlappingFFTProcessor(11, 2, frame_callback=LowpassFilter(11, cutoff=0.5))
        out = process_signal(proc, audio, 512, sample_rate=SR)

        segment = slice(8192, 8192 + 16384)
        delayed_in = np.concatenate([np.zeros(proc.latency_samples, dtype=np.float32), audio])[:n]

        low_in = _peak_db(delayed_in[segment], 1000)
        low_out = _peak_db(out[segment], 1000)
        high_in = _peak_db(delayed_in[segment], 20000)
        high_out = _peak_db(out[segment], 20000)

        assert abs(low_out - low_in) < 0.1, f"1 kHz changed by {low_out - low_in:.3f} dB"
        assert high_in - high_out >= 60.0, f"20 kHz attenuated by only {high_in - high_out:.1f} dB"

    def test_cutoff_bin(self):
        """Cutoff is a fraction of the N/2 bins."""
        assert LowpassFilter(11, cutoff=0.5).cutoff_bin == 512
        assert LowpassFFTProcessor(10, 1, cutoff=0.25).cutoff_bin == 128

    @pytest.mark.parametrize("cutoff", [0.0, -0.5, 1.5])
    def test_invalid_cutoff(self, cutoff):
        """Cutoff must lie in (0, 1]."""
        with pytest.raises(ValueError, match="cutoff"):
            LowpassFilter(10, cutoff=cutoff)

    def test_full_band_cutoff_clears_only_nyquist(self):
        """cutoff=1.0 keeps everything below Nyquist."""
        rng = np.random.RandomState(2)
        audio = _tone(3000, 4000) + 0.01 * rng.randn(4000).astype(np.float32)
        proc = OverlappingFFTProcessor(8, 2, frame_callback=LowpassFilter(8, cutoff=1.0))
        out = process_signal(proc, audio, 128, sample_rate=SR)
        assert _peak_db(out[1000:], 3000) == pytest.approx(_peak_db(audio[745:3745], 3000), abs=0.5)


class TestPassthrough:
    """Tests for the FFT round trip through the framer."""

    def test_passthrough_reconstructs(self):
        """Forward + inverse FFT per frame keeps perfect reconstruction."""
        rng = np.random.RandomState(1)
        audio = rng.randn(2, 3000).astype(np.float32)
        proc = OverlappingFFTProcessor(9, 2, frame_callback=Passthrough(9))
        out = process_signal(proc, audio, 256, sample_rate=SR, compensate_latency=True)
        np.testing.assert_allclose(out, audio, atol=1e-5)


class TestSpectralGate:
    """Tests for the spectral noise gate."""

    @staticmethod
    def _signal():
        rng = np.random.RandomState(4)
        n = 2 * SR
        noise = 0.01 * rng.randn(n).astype(np.float32)
        tone = _tone(440, n)
        tone[:SR] = 0.0
        return noise, noise + tone

    def test_auto_learn_reduces_noise(self):
        """After the learning frames, noise-only input is attenuated."""
        noise, audio = self._signal()
        gate = SpectralGate(11, 512, sample_rate=SR, config=GateConfig(threshold_db=12.0))
        proc = OverlappingFFTProcessor(11, 2, frame_callback=gate)
        out = process_signal(proc, audio, 512, sample_rate=SR, compensate_latency=True)

        assert gate.noise_frames_collected == gate.config.noise_frames
        quiet = slice(SR // 2, SR - 4096)
        assert np.sqrt(np.mean(out[quiet] ** 2)) < 0.5 * np.sqrt(np.mean(audio[quiet] ** 2))

    def test_tone_passes(self):
        """A tone well above the noise floor keeps its level."""
        noise, audio = self._signal()
        gate = SpectralGate(11, 512, sample_rate=SR, config=GateConfig(threshold_db=12.0))
        gate.learn_noise(noise[: SR // 2])
        proc = OverlappingFFTProcessor(11, 2, frame_callback=gate)
        out = process_signal(proc, audio, 512, sample_rate=SR, compensate_latency=True)

        loud = slice(SR + 8192, 2 * SR - 4096)
        ratio = np.sqrt(np.mean(out[loud] ** 2)) / np.sqrt(np.mean(audio[loud] ** 2))
        assert 0.9 < ratio < 1.1

    def test_learning_frames_pass_through(self):
        """While the noise profile is being learned, frames are unchanged."""
        rng = np.random.RandomState(8)
        audio = rng.randn(4096).astype(np.float32)
        gate = SpectralGate(8, 64, sample_rate=SR, config=GateConfig(noise_frames=1000))
        proc = OverlappingFFTProcessor(8, 2, frame_callback=gate)
        out = process_signal(proc, audio, 100, sample_rate=SR, compensate_latency=True)
        np.testing.assert_allclose(out, audio, atol=1e-5)

    def test_learn_noise_too_short(self):
        """Reference shorter than a frame is ignored."""
        gate = SpectralGate(10, 256)
        gate.learn_noise(np.zeros(100, dtype=np.float32))
        assert gate.noise_profile is None

    def test_reset_keeps_reference_profile(self):
        """reset() forgets an auto-learned profile but not a reference one."""
        gate = SpectralGate(8, 64)
        gate.learn_noise(0.01 * np.ones(1024, dtype=np.float32))
        gate.reset()
        assert gate.noise_profile is not None

        auto = SpectralGate(8, 64)
        auto._update_noise_profile(np.ones((1, auto.fft.num_bins)))
        auto.reset()
        assert auto.noise_profile is None
        assert auto.noise_frames_collected == 0

    @pytest.mark.parametrize(
        "kwargs,match",
        [
            ({"noise_frames": 0}, "noise_frames"),
            ({"reduction_db": 3.0}, "reduction_db"),
            ({"attack_time": 0.0}, "attack_time"),
            ({"freq_smoothing": 0}, "freq_smoothing"),
        ],
    )
    def test_config_validation(self, kwargs, match):
        """Invalid gate parameters are rejected."""
        with pytest.raises(ValueError, match=match):
            GateConfig(**kwargs)


class TestCreateEffect:
    """Tests for the effect factory."""

    def test_none(self):
        """'none' means identity framing."""
        assert create_effect("none", 10, 2) is None

    def test_types(self):
        """Names map to effect classes."""
        assert isinstance(create_effect("passthrough", 10, 2), Passthrough)
        assert isinstance(create_effect("LOWPASS", 10, 2, cutoff=0.25), LowpassFilter)
        gate = create_effect("gate", 10, 2, sample_rate=16000)
        assert isinstance(gate, SpectralGate)
        assert gate.hop_size == 256

    def test_unknown(self):
        """Unknown names are rejected."""
        with pytest.raises(ValueError, match="Unknown effect"):
            create_effect("reverb", 10, 2)
