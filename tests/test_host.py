"""Tests for the offline block host and WAV helpers."""

import numpy as np
import pytest
from scipy.io import wavfile

from olafft.framing.processor import OverlappingFFTProcessor
from olafft.host import iter_block_sizes, load_wav, process_signal, save_wav


class TestIterBlockSizes:
    """Tests for block size sequences."""

    def test_fixed(self):
        """Fixed blocks, last one shortened."""
        assert list(iter_block_sizes(4, 10)) == [4, 4, 2]

    def test_cycled(self):
        """Sequences are cycled."""
        assert list(iter_block_sizes([1, 3], 9)) == [1, 3, 1, 3, 1]

    def test_empty_signal(self):
        """No blocks for no samples."""
        assert list(iter_block_sizes(16, 0)) == []

    @pytest.mark.parametrize("sizes", [0, [], [4, -1]])
    def test_invalid(self, sizes):
        """Sizes must be positive."""
        with pytest.raises(ValueError, match="Block sizes must be positive"):
            list(iter_block_sizes(sizes, 10))


class TestProcessSignal:
    """Tests for process_signal."""

    def test_mono_shape_preserved(self):
        """1-D input gives 1-D output of the same length."""
        audio = np.ones(100, dtype=np.float32)
        out = process_signal(OverlappingFFTProcessor(4, 1), audio, 30)
        assert out.shape == (100,)

    def test_latency_compensation(self):
        """Compensated output lines up with the input."""
        rng = np.random.RandomState(0)
        audio = rng.randn(2, 500).astype(np.float32)
        out = process_signal(OverlappingFFTProcessor(5, 2), audio, 64, compensate_latency=True)
        assert out.shape == audio.shape
        np.testing.assert_allclose(out, audio, atol=1e-5)

    def test_prepares_for_largest_block(self):
        """The processor is prepared for the largest block used."""
        proc = OverlappingFFTProcessor(4, 1)
        process_signal(proc, np.zeros((1, 50), dtype=np.float32), [3, 20, 7])
        assert proc.max_block_size == 20


class TestWav:
    """Tests for WAV load/save."""

    def test_round_trip_stereo(self, tmp_path):
        """Float WAV keeps (channels, samples) layout."""
        path = tmp_path / "stereo.wav"
        audio = np.vstack([np.linspace(-1, 1, 100), np.zeros(100)]).astype(np.float32)
        save_wav(path, 16000, audio)

        sr, loaded = load_wav(path)
        assert sr == 16000
        assert loaded.shape == (2, 100)
        np.testing.assert_array_equal(loaded, audio)

    def test_int16_scaled(self, tmp_path):
        """int16 files are scaled to [-1, 1)."""
        path = tmp_path / "mono.wav"
        wavfile.write(str(path), 8000, np.array([0, 16384, -32768], dtype=np.int16))

        sr, loaded = load_wav(path)
        assert sr == 8000
        assert loaded.shape == (1, 3)
        np.testing.assert_allclose(loaded[0], [0.0, 0.5, -1.0])
