"""Fixed-capacity sample buffers used by the overlap-add framer.

Both buffers are allocated once and then only read and written in place, so
they can live on the audio thread without touching the allocator for their
sample storage.
"""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray


class InputCarry:
    """
    Per-channel store for input samples that did not complete a frame.

    The meaningful samples occupy ``data[:, :count]`` at call boundaries.
    During a call the framer may consume frames from the front of the carry,
    tracked by ``offset``; :meth:`compact` then moves the leftover to the
    front again.
    """

    def __init__(self, channels: int, capacity: int):
        """
        Initialize the carry.

        Args:
            channels: Number of input channels
            capacity: Maximum samples per channel (fft_size - 1)
        """
        self.data: NDArray[np.float32] = np.zeros((channels, capacity), dtype=np.float32)
        self.count = 0
        self.offset = 0

    @property
    def channels(self) -> int:
        return self.data.shape[0]

    @property
    def capacity(self) -> int:
        return self.data.shape[1]

    def clear(self, prefill: int = 0) -> None:
        """Zero the carry and mark ``prefill`` leading zeros as pending."""
        if not 0 <= prefill <= self.capacity:
            raise ValueError(f"prefill must be in [0, {self.capacity}], got {prefill}")
        self.data.fill(0.0)
        self.count = prefill
        self.offset = 0

    def pending(self, channel: int) -> NDArray[np.float32]:
        """View of the samples not yet consumed in this call."""
        return self.data[channel, self.offset : self.offset + self.count]

    def consume(self, samples: int) -> None:
        """Advance past ``samples`` carried samples (count may go negative)."""
        self.offset += samples
        self.count -= samples

    def compact_and_append(self, block: NDArray[np.float32], num_channels: int) -> None:
        """Move the leftover to the front and append a whole input block."""
        length = block.shape[1]
        end = self.count + length
        if end > self.capacity:
            raise ValueError(f"Carry overflow: {end} samples > capacity {self.capacity}")
        for ch in range(num_channels):
            row = self.data[ch]
            if self.offset > 0:
                row[: self.count] = row[self.offset : self.offset + self.count]
            row[self.count : end] = block[ch]
        self.count = end
        self.offset = 0

    def store(self, block: NDArray[np.float32], start: int, num_channels: int) -> None:
        """Replace the carry with ``block[:, start:]``."""
        remaining = block.shape[1] - start
        if remaining > self.capacity:
            raise ValueError(f"Carry overflow: {remaining} samples > capacity {self.capacity}")
        if remaining > 0:
            self.data[:num_channels, :remaining] = block[:num_channels, start:]
        self.count = max(remaining, 0)
        self.offset = 0


class OutputRing:
    """
    Delay line that accumulates overlap-added frames before playback.

    ``offset`` is the write cursor: the position where the next frame
    starts summing. Every written frame advances it by ``hop_size``; every
    emitted block moves it back by the block length.
    """

    def __init__(self, channels: int, length: int, fft_size: int, hop_size: int):
        """
        Initialize the ring.

        Args:
            channels: Number of output channels
            length: Samples per channel
            fft_size: Frame length N
            hop_size: Hop size H
        """
        if length < fft_size:
            raise ValueError(f"Ring length {length} shorter than frame size {fft_size}")
        self.data: NDArray[np.float32] = np.zeros((channels, length), dtype=np.float32)
        self.fft_size = fft_size
        self.hop_size = hop_size
        self.overlap = fft_size - hop_size
        self.offset = 0

    @staticmethod
    def required_length(max_block_size: int, fft_size: int, hop_size: int) -> int:
        """Ring length that never overflows for blocks up to max_block_size."""
        hops = -(-max_block_size // hop_size)
        return hops * hop_size + (fft_size - hop_size) + max_block_size - 1

    @property
    def channels(self) -> int:
        return self.data.shape[0]

    @property
    def length(self) -> int:
        return self.data.shape[1]

    def clear(self, offset: int) -> None:
        """Zero the ring and place the write cursor at ``offset``."""
        self.data.fill(0.0)
        self.offset = offset

    def write_frame(self, frame: NDArray[np.float32]) -> None:
        """
        Overlap-add one processed frame at the write cursor.

        The first N-H samples are summed onto the tails of earlier frames.
        The last H samples land where no earlier frame reached and are
        written over whatever stale data the ring holds there.

        Args:
            frame: Processed frames, shape (>= channels, >= fft_size)
        """
        start = self.offset
        mid = start + self.overlap
        end = start + self.fft_size
        ch = self.channels
        self.data[:, start:mid] += frame[:ch, : self.overlap]
        self.data[:, mid:end] = frame[:ch, self.overlap : self.fft_size]
        self.offset += self.hop_size

    def emit(self, out: NDArray[np.float32], num_channels: int) -> None:
        """
        Copy the next ``out.shape[1]`` samples into ``out`` and shift the ring.

        Args:
            out: Destination block, shape (>= num_channels, L)
            num_channels: Rows of ``out`` to fill from the ring
        """
        length = out.shape[1]
        out[:num_channels] = self.data[:num_channels, :length]

        shift = self.offset + self.overlap - length
        too_much = length + shift - self.length
        if too_much > 0:
            shift -= too_much
        if shift > 0:
            self.data[:, :shift] = self.data[:, length : length + shift]
        self.offset -= length
