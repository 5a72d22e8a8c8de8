"""Offline host: drive a processor over a whole signal, block by block."""

from __future__ import annotations

import itertools
import logging
from pathlib import Path
from typing import Iterator, Optional, Sequence, Union

import numpy as np
from numpy.typing import NDArray
from scipy.io import wavfile

from olafft.framing.processor import OverlappingFFTProcessor

logger = logging.getLogger(__name__)

BlockSizes = Union[int, Sequence[int]]


def iter_block_sizes(block_sizes: BlockSizes, total: int) -> Iterator[int]:
    """Yield block lengths covering ``total`` samples.

    An int gives fixed blocks; a sequence is cycled. The last block is
    shortened to what remains.
    """
    sizes = [block_sizes] if isinstance(block_sizes, int) else list(block_sizes)
    if not sizes or any(s <= 0 for s in sizes):
        raise ValueError(f"Block sizes must be positive, got {block_sizes}")

    pos = 0
    for size in itertools.cycle(sizes):
        if pos >= total:
            return
        size = min(size, total - pos)
        yield size
        pos += size


def process_signal(
    processor: OverlappingFFTProcessor,
    audio: NDArray[np.float32],
    block_sizes: BlockSizes = 512,
    sample_rate: float = 48000,
    num_output_channels: Optional[int] = None,
    compensate_latency: bool = False,
) -> NDArray[np.float32]:
    """
    Run a signal through a processor the way a host would.

    The processor is prepared for the largest block size and fed one block
    at a time.

    Args:
        processor: Processor to drive (re-prepared by this call)
        audio: Signal, shape (channels, samples) or (samples,) for mono
        block_sizes: Fixed block length, or a sequence of lengths to cycle
        sample_rate: Passed through to prepare()
        num_output_channels: Output channels (default: same as input)
        compensate_latency: Feed latency_samples of trailing silence and drop
                            the leading latency so output aligns with input

    Returns:
        Output with the input's length (and ndim for mono input)
    """
    mono = audio.ndim == 1
    signal = np.atleast_2d(np.asarray(audio, dtype=np.float32))
    channels, total = signal.shape
    out_channels = num_output_channels or channels

    latency = processor.latency_samples if compensate_latency else 0
    if latency:
        signal = np.concatenate([signal, np.zeros((channels, latency), dtype=np.float32)], axis=1)

    lengths = list(iter_block_sizes(block_sizes, signal.shape[1]))
    max_block = max(lengths) if lengths else 1
    processor.prepare(sample_rate, max_block, channels, out_channels)

    output = np.zeros((out_channels, signal.shape[1]), dtype=np.float32)
    pos = 0
    for length in lengths:
        processor.process(signal[:, pos : pos + length], output[:, pos : pos + length])
        pos += length

    logger.debug(
        f"Processed {total} samples in {len(lengths)} blocks, "
        f"{processor.frames_processed} frames"
    )

    output = output[:, latency : latency + total]
    return output[0] if mono and out_channels == 1 else output


def load_wav(path: Union[str, Path]) -> tuple[int, NDArray[np.float32]]:
    """
    Load a WAV file as float32 in [-1, 1].

    Returns:
        (sample_rate, audio) with audio shaped (channels, samples)
    """
    sr, data = wavfile.read(str(path))
    if data.dtype == np.int16:
        data = data.astype(np.float32) / 32768.0
    elif data.dtype == np.int32:
        data = data.astype(np.float32) / 2147483648.0
    elif data.dtype == np.uint8:
        data = (data.astype(np.float32) - 128.0) / 128.0
    else:
        data = data.astype(np.float32)

    if data.ndim == 1:
        data = data[np.newaxis, :]
    else:
        data = data.T
    return sr, np.ascontiguousarray(data)


def save_wav(path: Union[str, Path], sample_rate: int, audio: NDArray[np.float32]) -> None:
    """Save float audio shaped (channels, samples) or (samples,) as float32 WAV."""
    data = np.asarray(audio, dtype=np.float32)
    if data.ndim == 2:
        data = data.T
    wavfile.write(str(path), sample_rate, data)
