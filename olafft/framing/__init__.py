"""Overlap-add framing of block-based audio streams."""

from olafft.framing.buffer import InputCarry, OutputRing
from olafft.framing.context import ProcessContextNonReplacing, ProcessContextReplacing
from olafft.framing.processor import (
    BlockSizeError,
    FrameCallback,
    FramerConfigError,
    FramerStateError,
    OverlappingFFTProcessor,
)
from olafft.framing.window import hann_window, is_cola, scipy_window

__all__ = [
    "OverlappingFFTProcessor",
    "FrameCallback",
    "FramerConfigError",
    "FramerStateError",
    "BlockSizeError",
    "InputCarry",
    "OutputRing",
    "ProcessContextReplacing",
    "ProcessContextNonReplacing",
    "hann_window",
    "is_cola",
    "scipy_window",
]
