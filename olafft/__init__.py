"""olafft - overlapping FFT stream processor for block-based audio."""

from olafft.framing import (
    OverlappingFFTProcessor,
    ProcessContextNonReplacing,
    ProcessContextReplacing,
)

__version__ = "0.1.0"

__all__ = [
    "OverlappingFFTProcessor",
    "ProcessContextReplacing",
    "ProcessContextNonReplacing",
    "__version__",
]
