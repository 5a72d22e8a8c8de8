"""Process contexts: how a host hands blocks to a processor."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray


@dataclass
class ProcessContextReplacing:
    """One block used as both input and output (processed in place).

    Attributes:
        block: Audio block, shape (channels, samples)
    """

    block: NDArray[np.float32]

    @property
    def input_block(self) -> NDArray[np.float32]:
        return self.block

    @property
    def output_block(self) -> NDArray[np.float32]:
        return self.block


@dataclass
class ProcessContextNonReplacing:
    """Separate input and output blocks of equal length.

    Attributes:
        input_block: Source audio, shape (in_channels, samples)
        output_block: Destination audio, shape (out_channels, samples)
    """

    input_block: NDArray[np.float32]
    output_block: NDArray[np.float32]
