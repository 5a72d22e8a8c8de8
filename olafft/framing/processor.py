"""Overlapping FFT processor: block stream <-> windowed, overlapping frames.

The processor buffers host blocks of any size, cuts them into frames of
``fft_size = 2**fft_order`` samples every ``hop_size = fft_size >> hop_divider``
samples, windows them into a scratch buffer, hands that buffer to a frame
callback, and overlap-adds the result into an output ring from which exactly
one block is returned per call. Input to output latency is ``fft_size - 1``.

Usage:
    def process_frame(scratch, num_channels):
        ...  # in-place edit of scratch[:num_channels, :fft_size]

    proc = OverlappingFFTProcessor(11, 2, frame_callback=process_frame)
    proc.prepare(48000, 512, 2, 2)
    proc.process(input_block, output_block)

Subclasses may override :meth:`process_frame_in_buffer` and
:meth:`create_window` instead of passing callables.
"""

from __future__ import annotations

import logging
from typing import Optional, Protocol, Union

import numpy as np
from numpy.typing import NDArray

from olafft.framing.buffer import InputCarry, OutputRing
from olafft.framing.context import ProcessContextNonReplacing, ProcessContextReplacing
from olafft.framing.window import WindowSpec, build_window, hann_window, is_cola

logger = logging.getLogger(__name__)

ProcessContext = Union[ProcessContextReplacing, ProcessContextNonReplacing]


class FramerConfigError(ValueError):
    """Invalid frame size, hop size, window or prepare arguments."""

    pass


class FramerStateError(RuntimeError):
    """Processor used before prepare()."""

    pass


class BlockSizeError(ValueError):
    """Block longer than the prepared maximum, or mismatched block lengths."""

    pass


class FrameCallback(Protocol):
    """In-place transform of the scratch buffer, called once per hop."""

    def __call__(self, scratch: NDArray[np.float32], num_channels: int) -> None:
        ...


class OverlappingFFTProcessor:
    """
    Buffers input and output samples around a per-frame callback.

    Frame dispatch order: every frame callback runs synchronously inside
    :meth:`process`, in temporal order, and its output is overlap-added before
    the next frame is assembled.
    """

    def __init__(
        self,
        fft_order: int,
        hop_divider: int = 1,
        frame_callback: Optional[FrameCallback] = None,
        window: WindowSpec = None,
        prime_with_silence: bool = True,
    ):
        """
        Create the processor and its window.

        Args:
            fft_order: fft_size = 2**fft_order
            hop_divider: hop_size = fft_size / 2**hop_divider (>= 1, i.e. at least 50% overlap)
            frame_callback: Called as callback(scratch, num_channels) for every frame
            window: Length-fft_size array, or builder(fft_size, hop_size).
                    Defaults to :meth:`create_window` (scaled periodic Hann).
            prime_with_silence: Treat the stream as preceded by silence so the
                    first samples get full overlap (latency is unchanged)

        Raises:
            FramerConfigError: On invalid orders or a window of the wrong length
        """
        if fft_order < 1:
            raise FramerConfigError(f"fft_order must be >= 1, got {fft_order}")
        if hop_divider <= 0:
            raise FramerConfigError(
                f"hop_divider must be >= 1 (at least 50% overlap), got {hop_divider}"
            )
        if hop_divider > fft_order:
            raise FramerConfigError(
                f"hop_divider {hop_divider} > fft_order {fft_order} (hop would be < 1 sample)"
            )

        self._fft_order = fft_order
        self._hop_divider = hop_divider
        self._fft_size = 1 << fft_order
        self._hop_size = self._fft_size >> hop_divider
        self._frame_callback = frame_callback
        self._prime_with_silence = prime_with_silence

        if window is None:
            self._window = np.zeros(self._fft_size, dtype=np.float32)
            self.create_window(self._window)
            if self._window.shape != (self._fft_size,):
                raise FramerConfigError("create_window() must not resize the window")
        else:
            try:
                self._window = build_window(window, self._fft_size, self._hop_size)
            except ValueError as e:
                raise FramerConfigError(str(e)) from e

        if not is_cola(self._window, self._hop_size):
            logger.warning(
                f"Window is not COLA at hop {self._hop_size}; "
                "identity processing will not reconstruct the input exactly"
            )

        self._num_input_channels = 0
        self._num_output_channels = 0
        self._max_block_size = 0
        self._carry: Optional[InputCarry] = None
        self._ring: Optional[OutputRing] = None
        self._scratch: Optional[NDArray[np.float32]] = None
        self._frames_processed = 0

        logger.debug(
            f"Overlapping FFT processor created with fft_size={self._fft_size}, "
            f"hop_size={self._hop_size}"
        )

    # ------------------------------------------------------------------
    # Overridable hooks
    # ------------------------------------------------------------------

    def create_window(self, window: NDArray[np.float32]) -> None:
        """Fill ``window`` (length fft_size) in place. Default: scaled Hann."""
        window[:] = hann_window(self._fft_size, self._hop_size)

    def process_frame_in_buffer(self, num_channels: int) -> None:
        """
        Process one frame held in :attr:`scratch`.

        ``scratch[:num_channels, :fft_size]`` holds the windowed time-domain
        frame on entry and must hold the processed time-domain frame on
        return. The whole ``2 * fft_size`` row may be used as workspace.
        """
        if self._frame_callback is not None:
            self._frame_callback(self._scratch, num_channels)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def prepare(
        self,
        sample_rate: float,
        max_block_size: int,
        num_input_channels: int,
        num_output_channels: int,
    ) -> None:
        """
        Allocate all buffers for blocks of up to ``max_block_size`` samples.

        Must be called before :meth:`process`. Calling it again discards all
        buffered audio.

        Args:
            sample_rate: Host sample rate (informational)
            max_block_size: Largest block the host will pass
            num_input_channels: Maximum input channels
            num_output_channels: Maximum output channels
        """
        if max_block_size <= 0:
            raise FramerConfigError(f"max_block_size must be positive, got {max_block_size}")
        if num_input_channels <= 0 or num_output_channels <= 0:
            raise FramerConfigError(
                f"Channel counts must be positive, got in={num_input_channels}, "
                f"out={num_output_channels}"
            )

        n = self._fft_size
        h = self._hop_size
        self._num_input_channels = num_input_channels
        self._num_output_channels = num_output_channels
        self._max_block_size = max_block_size

        self._carry = InputCarry(num_input_channels, n - 1)
        self._scratch = np.zeros((max(num_input_channels, num_output_channels), 2 * n), dtype=np.float32)
        self._ring = OutputRing(
            num_output_channels,
            OutputRing.required_length(max_block_size, n, h),
            n,
            h,
        )
        self.reset()

        logger.info(
            f"Prepared: sr={sample_rate}, max_block={max_block_size}, "
            f"channels={num_input_channels}->{num_output_channels}, "
            f"fft_size={n}, hop={h}, ring={self._ring.length}, latency={self.latency_samples}"
        )

    def reset(self) -> None:
        """Drop buffered audio without reallocating."""
        if not self.is_prepared:
            raise FramerStateError("reset() called before prepare()")

        n = self._fft_size
        h = self._hop_size
        self._scratch.fill(0.0)
        if self._prime_with_silence:
            # Virtual silence of N-H samples ahead of the stream; the cursor
            # moves back by the same amount so the latency stays N-1.
            self._carry.clear(prefill=n - h)
            self._ring.clear(offset=h - 1)
        else:
            self._carry.clear()
            self._ring.clear(offset=n - 1)
        self._frames_processed = 0

    # ------------------------------------------------------------------
    # Processing
    # ------------------------------------------------------------------

    def process_context(self, context: ProcessContext) -> None:
        """Process a replacing (in-place) or non-replacing context."""
        self.process(context.input_block, context.output_block)

    def process(self, input_block: NDArray[np.float32], output_block: NDArray[np.float32]) -> None:
        """
        Run one host block through the framer.

        ``output_block`` receives exactly as many samples as ``input_block``
        holds. The two may be the same array.

        Args:
            input_block: shape (in_channels, L); extra channels are ignored
            output_block: shape (out_channels, L); channels beyond the prepared
                          output count are zero-filled

        Raises:
            FramerStateError: If called before prepare()
            BlockSizeError: If L exceeds the prepared maximum or lengths differ
        """
        if not self.is_prepared:
            raise FramerStateError("process() called before prepare()")

        length = input_block.shape[1]
        if output_block.shape[1] != length:
            raise BlockSizeError(
                f"Input and output blocks differ in length: {length} vs {output_block.shape[1]}"
            )
        if length > self._max_block_size:
            raise BlockSizeError(
                f"Block of {length} samples exceeds prepared maximum {self._max_block_size}"
            )

        n = self._fft_size
        h = self._hop_size
        num_ch_in = min(input_block.shape[0], self._num_input_channels)
        num_ch_out = min(output_block.shape[0], self._num_output_channels)
        max_ch = max(num_ch_in, num_ch_out)
        carry = self._carry

        # Leftovers from earlier calls, completed with the head of this block
        while carry.count > 0 and carry.count + length >= n:
            self._assemble_from_carry(input_block, num_ch_in)
            self._dispatch(max_ch)
            carry.consume(h)

        if carry.count > 0:
            # Still short of a frame: keep everything for the next call
            carry.compact_and_append(input_block, num_ch_in)
        else:
            data_offset = -carry.count
            while length - data_offset >= n:
                self._assemble_from_input(input_block, data_offset, num_ch_in)
                self._dispatch(max_ch)
                data_offset += h
            carry.store(input_block, data_offset, num_ch_in)

        self._ring.emit(output_block, num_ch_out)
        if output_block.shape[0] > num_ch_out:
            output_block[num_ch_out:] = 0.0

    def _assemble_from_carry(self, input_block: NDArray[np.float32], num_channels: int) -> None:
        count = self._carry.count
        n = self._fft_size
        window = self._window
        for ch in range(num_channels):
            row = self._scratch[ch]
            np.multiply(self._carry.pending(ch), window[:count], out=row[:count])
            np.multiply(input_block[ch, : n - count], window[count:], out=row[count:n])

    def _assemble_from_input(
        self,
        input_block: NDArray[np.float32],
        data_offset: int,
        num_channels: int,
    ) -> None:
        n = self._fft_size
        for ch in range(num_channels):
            np.multiply(
                input_block[ch, data_offset : data_offset + n],
                self._window,
                out=self._scratch[ch, :n],
            )

    def _dispatch(self, num_channels: int) -> None:
        self.process_frame_in_buffer(num_channels)
        self._ring.write_frame(self._scratch)
        self._frames_processed += 1

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def is_prepared(self) -> bool:
        return self._ring is not None

    @property
    def fft_order(self) -> int:
        return self._fft_order

    @property
    def hop_divider(self) -> int:
        return self._hop_divider

    @property
    def fft_size(self) -> int:
        """Frame length N."""
        return self._fft_size

    @property
    def hop_size(self) -> int:
        """Hop size H."""
        return self._hop_size

    @property
    def latency_samples(self) -> int:
        """Input-to-output delay reported to the host."""
        return self._fft_size - 1

    @property
    def window(self) -> NDArray[np.float32]:
        return self._window

    @property
    def scratch(self) -> Optional[NDArray[np.float32]]:
        """Frame workspace, shape (max(in, out) channels, 2 * fft_size)."""
        return self._scratch

    @property
    def max_block_size(self) -> int:
        return self._max_block_size

    @property
    def pending_samples(self) -> int:
        """Input samples buffered towards the next frame (0 <= n < fft_size)."""
        return self._carry.count if self._carry is not None else 0

    @property
    def frames_processed(self) -> int:
        """Frames dispatched since the last prepare() or reset()."""
        return self._frames_processed

    @property
    def num_input_channels(self) -> int:
        return self._num_input_channels

    @property
    def num_output_channels(self) -> int:
        return self._num_output_channels
