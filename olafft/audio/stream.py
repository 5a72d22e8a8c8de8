"""Duplex sound card stream running an overlapping FFT processor live."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import sounddevice as sd
from numpy.typing import NDArray

from olafft.framing.processor import OverlappingFFTProcessor

logger = logging.getLogger(__name__)


class AudioStreamError(Exception):
    """Exception raised when the audio stream cannot be opened."""

    pass


class FramerStream:
    """
    Runs a processor inside a sounddevice duplex callback.

    The processor is prepared for the stream's block size before the stream
    starts. Tries the requested sample rate first, then the device default,
    then common rates, and a few block sizes for each.
    """

    def __init__(
        self,
        processor: OverlappingFFTProcessor,
        input_device: Optional[int] = None,
        output_device: Optional[int] = None,
        sample_rate: int = 48000,
        channels: int = 2,
        blocksize: int = 512,
    ):
        self.processor = processor
        self.input_device = input_device
        self.output_device = output_device
        self.sample_rate = sample_rate
        self.channels = channels
        self.blocksize = blocksize
        self._stream: Optional[sd.Stream] = None
        self._actual_sample_rate: Optional[int] = None
        self._out_buffer: Optional[NDArray[np.float32]] = None
        self.callbacks = 0
        self.status_errors = 0

    @property
    def actual_sample_rate(self) -> int:
        return self._actual_sample_rate or self.sample_rate

    def prepare(self, sample_rate: int, blocksize: int) -> None:
        """Size the processor and the callback's output buffer."""
        self.processor.prepare(sample_rate, blocksize, self.channels, self.channels)
        self._out_buffer = np.zeros((self.channels, blocksize), dtype=np.float32)
        self.callbacks = 0
        self.status_errors = 0

    def _audio_callback(
        self,
        indata: NDArray,
        outdata: NDArray,
        frames: int,
        time_info: dict,
        status: sd.CallbackFlags,
    ) -> None:
        """Internal sounddevice callback: (frames, channels) in, same out."""
        if status:
            self.status_errors += 1

        out = self._out_buffer[:, :frames]
        self.processor.process(indata.T, out)
        outdata[:] = out.T
        self.callbacks += 1

    def _get_sample_rates(self) -> list[int]:
        rates = [self.sample_rate]
        try:
            default_rate = int(sd.query_devices(self.output_device, kind="output")["default_samplerate"])
            rates.append(default_rate)
        except Exception as e:
            logger.debug(f"Could not query default sample rate: {e}")
        rates.extend([48000, 44100])
        return list(dict.fromkeys(rates))

    def _get_blocksize_options(self) -> list[int]:
        return list(dict.fromkeys([self.blocksize, 512, 1024, 2048]))

    def start(self) -> None:
        """Open and start the stream, trying fallback configurations."""
        if self._stream is not None:
            return

        last_error: Optional[Exception] = None
        attempts: list[str] = []

        for sr in self._get_sample_rates():
            for bs in self._get_blocksize_options():
                try:
                    self.prepare(sr, bs)
                    self._stream = sd.Stream(
                        device=(self.input_device, self.output_device),
                        samplerate=sr,
                        channels=self.channels,
                        blocksize=bs,
                        dtype=np.float32,
                        callback=self._audio_callback,
                    )
                    self._stream.start()
                    self._actual_sample_rate = int(self._stream.samplerate)
                    self.blocksize = bs
                    logger.info(
                        f"Duplex stream started: sr={self._actual_sample_rate}Hz, "
                        f"blocksize={bs}, latency={self.processor.latency_samples} samples"
                    )
                    return
                except Exception as e:
                    last_error = e
                    attempts.append(f"sr={sr}/bs={bs}")
                    logger.debug(f"Failed: sr={sr}/bs={bs}: {e}")
                    self._stream = None

        logger.error(f"All stream configurations failed ({', '.join(attempts)}). Last error: {last_error}")
        raise AudioStreamError(f"Could not open audio stream: {last_error}")

    def stop(self) -> None:
        """Stop stream."""
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as e:
                logger.warning(f"Error stopping stream: {e}")
            finally:
                self._stream = None
            if self.status_errors:
                logger.warning(f"{self.status_errors} of {self.callbacks} callbacks reported xruns")

    @property
    def is_active(self) -> bool:
        """Check if stream is active."""
        return self._stream is not None and self._stream.active


def list_devices(stream_type: str) -> list[dict]:
    """
    List available audio devices.

    Args:
        stream_type: "input" or "output"

    Returns:
        List of device info dictionaries with hostapi_name
    """
    devices = []
    channel_key = f"max_{stream_type}_channels"
    hostapi_names = {i: api["name"] for i, api in enumerate(sd.query_hostapis())}

    for i, dev in enumerate(sd.query_devices()):
        if dev[channel_key] > 0:
            devices.append({
                "index": i,
                "name": dev["name"],
                "channels": dev[channel_key],
                "sample_rate": dev["default_samplerate"],
                "hostapi_name": hostapi_names.get(dev["hostapi"], "Unknown"),
            })
    return devices


def find_device(name: Optional[str], stream_type: str) -> Optional[int]:
    """Resolve a device name to its index (None keeps the system default)."""
    if name is None:
        return None
    for dev in list_devices(stream_type):
        if dev["name"] == name:
            return dev["index"]
    logger.warning(f"{stream_type.capitalize()} device '{name}' not found, using default")
    return None
