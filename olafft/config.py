"""Configuration management with JSON persistence."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

VALID_EFFECTS = ("none", "passthrough", "lowpass", "gate")


@dataclass
class FramerConfig:
    """Frame and hop size of the overlapping FFT processor."""

    fft_order: int = 11  # fft_size = 2**fft_order (2048)
    hop_divider: int = 2  # hop_size = fft_size / 2**hop_divider (75% overlap)
    # Pretend the stream starts after silence so the first frame gets full overlap
    prime_with_silence: bool = True

    def __post_init__(self) -> None:
        if self.fft_order < 1:
            raise ValueError(f"fft_order must be >= 1, got {self.fft_order}")
        if not 1 <= self.hop_divider <= self.fft_order:
            raise ValueError(
                f"hop_divider must be in [1, fft_order={self.fft_order}], got {self.hop_divider}"
            )

    @property
    def fft_size(self) -> int:
        return 1 << self.fft_order

    @property
    def hop_size(self) -> int:
        return self.fft_size >> self.hop_divider

    @property
    def latency_samples(self) -> int:
        return self.fft_size - 1


@dataclass
class StreamConfig:
    """Host stream configuration."""

    sample_rate: int = 48000
    block_size: int = 512
    channels: int = 2
    input_device_name: Optional[str] = None  # Device name (more stable than index)
    output_device_name: Optional[str] = None

    def __post_init__(self) -> None:
        if self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")
        if self.block_size <= 0:
            raise ValueError(f"block_size must be positive, got {self.block_size}")
        if self.channels <= 0:
            raise ValueError(f"channels must be positive, got {self.channels}")


@dataclass
class EffectConfig:
    """Frame callback selection and parameters."""

    name: str = "lowpass"  # none, passthrough, lowpass, gate
    cutoff: float = 0.5  # lowpass cutoff as a fraction of Nyquist
    # Spectral gate parameters
    threshold_db: float = 6.0
    reduction_db: float = -24.0
    noise_frames: int = 10

    def __post_init__(self) -> None:
        if self.name not in VALID_EFFECTS:
            raise ValueError(f"Unknown effect '{self.name}', valid: {', '.join(VALID_EFFECTS)}")
        if not 0.0 < self.cutoff <= 1.0:
            raise ValueError(f"cutoff must be in (0, 1], got {self.cutoff}")


def _known_keys(cls: type, data: dict) -> dict:
    """Drop keys the dataclass does not know (older or newer config files)."""
    names = {f.name for f in fields(cls)}
    unknown = set(data) - names
    if unknown:
        logger.debug(f"Ignoring unknown {cls.__name__} keys: {sorted(unknown)}")
    return {k: v for k, v in data.items() if k in names}


@dataclass
class OlafftConfig:
    """Main configuration for olafft."""

    framer: FramerConfig = field(default_factory=FramerConfig)
    stream: StreamConfig = field(default_factory=StreamConfig)
    effect: EffectConfig = field(default_factory=EffectConfig)

    @classmethod
    def load(cls, path: Optional[Path] = None) -> OlafftConfig:
        """Load configuration from JSON file (defaults if it does not exist)."""
        if path is None:
            path = cls.default_path()

        if not path.exists():
            return cls()

        with open(path, encoding="utf-8") as f:
            data = json.load(f)

        return cls(
            framer=FramerConfig(**_known_keys(FramerConfig, data.get("framer", {}))),
            stream=StreamConfig(**_known_keys(StreamConfig, data.get("stream", {}))),
            effect=EffectConfig(**_known_keys(EffectConfig, data.get("effect", {}))),
        )

    def save(self, path: Optional[Path] = None) -> None:
        """Save configuration to JSON file."""
        if path is None:
            path = self.default_path()

        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(asdict(self), f, indent=2, ensure_ascii=False)

    @staticmethod
    def default_path() -> Path:
        """Return the default configuration file path."""
        return Path.home() / ".config" / "olafft" / "config.json"
