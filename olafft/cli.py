"""olafft command-line interface."""

from __future__ import annotations

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

from olafft import __version__

# Global log file path for easy access
LOG_FILE: Path | None = None


def _log_dir() -> Path:
    return Path.home() / ".config" / "olafft" / "logs"


def setup_logging(verbose: bool = False, log_to_file: bool = True) -> Path | None:
    """Setup logging configuration with optional file output.

    Args:
        verbose: Enable DEBUG level logging
        log_to_file: Write logs to file in addition to console

    Returns:
        Path to log file if file logging is enabled
    """
    global LOG_FILE

    level = logging.DEBUG if verbose else logging.INFO
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    handlers: list[logging.Handler] = []

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(logging.Formatter(log_format))
    handlers.append(console_handler)

    log_file = None
    if log_to_file:
        log_dir = _log_dir()
        log_dir.mkdir(parents=True, exist_ok=True)

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"olafft_{timestamp}.log"
        LOG_FILE = log_file

        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)  # Always DEBUG for file
        file_handler.setFormatter(logging.Formatter(log_format))
        handlers.append(file_handler)

        _cleanup_old_logs(log_dir, keep=10)

    logging.basicConfig(
        level=logging.DEBUG,  # Handlers filter
        format=log_format,
        handlers=handlers,
        force=True,
    )

    return log_file


def _cleanup_old_logs(log_dir: Path, keep: int = 10) -> None:
    """Remove old log files, keeping the most recent ones."""
    try:
        log_files = sorted(log_dir.glob("olafft_*.log"), key=lambda p: p.stat().st_mtime)
        for old_log in log_files[:-keep]:
            old_log.unlink()
    except OSError as e:
        logging.getLogger(__name__).debug(f"Log cleanup failed: {e}")


def _load_config(args: argparse.Namespace):
    """Load the stored config and apply command-line overrides."""
    from olafft.config import EffectConfig, FramerConfig, OlafftConfig

    config = OlafftConfig.load(Path(args.config) if args.config else None)

    framer = config.framer
    if args.fft_order is not None or args.hop_divider is not None or args.no_prime:
        framer = FramerConfig(
            fft_order=args.fft_order if args.fft_order is not None else framer.fft_order,
            hop_divider=args.hop_divider if args.hop_divider is not None else framer.hop_divider,
            prime_with_silence=framer.prime_with_silence and not args.no_prime,
        )
    config.framer = framer

    effect = config.effect
    if getattr(args, "effect", None) is not None or getattr(args, "cutoff", None) is not None:
        effect = EffectConfig(
            name=args.effect if args.effect is not None else effect.name,
            cutoff=args.cutoff if args.cutoff is not None else effect.cutoff,
            threshold_db=effect.threshold_db,
            reduction_db=effect.reduction_db,
            noise_frames=effect.noise_frames,
        )
    config.effect = effect
    return config


def build_processor(config, sample_rate: float):
    """Create the framer and its frame callback from a config."""
    from olafft.framing.processor import OverlappingFFTProcessor
    from olafft.spectral.effects import GateConfig, create_effect

    framer = config.framer
    effect_cfg = config.effect
    gate_config = GateConfig(
        noise_frames=effect_cfg.noise_frames,
        threshold_db=effect_cfg.threshold_db,
        reduction_db=effect_cfg.reduction_db,
    )
    effect = create_effect(
        effect_cfg.name,
        framer.fft_order,
        framer.hop_divider,
        sample_rate=sample_rate,
        cutoff=effect_cfg.cutoff,
        gate_config=gate_config,
    )
    return OverlappingFFTProcessor(
        framer.fft_order,
        framer.hop_divider,
        frame_callback=effect,
        prime_with_silence=framer.prime_with_silence,
    )


def cmd_process(args: argparse.Namespace) -> int:
    """Run a WAV file through the processor."""
    from olafft.host import load_wav, process_signal, save_wav

    logger = logging.getLogger(__name__)
    config = _load_config(args)

    print(f"Loading: {args.input}")
    sr, audio = load_wav(args.input)
    block_size = args.block_size or config.stream.block_size

    processor = build_processor(config, sr)
    print(
        f"Processing {audio.shape[1]} samples x {audio.shape[0]} ch "
        f"(fft_size={processor.fft_size}, hop={processor.hop_size}, "
        f"effect={config.effect.name}, block={block_size})..."
    )
    output = process_signal(
        processor,
        audio,
        block_sizes=block_size,
        sample_rate=sr,
        compensate_latency=args.compensate_latency,
    )
    logger.info(f"Dispatched {processor.frames_processed} frames")

    output_path = args.output or str(Path(args.input).with_name(Path(args.input).stem + "_processed.wav"))
    print(f"Saving: {output_path}")
    save_wav(output_path, sr, output)

    print("Done!")
    return 0


def cmd_live(args: argparse.Namespace) -> int:
    """Run the processor live between sound card input and output."""
    import time

    from olafft.audio.stream import FramerStream, find_device

    config = _load_config(args)
    stream_cfg = config.stream
    sample_rate = args.sample_rate or stream_cfg.sample_rate
    processor = build_processor(config, sample_rate)

    stream = FramerStream(
        processor,
        input_device=find_device(stream_cfg.input_device_name, "input"),
        output_device=find_device(stream_cfg.output_device_name, "output"),
        sample_rate=sample_rate,
        channels=stream_cfg.channels,
        blocksize=args.block_size or stream_cfg.block_size,
    )
    stream.start()
    print(f"Running (latency {processor.latency_samples} samples). Press Ctrl+C to stop.")
    try:
        while args.duration is None or args.duration > 0:
            time.sleep(0.1)
            if args.duration is not None:
                args.duration -= 0.1
    finally:
        stream.stop()
    return 0


def cmd_devices(args: argparse.Namespace) -> int:
    """List available devices."""
    from olafft.audio.stream import list_devices

    print("=== Audio Input Devices ===")
    for dev in list_devices("input"):
        print(f"  [{dev['index']}] {dev['name']} ({int(dev['sample_rate'])}Hz, {dev['channels']}ch, {dev['hostapi_name']})")

    print("\n=== Audio Output Devices ===")
    for dev in list_devices("output"):
        print(f"  [{dev['index']}] {dev['name']} ({int(dev['sample_rate'])}Hz, {dev['channels']}ch, {dev['hostapi_name']})")

    return 0


def cmd_info(args: argparse.Namespace) -> int:
    """Show frame geometry and latency for the configured processor."""
    from olafft.framing.window import is_cola, overlap_add_sum

    config = _load_config(args)
    sample_rate = args.sample_rate or config.stream.sample_rate
    processor = build_processor(config, sample_rate)
    gain = overlap_add_sum(processor.window, processor.hop_size)

    print("Processor:")
    print(f"  FFT size: {processor.fft_size} (2^{processor.fft_order})")
    print(f"  Hop size: {processor.hop_size} ({100 * (1 - processor.hop_size / processor.fft_size):.1f}% overlap)")
    print(f"  Latency: {processor.latency_samples} samples ({1000 * processor.latency_samples / sample_rate:.2f} ms @ {sample_rate}Hz)")
    print(f"  Overlap-add gain: {gain.mean():.6f} (COLA: {'yes' if is_cola(processor.window, processor.hop_size) else 'no'})")
    print(f"  Cold start primed: {'yes' if config.framer.prime_with_silence else 'no'}")
    print(f"  Effect: {config.effect.name}")
    return 0


def cmd_logs(args: argparse.Namespace) -> int:
    """Show log files."""
    log_dir = _log_dir()

    log_files = sorted(log_dir.glob("olafft_*.log"), key=lambda p: p.stat().st_mtime, reverse=True) if log_dir.exists() else []
    if not log_files:
        print("No log files found.")
        return 0

    if args.tail:
        latest = log_files[0]
        print(f"=== {latest.name} (last {args.tail} lines) ===\n")
        with open(latest, "r", encoding="utf-8") as f:
            lines = f.readlines()
            for line in lines[-args.tail:]:
                print(line, end="")
        return 0

    print(f"Log directory: {log_dir}\n")
    print("Recent log files:")
    for log_file in log_files[:10]:
        size = log_file.stat().st_size
        mtime = datetime.fromtimestamp(log_file.stat().st_mtime).strftime("%Y-%m-%d %H:%M:%S")
        print(f"  {log_file.name}  ({size:,} bytes, {mtime})")
    return 0


def _add_framer_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--config", "-c", help="Config file (default: ~/.config/olafft/config.json)")
    parser.add_argument("--fft-order", type=int, help="FFT size as a power of 2 (default: 11)")
    parser.add_argument("--hop-divider", type=int, help="Hop size = FFT size / 2^N (default: 2)")
    parser.add_argument(
        "--no-prime",
        action="store_true",
        help="Do not treat the stream as preceded by silence",
    )


def _add_effect_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--effect", "-e",
        choices=["none", "passthrough", "lowpass", "gate"],
        help="Frame callback (default: lowpass)",
    )
    parser.add_argument("--cutoff", type=float, help="Lowpass cutoff as a fraction of Nyquist")


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="olafft",
        description="olafft - overlapping FFT stream processor",
    )
    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"olafft {__version__}",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--no-log-file",
        action="store_true",
        help="Log to the console only",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    process_parser = subparsers.add_parser("process", help="Process a WAV file")
    process_parser.add_argument("input", help="Input WAV file")
    process_parser.add_argument("--output", "-o", help="Output WAV file")
    process_parser.add_argument("--block-size", "-b", type=int, help="Host block size in samples")
    process_parser.add_argument(
        "--compensate-latency",
        action="store_true",
        help="Remove the processor latency so output aligns with input",
    )
    _add_framer_args(process_parser)
    _add_effect_args(process_parser)
    process_parser.set_defaults(func=cmd_process)

    live_parser = subparsers.add_parser("live", help="Process sound card input live")
    live_parser.add_argument("--block-size", "-b", type=int, help="Stream block size in samples")
    live_parser.add_argument("--sample-rate", "-r", type=int, help="Stream sample rate")
    live_parser.add_argument("--duration", "-d", type=float, help="Stop after N seconds")
    _add_framer_args(live_parser)
    _add_effect_args(live_parser)
    live_parser.set_defaults(func=cmd_live)

    devices_parser = subparsers.add_parser("devices", help="List available audio devices")
    devices_parser.set_defaults(func=cmd_devices)

    info_parser = subparsers.add_parser("info", help="Show frame geometry and latency")
    info_parser.add_argument("--sample-rate", "-r", type=int, help="Sample rate for latency in ms")
    _add_framer_args(info_parser)
    _add_effect_args(info_parser)
    info_parser.set_defaults(func=cmd_info)

    logs_parser = subparsers.add_parser("logs", help="View log files")
    logs_parser.add_argument(
        "--tail", "-t",
        type=int,
        metavar="N",
        help="Show last N lines of the latest log",
    )
    logs_parser.set_defaults(func=cmd_logs)

    args = parser.parse_args(argv)

    setup_logging(args.verbose, log_to_file=not args.no_log_file)

    if args.command is None:
        parser.print_help()
        return 0

    try:
        return args.func(args)
    except KeyboardInterrupt:
        print("\nInterrupted")
        return 130
    except Exception as e:
        logging.error(f"Error: {e}")
        if args.verbose:
            import traceback
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
