"""
DataTracker Main Entry Point
============================
Background network-usage tracker.

Run with: python -m datatracker
"""

import sys
import signal
import argparse
import logging
from pathlib import Path

from .config import (
    TrackerConfig,
    load_config,
    MIN_SAMPLE_INTERVAL,
    MAX_SAMPLE_INTERVAL,
    MIN_WS_PORT,
    MAX_WS_PORT,
)
from .storage import DailyLedger
from .tracker import Tracker
from .utils import Console


def setup_logging(verbose: bool = False):
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%H:%M:%S'
    )


def validate_args(args) -> list[str]:
    """Bounds checking on numeric CLI inputs."""
    errors = []

    if args.interval is not None and not (MIN_SAMPLE_INTERVAL <= args.interval <= MAX_SAMPLE_INTERVAL):
        errors.append(
            f"--interval must be between {MIN_SAMPLE_INTERVAL} and {MAX_SAMPLE_INTERVAL}"
        )

    if args.port is not None and not (MIN_WS_PORT <= args.port <= MAX_WS_PORT):
        errors.append(f"--port must be between {MIN_WS_PORT} and {MAX_WS_PORT}")

    if args.show and args.reset:
        errors.append("--show and --reset cannot be combined")

    return errors


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='datatracker',
        description="DataTracker: daily network usage tracker",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m datatracker                   # Track with defaults
  python -m datatracker --show            # Print recorded usage and exit
  python -m datatracker --no-websocket    # No GUI push channel
  python -m datatracker --config my.yaml  # Custom config file
        """
    )

    parser.add_argument('--config', '-c', type=str, default=None,
                        help='Path to config file (YAML or JSON)')
    parser.add_argument('--data-dir', type=str, default=None,
                        help='Directory holding data/daily.json')
    parser.add_argument('--interval', '-i', type=float, default=None,
                        help='Sampling interval in seconds (default: 1.0)')
    parser.add_argument('--port', '-p', type=int, default=None,
                        help='WebSocket port (default: 8765)')
    parser.add_argument('--no-websocket', action='store_true',
                        help='Disable the WebSocket push channel')
    parser.add_argument('--show', action='store_true',
                        help='Print recorded usage and exit')
    parser.add_argument('--reset', action='store_true',
                        help='Delete all recorded usage and exit')
    parser.add_argument('--quiet', '-q', action='store_true',
                        help='No live status line')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Enable verbose logging')
    return parser


def build_config(args) -> TrackerConfig:
    """Config file first, then CLI overrides."""
    if args.config:
        config = load_config(Path(args.config))
    else:
        config = TrackerConfig()

    if args.data_dir:
        config.data_dir = Path(args.data_dir).expanduser()
    if args.interval is not None:
        config.sample_interval = args.interval
    if args.port is not None:
        config.websocket_port = args.port
    if args.no_websocket or args.show or args.reset:
        config.websocket_enabled = False

    return config


def main(argv=None):
    """Main entry point."""
    args = build_parser().parse_args(argv)

    setup_logging(args.verbose)

    validation_errors = validate_args(args)
    if validation_errors:
        for error in validation_errors:
            Console.print_error(error)
        sys.exit(1)

    config = build_config(args)

    config_errors = config.validate()
    if config_errors:
        for error in config_errors:
            Console.print_error(error)
        sys.exit(1)

    # One-shot commands
    if args.show or args.reset:
        ledger = DailyLedger(config.data_file, backup_on_write=config.backup_on_write)
        if args.show:
            Console.print_ledger(ledger.snapshot())
        elif ledger.reset():
            Console.print_info("Data reset")
        else:
            Console.print_error("Failed to reset data")
            sys.exit(1)
        return

    tracker = Tracker(config)
    if not args.quiet:
        tracker.broadcast.register(Console.print_status)

    def signal_handler(sig, frame):
        Console.print_info("Signal received, shutting down...")
        tracker.stop_event.set()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    Console.print_banner()
    ws_url = (
        f"ws://{config.websocket_host}:{config.websocket_port}"
        if config.websocket_enabled else None
    )
    Console.print_config(str(config.data_file), config.sample_interval, ws_url)

    try:
        tracker.run()
    finally:
        Console.print_summary(tracker.get_session_summary())


if __name__ == "__main__":
    main()
