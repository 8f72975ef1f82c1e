import argparse
import logging
import signal
import sys
import time
from pathlib import Path

from .config import load_config
from .errors import CaptureError, ConfigError, SessionActiveError
from .runtime import CompanionRuntime


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Companion voice loop")
    parser.add_argument(
        "--config",
        type=Path,
        default=Path("config/companion.example.yaml"),
        help="Path to YAML config file",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Entry point for the patient voice loop."""
    args = parse_args(argv)
    try:
        config = load_config(args.config)
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    level_name = config.logging.level.upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(threadName)s] %(message)s",
        force=True,
    )
    logging.info("Loaded config from %s", args.config)

    try:
        runtime = CompanionRuntime(config)
        runtime.start()
    except ConfigError as exc:
        logging.error("Invalid configuration: %s", exc)
        return 2
    except (CaptureError, SessionActiveError) as exc:
        logging.error("Microphone access failed: %s", exc)
        return 1
    logging.info("Listening for %s's companion (%s).", config.persona.name, config.persona.relation)

    stopping = False

    def _handle_signal(signum, frame):
        nonlocal stopping
        if stopping:
            return
        stopping = True
        logging.info("Received signal %s; stopping runtime", signum)
        runtime.stop()
        sys.exit(0)

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    try:
        while runtime.last_error is None:
            time.sleep(1.0)
    except KeyboardInterrupt:
        logging.info("Keyboard interrupt received; shutting down runtime")
        _handle_signal("keyboard", None)
    runtime.stop()
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
