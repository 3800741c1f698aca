"""Command-line entry point for the HLS watcher."""
from __future__ import annotations

import argparse
import logging
import signal
from pathlib import Path

from .config import ConfigError, config_from_env, load_config
from .feed import WatchSetupError
from .jobs import CapacityExceededError
from .orchestrator import FatalError, Orchestrator


def main() -> None:
    parser = argparse.ArgumentParser(description="Convert settled video files in a directory to HLS")
    parser.add_argument(
        "--config",
        default=None,
        help="Path to the YAML configuration file (default: read SRC_DIR and DST_DIR from the environment)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Serve the destination directory over HTTP regardless of the configuration",
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    try:
        if args.config is not None:
            app_config = load_config(Path(args.config))
        else:
            app_config = config_from_env()
    except ConfigError as exc:
        logging.error("%s", exc)
        raise SystemExit(2) from exc

    if args.serve:
        app_config.serve.enabled = True

    orchestrator = Orchestrator(app_config)
    signal.signal(signal.SIGTERM, lambda signum, frame: orchestrator.cancel())

    try:
        orchestrator.start()
    except (CapacityExceededError, WatchSetupError, OSError) as exc:
        logging.error("Startup failed: %s", exc)
        raise SystemExit(1) from exc

    try:
        orchestrator.wait()
    except KeyboardInterrupt:
        logging.info("Interrupted by user")
    except FatalError as exc:
        logging.error("Fatal: %s", exc)
        raise SystemExit(1) from exc
    finally:
        orchestrator.stop()


if __name__ == "__main__":
    main()
