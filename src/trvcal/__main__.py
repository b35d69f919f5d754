"""Command-line entry point: ``python -m trvcal [config.yaml]``."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
import sys

from trvcal.config import CalibratorConfig
from trvcal.exceptions import ConfigError, TransportConnectError
from trvcal.service import CalibrationService

_LOG = logging.getLogger("trvcal")

EXIT_OK = 0
EXIT_CONNECT_FAILED = 1
EXIT_BAD_CONFIG = 2


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="trvcal",
        description="Keep thermostatic valve calibration aligned with reference temperature sensors.",
    )
    parser.add_argument(
        "config",
        nargs="?",
        default="config.yaml",
        help="Path to the YAML configuration file (default: config.yaml).",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("TRVCAL_LOG_LEVEL", "INFO"),
        help="Logging level (default: $TRVCAL_LOG_LEVEL or INFO).",
    )
    return parser.parse_args(argv)


async def _serve(config: CalibratorConfig) -> None:
    async with CalibrationService(config) as service:
        run_task = asyncio.create_task(service.run(), name="trvcal-dispatch")

        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(signum, run_task.cancel)

        try:
            await run_task
        except asyncio.CancelledError:
            _LOG.info("Interrupted, shutting down")
        finally:
            for signum in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(signum)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = CalibratorConfig.from_file(args.config)
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_BAD_CONFIG

    try:
        asyncio.run(_serve(config))
    except ConfigError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return EXIT_BAD_CONFIG
    except TransportConnectError as exc:
        _LOG.error("Cannot start without a broker connection: %s", exc)
        return EXIT_CONNECT_FAILED
    return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())
