"""
P2P Fuzzer: Command Line Entry Point

Usage:
    p2pfuzz scenario.yaml
    python -m p2pfuzz scenario.yaml --log-format json

If the scenario file does not exist, a default one is written in its place
and the command exits with status 1 without running.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

import structlog

from p2pfuzz.config import LoggingConfig, load_config
from p2pfuzz.errors import P2PFuzzError
from p2pfuzz.fuzzer import create_output_dir, run_fuzzer
from p2pfuzz.telemetry.logging import setup_logging

logger = structlog.get_logger("p2pfuzz")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="p2pfuzz",
        description="Chaos fuzzer for a peer-to-peer oracle network",
    )
    parser.add_argument("config", help="Path to the fuzz scenario YAML")
    parser.add_argument("--log-level", default=None, help="Override the configured log level")
    parser.add_argument(
        "--log-format",
        choices=["console", "json"],
        default=None,
        help="Override the configured log format",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(LoggingConfig(level=args.log_level or "INFO", format=args.log_format or "console"))

    try:
        config = load_config(args.config)
    except P2PFuzzError as exc:
        logger.error("config_error", path=args.config, error=str(exc))
        return 1

    overrides = {
        key: value
        for key, value in (("level", args.log_level), ("format", args.log_format))
        if value is not None
    }
    logging_config = config.logging.model_copy(update=overrides)
    output_dir = create_output_dir(config.output_root)
    setup_logging(logging_config, component="fuzzer", log_dir=output_dir)
    config = config.model_copy(update={"logging": logging_config})
    logger.info("fuzz_run_starting", config=args.config, output_dir=str(output_dir))

    try:
        asyncio.run(run_fuzzer(config, output_dir))
    except P2PFuzzError as exc:
        logger.error("fuzz_run_failed", error=str(exc), error_type=type(exc).__name__)
        return 1
    except KeyboardInterrupt:
        logger.info("fuzz_run_interrupted")
    return 0


if __name__ == "__main__":
    sys.exit(main())
