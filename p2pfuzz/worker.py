"""
P2P Fuzzer: Worker Process

Standalone process that runs the peer-node runtime for every node
configuration in one window. Started by the supervisor as:

    python -m p2pfuzz.worker --start '<StartWorker JSON>'

The worker loads ``window_<index>.json`` from the run output directory and
starts one runtime instance per configuration. It runs until SIGINT or
SIGTERM; there is no other way for it to finish successfully.

The runtime entry point is an import path ``module:callable``. The callable
receives one node configuration dict and either returns an awaitable that
runs for the node's lifetime or starts the node in the background and
returns immediately.
"""

from __future__ import annotations

import asyncio
import importlib
import inspect
import os
import signal
import sys
from typing import Any, Callable

import structlog
from pydantic import ValidationError

from p2pfuzz.config import LoggingConfig
from p2pfuzz.errors import ConfigurationError
from p2pfuzz.primitives.messages import StartWorker
from p2pfuzz.systems.supervisor.service import WindowStore
from p2pfuzz.telemetry.logging import setup_logging

logger = structlog.get_logger("p2pfuzz.worker")

NodeRuntime = Callable[[dict[str, Any]], Any]


def load_runtime(path: str) -> NodeRuntime:
    """Resolve ``module:callable`` to the runtime entry point."""
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise ConfigurationError(f"Runtime must be 'module:callable', got {path!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"Cannot import runtime module {module_name!r}: {exc}") from exc
    runtime = getattr(module, attr, None)
    if not callable(runtime):
        raise ConfigurationError(f"Runtime {path!r} is not callable")
    return runtime


async def _run_node(runtime: NodeRuntime, config: dict[str, Any], node_log: Any) -> None:
    try:
        result = runtime(config)
        if not inspect.isawaitable(result):
            node_log.info("node_started")
            return
        node_log.info("node_running")
        await result
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        node_log.error("node_failed", error=str(exc), error_type=type(exc).__name__)
        raise
    node_log.warning("node_returned")


async def run_worker(
    message: StartWorker,
    runtime: NodeRuntime | None = None,
    shutdown_event: asyncio.Event | None = None,
) -> None:
    """
    Main worker loop.

    1. Configure logging into the run output directory.
    2. Load this window's node configurations.
    3. Start one runtime instance per configuration.
    4. Wait for a shutdown signal, then cancel every node.
    """
    setup_logging(
        LoggingConfig(level=message.log_level, format=message.log_format),
        component=f"worker_{message.window_index}",
        log_dir=message.output_dir,
        window=message.window_index,
        pid=os.getpid(),
    )
    log = logger.bind(
        node_version=message.node_version,
        report_version=message.report_version,
    )

    configs = WindowStore(message.output_dir).read_window(message.window_index)
    if runtime is None:
        runtime = load_runtime(message.runtime)
    log.info("worker_started", nodes=len(configs))

    stop = shutdown_event or asyncio.Event()

    def _signal_handler() -> None:
        log.info("shutdown_signal_received")
        stop.set()

    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
            installed.append(sig)
        except NotImplementedError:
            signal.signal(sig, lambda s, f: _signal_handler())

    tasks: list[asyncio.Task[None]] = []
    for config in configs:
        log_file = config.get("modules", [{}])[0].get("logFile", "")
        node_log = log.bind(node=log_file)
        tasks.append(asyncio.create_task(_run_node(runtime, config, node_log), name=f"node:{log_file}"))

    try:
        await stop.wait()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        log.info("worker_shutdown_complete")


def main() -> None:
    """CLI entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="P2P Fuzzer worker process")
    parser.add_argument("--start", required=True, help="StartWorker message as JSON")
    args = parser.parse_args()

    try:
        message = StartWorker.model_validate_json(args.start)
    except ValidationError as exc:
        print(f"Invalid start message: {exc}", file=sys.stderr)
        sys.exit(2)

    try:
        asyncio.run(run_worker(message))
    except ConfigurationError as exc:
        logger.error("worker_config_error", error=str(exc))
        sys.exit(1)


if __name__ == "__main__":
    main()
