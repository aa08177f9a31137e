"""
P2P Fuzzer: Port Allocator

Finds free local TCP ports without colliding with ports already handed out
in the same run. A port counts as taken if something on localhost accepts a
connection on it.
"""

from __future__ import annotations

import random
import socket

import structlog

logger = structlog.get_logger("p2pfuzz.scenario.ports")

PORT_RANGE_LOW = 8000
PORT_RANGE_HIGH = 12000
_PROBE_TIMEOUT_S = 1.0


def is_port_reachable(port: int, host: str = "localhost", timeout: float = _PROBE_TIMEOUT_S) -> bool:
    """True if a TCP connection to ``host:port`` succeeds."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


def allocate_port(
    taken: set[int],
    *,
    host: str = "localhost",
    low: int = PORT_RANGE_LOW,
    high: int = PORT_RANGE_HIGH,
    rng: random.Random | None = None,
) -> int:
    """
    Sample ports in ``[low, high]`` until one is free and not in ``taken``.

    The chosen port is added to ``taken``. Does not terminate if the range
    is exhausted; callers size the range for their demand.
    """
    rng = rng or random.Random()
    attempts = 0
    while True:
        port = rng.randint(low, high)
        attempts += 1
        if port in taken or is_port_reachable(port, host):
            continue
        taken.add(port)
        if attempts > 1:
            logger.debug("port_allocated_after_retries", port=port, attempts=attempts)
        return port
