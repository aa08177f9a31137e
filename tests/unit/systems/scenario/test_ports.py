"""
Unit tests for the port allocator.
"""

from __future__ import annotations

import random
import socket

from p2pfuzz.systems.scenario.ports import allocate_port, is_port_reachable


class TestIsPortReachable:
    def test_listening_port_is_reachable(self):
        server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        server.bind(("127.0.0.1", 0))
        server.listen(1)
        try:
            port = server.getsockname()[1]
            assert is_port_reachable(port, "127.0.0.1") is True
        finally:
            server.close()


class TestAllocatePort:
    def test_skips_taken_ports(self, no_port_probe):
        taken = {8000, 8001, 8002, 8004}
        port = allocate_port(taken, low=8000, high=8004, rng=random.Random(7))

        assert port == 8003
        assert 8003 in taken

    def test_skips_reachable_ports(self, monkeypatch):
        monkeypatch.setattr(
            "p2pfuzz.systems.scenario.ports.is_port_reachable",
            lambda port, host="localhost", timeout=1.0: port != 8010,
        )
        assert allocate_port(set(), low=8005, high=8015, rng=random.Random(1)) == 8010

    def test_repeated_allocation_yields_distinct_ports(self, no_port_probe):
        taken: set[int] = set()
        rng = random.Random(3)
        ports = [allocate_port(taken, low=9000, high=9050, rng=rng) for _ in range(40)]

        assert len(set(ports)) == 40
        assert all(9000 <= p <= 9050 for p in ports)
