"""
Shared fakes for the fuzzer test suite.

The chain and worker processes are external; these stand-ins record what
the systems ask of them.
"""

from __future__ import annotations

import asyncio
import itertools
from typing import Any

import pytest

from p2pfuzz.clients.chain import FundedIdentity
from p2pfuzz.errors import ChainDeploymentError

CREATOR = FundedIdentity("0x" + "c" * 40, "0x" + "1" * 64)
CONTRACT_ADDRESS = "0x" + "ab" * 20

_pids = itertools.count(1000)


class FakeProcess:
    def __init__(self) -> None:
        self.pid = next(_pids)
        self.returncode: int | None = None
        self.terminated = False
        self.killed = False
        self.ignore_sigterm = False
        self._exited = asyncio.Event()

    def terminate(self) -> None:
        self.terminated = True
        if not self.ignore_sigterm:
            self.exit(-15)

    def kill(self) -> None:
        self.killed = True
        self.exit(-9)

    def exit(self, code: int) -> None:
        if self.returncode is None:
            self.returncode = code
            self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        assert self.returncode is not None
        return self.returncode


class FakeLauncher:
    def __init__(self) -> None:
        self.launched: list[tuple[Any, dict[str, str], FakeProcess]] = []

    async def launch(self, message: Any, env: dict[str, str]) -> FakeProcess:
        process = FakeProcess()
        self.launched.append((message, env, process))
        return process

    def process(self, pid: int) -> FakeProcess:
        return next(p for _, _, p in self.launched if p.pid == pid)


class FakeChain:
    def __init__(self, port: int = 8545, fail_deploy: bool = False) -> None:
        self.port = port
        self.fail_deploy = fail_deploy
        self.started = False
        self.stopped = False
        self.funded: list[FundedIdentity] = []

    async def start(self) -> None:
        self.started = True

    async def create_funded_identity(self) -> FundedIdentity:
        n = len(self.funded) + 1
        identity = FundedIdentity(f"0x{n:040x}", f"0x{n:064x}")
        self.funded.append(identity)
        return identity

    async def deploy_registry(self) -> str:
        if self.fail_deploy:
            raise ChainDeploymentError("Contract was not deployed", tx_hash="0xdead")
        return CONTRACT_ADDRESS

    def creator_identity(self) -> FundedIdentity:
        return CREATOR

    def used_port(self) -> int:
        return self.port

    async def stop(self) -> None:
        self.stopped = True


@pytest.fixture
def launcher() -> FakeLauncher:
    return FakeLauncher()


@pytest.fixture
def fake_chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def no_port_probe(monkeypatch: pytest.MonkeyPatch) -> None:
    """Treat every local port as free so allocation never touches the network."""
    monkeypatch.setattr(
        "p2pfuzz.systems.scenario.ports.is_port_reachable",
        lambda *args, **kwargs: False,
    )
