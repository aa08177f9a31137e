"""
P2P Fuzzer: Run Orchestration

Wires the systems together for one fuzz run:

  ScenarioGenerator → ChainBootstrap → WindowStore → ChurnController

``P2PFuzzer.init()`` does everything that can fail fatally (configuration,
chain deployment) before a single worker is spawned. ``fuzz()`` then starts
the pool and runs the churn loop until the stop event is set.
"""

from __future__ import annotations

import asyncio
import random
import signal
from pathlib import Path
from typing import TYPE_CHECKING, Any

import structlog

from p2pfuzz.clients.chain import LocalDevChain
from p2pfuzz.primitives.common import random_string
from p2pfuzz.primitives.topology import partition_windows
from p2pfuzz.systems.bootstrap.service import ChainBootstrap
from p2pfuzz.systems.churn.controller import ChurnController
from p2pfuzz.systems.scenario.generator import ScenarioGenerator
from p2pfuzz.systems.supervisor.launcher import SubprocessLauncher
from p2pfuzz.systems.supervisor.service import WindowStore, WorkerSupervisor

if TYPE_CHECKING:
    from p2pfuzz.clients.chain import FundingChain
    from p2pfuzz.config import FuzzConfig
    from p2pfuzz.systems.bootstrap.service import BootstrapResult
    from p2pfuzz.systems.scenario.generator import Scenario
    from p2pfuzz.systems.supervisor.launcher import ProcessLauncher

logger = structlog.get_logger("p2pfuzz.fuzzer")


def create_output_dir(root: str | Path, rng: random.Random | None = None) -> Path:
    """Fresh ``<root>/xxxxxxxx-xxxxxxxx-xxxxxxxx-xxxxxxxx`` directory for one run."""
    rng = rng or random.Random()
    name = "-".join(random_string(8, rng) for _ in range(4))
    path = Path(root) / name
    path.mkdir(parents=True, exist_ok=False)
    return path


class P2PFuzzer:
    """
    One fuzz run.

    ``chain`` and ``launcher`` default to a local dev chain subprocess and
    ``python -m p2pfuzz.worker`` processes.
    """

    def __init__(
        self,
        config: FuzzConfig,
        output_dir: str | Path,
        rng: random.Random | None = None,
        chain: FundingChain | None = None,
        launcher: ProcessLauncher | None = None,
    ) -> None:
        self._config = config
        self._rng = rng or random.Random()
        self._store = WindowStore(output_dir)
        self._chain = chain
        self._launcher = launcher or SubprocessLauncher()
        self._scenario: Scenario | None = None
        self._bootstrap: BootstrapResult | None = None
        self._controller: ChurnController | None = None

    @property
    def output_dir(self) -> Path:
        return self._store.output_dir

    @property
    def controller(self) -> ChurnController | None:
        return self._controller

    # ── Setup ─────────────────────────────────────────────────────

    async def init(self) -> BootstrapResult:
        """Generate the scenario, bootstrap the chain and persist run metadata."""
        config = self._config
        generator = ScenarioGenerator(
            config, rng=self._rng, reserved_ports={config.blockchain_port}
        )
        scenario = generator.generate()
        self._scenario = scenario

        if self._chain is None:
            self._chain = LocalDevChain(
                config.chain,
                config.blockchain_port,
                log_dir=self.output_dir,
                reserved_ports=set(scenario.ports),
            )
        bootstrap = await ChainBootstrap(
            self._chain,
            config.p2p_config.creator_private_key_env,
            expected_creator=config.p2p_config.creator_address,
        ).bootstrap(scenario)
        self._bootstrap = bootstrap

        self._store.write_config_info(self.config_info())
        logger.info("fuzzer_initialised", output_dir=str(self.output_dir))
        return bootstrap

    def config_info(self) -> dict[str, Any]:
        if self._scenario is None or self._bootstrap is None:
            raise RuntimeError("Fuzzer not initialised")
        return {
            "num_nodes": self._scenario.num_nodes,
            "ports": self._scenario.ports,
            "peer_ids": [identity.to_json() for identity in self._scenario.identities],
            "pairs": [pair.model_dump() for pair in self._scenario.pairs],
            "contract_address": self._bootstrap.contract_address,
            "creator_address": self._bootstrap.creator.address,
            "blockchain_port": self._bootstrap.chain_port,
        }

    def write_windows(self) -> list[list[str]]:
        """
        Persist one window file per worker.

        Returns the credential environment keys each window's worker needs.
        """
        if self._scenario is None or self._bootstrap is None:
            raise RuntimeError("Fuzzer not initialised")
        topology = self._bootstrap.topology
        configs = topology.node_configs(
            self._config.node_config,
            self._scenario.pairs,
            self._bootstrap.contract_address,
        )
        size = self._config.p2p_config.window
        config_windows = partition_windows(configs, size)
        node_windows = partition_windows(topology.nodes, size)

        for index, window in enumerate(config_windows):
            self._store.write_window(index, window)
        logger.info("windows_written", windows=len(config_windows), window_size=size)
        return [[node.private_key_env for node in nodes] for nodes in node_windows]

    # ── Run ───────────────────────────────────────────────────────

    async def fuzz(self, stop: asyncio.Event) -> None:
        """Start one worker per window and run the churn loop until ``stop``."""
        if self._bootstrap is None:
            raise RuntimeError("Fuzzer not initialised")
        window_credentials = self.write_windows()

        supervisor = WorkerSupervisor(self._launcher, credentials=self._bootstrap.credentials)
        self._controller = ChurnController(
            self._config.p2p_config,
            supervisor,
            output_dir=str(self.output_dir),
            rng=self._rng,
            logging_config=self._config.logging,
            runtime=self._config.node_config.runtime,
        )
        await self._controller.start_pool(window_credentials)
        await self._controller.run(stop)

    async def close(self) -> None:
        """Terminate every worker, then the chain."""
        if self._controller is not None:
            await self._controller.shutdown()
        if self._chain is not None:
            await self._chain.stop()
        logger.info("fuzzer_closed")


async def run_fuzzer(config: FuzzConfig, output_dir: str | Path) -> None:
    """
    Run until SIGINT/SIGTERM. Workers and the chain are torn down on any exit path.
    """
    stop = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("shutdown_signal_received")
        stop.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            signal.signal(sig, lambda s, f: _signal_handler())

    fuzzer = P2PFuzzer(config, output_dir)
    try:
        await fuzzer.init()
        await fuzzer.fuzz(stop)
    finally:
        await fuzzer.close()
