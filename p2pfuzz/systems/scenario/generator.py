"""
P2P Fuzzer: Scenario Generator

Decides how many nodes a run has, which trading pairs they report, which
peer identities they use and which ports they listen on. Every generation
feature can be switched off in favour of values supplied in the config.
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from p2pfuzz.errors import ConfigurationError
from p2pfuzz.primitives.identity import PeerIdentity
from p2pfuzz.systems.scenario.pairs import generate_pairs
from p2pfuzz.systems.scenario.ports import allocate_port

if TYPE_CHECKING:
    from p2pfuzz.config import FuzzConfig
    from p2pfuzz.primitives.topology import Pair

logger = structlog.get_logger("p2pfuzz.scenario")


@dataclass
class Scenario:
    """The randomised shape of one fuzz run, before any chain funding."""

    num_nodes: int
    pairs: list[Pair]
    identities: list[PeerIdentity]
    ports: list[int]
    reserved_ports: set[int] = field(default_factory=set)


class ScenarioGenerator:
    """
    Produces a ``Scenario`` from a validated ``FuzzConfig``.

    ``reserved_ports`` seeds the allocator so node ports never collide with
    ports claimed elsewhere in the run (the chain's listener).
    """

    def __init__(
        self,
        config: FuzzConfig,
        rng: random.Random | None = None,
        reserved_ports: set[int] | None = None,
    ) -> None:
        self._config = config
        self._rng = rng or random.Random()
        self._taken: set[int] = set(reserved_ports or ())

    def node_count(self) -> int:
        p2p = self._config.p2p_config
        if p2p.num_nodes is not None:
            return p2p.num_nodes
        if not p2p.generate_peer_ids and p2p.peer_ids is not None:
            return len(p2p.peer_ids)
        return self._rng.randint(p2p.min_nodes, p2p.max_nodes)

    def generate_pairs(self) -> list[Pair]:
        config = self._config
        if not config.generate_pairs:
            if config.p2p_config.pairs is None:
                raise ConfigurationError("You must specify pairs if the generate pairs feature is turned off.")
            return list(config.p2p_config.pairs)

        count = self._rng.randint(config.min_pairs, config.max_pairs)
        pairs = generate_pairs(
            self._rng,
            count,
            config.p2p_config.string_bytes,
            config.p2p_config.max_decimals,
        )
        if len(pairs) < count:
            logger.info("duplicate_pairs_dropped", sampled=count, kept=len(pairs))
        return pairs

    def generate_identities(self, num_nodes: int) -> list[PeerIdentity]:
        p2p = self._config.p2p_config
        if p2p.generate_peer_ids:
            return [PeerIdentity.generate() for _ in range(num_nodes)]

        if p2p.peer_ids is None:
            raise ConfigurationError("You must specify peer ids if the generate peer ids feature is turned off.")
        if len(p2p.peer_ids) != num_nodes:
            raise ConfigurationError(
                f"Expected {num_nodes} peer ids, got {len(p2p.peer_ids)}"
            )
        identities: list[PeerIdentity] = []
        for index, raw in enumerate(p2p.peer_ids):
            try:
                identities.append(PeerIdentity.from_json(raw))
            except ValueError as exc:
                raise ConfigurationError(f"Invalid peer id at index {index}: {exc}") from exc
        return identities

    def generate_ports(self, num_nodes: int) -> list[int]:
        config = self._config
        if config.generate_ports:
            return [allocate_port(self._taken, rng=self._rng) for _ in range(num_nodes)]

        if config.ports is None:
            raise ConfigurationError("You must specify ports if the generate ports feature is turned off.")
        if len(config.ports) != num_nodes:
            raise ConfigurationError(f"Expected {num_nodes} ports, got {len(config.ports)}")
        if len(set(config.ports)) != len(config.ports):
            raise ConfigurationError("Configured ports must be pairwise distinct")
        clashes = self._taken.intersection(config.ports)
        if clashes:
            raise ConfigurationError(f"Configured ports already in use by this run: {sorted(clashes)}")
        self._taken.update(config.ports)
        return list(config.ports)

    def generate(self) -> Scenario:
        num_nodes = self.node_count()
        pairs = self.generate_pairs()
        identities = self.generate_identities(num_nodes)
        ports = self.generate_ports(num_nodes)
        logger.info(
            "scenario_generated",
            num_nodes=num_nodes,
            num_pairs=len(pairs),
            ports=ports,
        )
        return Scenario(
            num_nodes=num_nodes,
            pairs=pairs,
            identities=identities,
            ports=ports,
            reserved_ports=set(self._taken),
        )
