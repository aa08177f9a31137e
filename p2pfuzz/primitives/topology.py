"""
P2P Fuzzer: Topology Primitives

Trading pairs, per-node descriptors, and window partitioning.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Sequence, TypeVar

from pydantic import Field

from p2pfuzz.primitives.common import FuzzBaseModel

if TYPE_CHECKING:
    from p2pfuzz.config import NodeSettings
    from p2pfuzz.primitives.identity import PeerIdentity

T = TypeVar("T")

LOCALHOST = "127.0.0.1"


# ─── Pairs ────────────────────────────────────────────────────────


class Source(FuzzBaseModel):
    source_path: str
    end_point: str


class Pair(FuzzBaseModel):
    """A trading pair the oracle reports on."""

    pair: str
    decimals: int = Field(ge=0)
    sources: list[Source] = Field(min_length=1)

    @property
    def dedup_key(self) -> tuple[str, int, str, str]:
        first = self.sources[0]
        return (self.pair, self.decimals, first.source_path, first.end_point)


def dedupe_pairs(pairs: Sequence[Pair]) -> list[Pair]:
    """Drop structurally identical pairs, keeping the first occurrence."""
    seen: set[tuple[str, int, str, str]] = set()
    unique: list[Pair] = []
    for pair in pairs:
        if pair.dedup_key in seen:
            continue
        seen.add(pair.dedup_key)
        unique.append(pair)
    return unique


# ─── Nodes ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class NodeDescriptor:
    """One simulated peer. Node 0 is the topology creator."""

    id: int
    port: int
    peer_id: PeerIdentity
    address: str
    private_key_env: str
    rpc: str

    @property
    def multiaddr(self) -> str:
        return f"/ip4/{LOCALHOST}/tcp/{self.port}/p2p/{self.peer_id.peer_id}"

    def node_config(
        self,
        creator: str,
        settings: NodeSettings,
        peers: Sequence[NodeDescriptor],
        pairs: Sequence[Pair],
        contract_address: str,
    ) -> dict[str, Any]:
        """Build the structured configuration the peer-node runtime consumes."""
        signers = list(dict.fromkeys([creator, *(peer.address for peer in peers)]))
        return {
            "p2p": {
                "peer_id": self.peer_id.to_json(),
                "addresses": {"listen": [self.multiaddr]},
                "peers": [peer.multiaddr for peer in peers],
            },
            "networks": [
                {
                    "type": network,
                    "networkId": settings.network_id,
                    "chainId": settings.chain_id,
                    "privateKeyEnvKey": self.private_key_env,
                    "rpc": self.rpc,
                }
                for network in settings.networks
            ],
            "modules": [
                {
                    "networkId": settings.network_id,
                    "contractAddress": contract_address,
                    "deviationPercentage": settings.deviation,
                    "minimumUpdateInterval": settings.minimum_update_interval,
                    "pairs": [pair.model_dump() for pair in pairs],
                    "interval": settings.interval,
                    "logFile": f"node{self.id}_logs",
                    "creator": creator,
                    "signers": signers,
                    "type": "P2PModule",
                }
            ],
        }


class Topology:
    """Ordered node descriptors with contiguous ids ``0..n-1``."""

    def __init__(self, nodes: Sequence[NodeDescriptor]) -> None:
        for expected, node in enumerate(nodes):
            if node.id != expected:
                raise ValueError(f"Node ids must be contiguous from 0, got {node.id} at {expected}")
        ports = [node.port for node in nodes]
        if len(set(ports)) != len(ports):
            raise ValueError("Node ports must be pairwise distinct")
        self._nodes = list(nodes)

    @property
    def nodes(self) -> list[NodeDescriptor]:
        return list(self._nodes)

    @property
    def creator(self) -> NodeDescriptor:
        return self._nodes[0]

    def __len__(self) -> int:
        return len(self._nodes)

    def node_configs(
        self,
        settings: NodeSettings,
        pairs: Sequence[Pair],
        contract_address: str,
    ) -> list[dict[str, Any]]:
        """One configuration per node; every other node is its peer."""
        creator = self.creator.address
        return [
            node.node_config(
                creator,
                settings,
                self._nodes[:index] + self._nodes[index + 1:],
                pairs,
                contract_address,
            )
            for index, node in enumerate(self._nodes)
        ]


# ─── Windows ──────────────────────────────────────────────────────


def window_count(total: int, size: int) -> int:
    if size <= 0:
        raise ValueError("Window size must be >= 1")
    return math.ceil(total / size)


def partition_windows(items: Sequence[T], size: int) -> list[list[T]]:
    """Split ``items`` into contiguous windows of at most ``size`` entries."""
    count = window_count(len(items), size)
    return [list(items[i * size:(i + 1) * size]) for i in range(count)]
