"""
P2P Fuzzer: Shared Primitives
"""

from p2pfuzz.primitives.identity import PeerIdentity
from p2pfuzz.primitives.messages import Disconnect, StartWorker, WorkerRecord
from p2pfuzz.primitives.topology import (
    NodeDescriptor,
    Pair,
    Source,
    Topology,
    dedupe_pairs,
    partition_windows,
    window_count,
)
from p2pfuzz.primitives.versions import VersionAxis, VersionTriple

__all__ = [
    "Disconnect",
    "NodeDescriptor",
    "Pair",
    "PeerIdentity",
    "Source",
    "StartWorker",
    "Topology",
    "VersionAxis",
    "VersionTriple",
    "WorkerRecord",
    "dedupe_pairs",
    "partition_windows",
    "window_count",
]
