"""
P2P Fuzzer: Coordinator ↔ Worker Messages

The coordinator never mutates its own environment to hand state to workers.
A ``StartWorker`` message carries everything a worker needs and is
serialised into the worker's startup arguments. ``Disconnect`` is the typed
command the churn loop sends to the respawn dispatcher.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from p2pfuzz.primitives.common import FuzzBaseModel
from p2pfuzz.primitives.versions import VersionTriple

# Names of the environment variables a worker receives at spawn time.
ENV_OUTPUT_DIR = "FUZZ_OUTPUT_DIR"
ENV_WINDOW_INDEX = "FUZZ_WINDOW_INDEX"
ENV_NODE_VERSION = "P2P_NODE_VERSION"
ENV_REPORT_VERSION = "P2P_REPORT_VERSION"
ENV_FUZZ_LOGS = "FUZZ_LOGS"


class StartWorker(FuzzBaseModel):
    """Start (or respawn) the worker process for one window."""

    window_index: int
    output_dir: str
    node_version: str
    report_version: str
    credential_envs: list[str] = []
    # Peer-node runtime entry point, "module:callable".
    runtime: str = ""
    log_level: str = "INFO"
    log_format: str = "console"

    def environment(self) -> dict[str, str]:
        return {
            ENV_OUTPUT_DIR: self.output_dir,
            ENV_FUZZ_LOGS: self.output_dir,
            ENV_WINDOW_INDEX: str(self.window_index),
            ENV_NODE_VERSION: self.node_version,
            ENV_REPORT_VERSION: self.report_version,
        }


@dataclass(frozen=True)
class Disconnect:
    worker_id: int
    reason: str = "random"


@dataclass
class WorkerRecord:
    """State of one running worker process. Replaced, never reused, on respawn."""

    worker_id: int
    window_index: int
    node_version: VersionTriple
    report_version: VersionTriple
    output_dir: str
    pid: int = 0
    credential_envs: list[str] = field(default_factory=list)
