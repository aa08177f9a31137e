"""
P2P Fuzzer: Configuration System

All configuration is Pydantic-validated and loaded from:
1. The fuzz scenario YAML file (positional CLI argument)
2. Environment variables (``P2PFUZZ_`` prefix, ``__`` for nesting)

A loaded config is frozen. Values discovered at runtime (the chain port
actually bound, the creator identity) travel in the bootstrap result instead.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from p2pfuzz.errors import ConfigurationError
from p2pfuzz.primitives.topology import Pair

# ─── Sub-configs ──────────────────────────────────────────────────


class _FrozenModel(BaseModel):
    model_config = {"frozen": True, "extra": "forbid", "populate_by_name": True}


class NodeSettings(_FrozenModel):
    """Parameters copied into every node's runtime configuration."""

    networks: list[str] = Field(default_factory=lambda: ["evm"])
    interval: int = 180_000  # ms between reports
    deviation: float = 0.3
    minimum_update_interval: int = 1_800_000
    network_id: int = 1313161555
    chain_id: int = 1313161555
    # Import path of the peer-node runtime entry point, "module:callable".
    runtime: str = "fpo_node.main:run"


class P2PConfig(_FrozenModel):
    min_nodes: int = 2
    max_nodes: int = 20
    # Explicit node count; disables random node-count generation.
    num_nodes: int | None = None
    pairs: list[Pair] | None = None
    generate_peer_ids: bool = True
    peer_ids: list[dict[str, Any]] | None = None
    max_decimals: int = 8
    string_bytes: int = 8

    # Churn (all intervals in ms, all chances in percent)
    allow_disconnects: bool = False
    disconnect_interval_min: int = 180_000
    disconnect_interval_max: int = 200_000
    random_disconnect_chance: float = 15
    reconnect_interval_min: int = 180_000
    reconnect_interval_max: int = 300_000

    # Version skew
    randomly_update_nodes: bool = False
    update_nodes_chance: float = 15
    randomly_update_reports: bool = False
    update_reports_chance: float = 15
    outdated_rounds_allowed: int = 3
    major_update_chance: float = 15
    minor_update_chance: float = 15

    window: int = Field(default_factory=lambda: os.cpu_count() or 1)
    creator_address: str = Field(default="", alias="creatorAddress")
    creator_private_key_env: str = Field(default="CREATOR_PRIVATE_KEY", alias="creatorPrivKeyEnv")


class ChainConfig(_FrozenModel):
    """Local development chain used to fund node identities."""

    # {port} and {chain_id} are substituted at launch.
    command: list[str] = Field(
        default_factory=lambda: [
            "anvil", "--host", "127.0.0.1", "--port", "{port}", "--chain-id", "{chain_id}",
        ]
    )
    chain_id: int = 5777
    mnemonic: str = "test test test test test test test test test test test junk"
    balance_method: str = "anvil_setBalance"
    fund_balance_wei: int = 0x3635C9ADC5DEA00000
    registry_artifact: str = "FluxP2PFactory.json"
    deploy_gas: int = 0xFFFFFF
    startup_timeout_s: float = 30.0


class LoggingConfig(_FrozenModel):
    level: str = "INFO"
    format: str = "console"  # "console" | "json"
    file_logging: bool = True


# ─── Root Config ──────────────────────────────────────────────────


class FuzzConfig(BaseSettings):
    """
    Root configuration for one fuzz run. Loads from YAML, overridable by env vars.
    """

    model_config = SettingsConfigDict(
        env_prefix="P2PFUZZ_",
        env_nested_delimiter="__",
        extra="ignore",
        frozen=True,
    )

    generate_ports: bool = True
    ports: list[int] | None = None
    generate_pairs: bool = True
    min_pairs: int = 1
    max_pairs: int = 7
    blockchain_port: int = 8545
    output_root: str = ".fuzz"

    node_config: NodeSettings = Field(default_factory=NodeSettings)
    p2p_config: P2PConfig = Field(default_factory=P2PConfig)
    chain: ChainConfig = Field(default_factory=ChainConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def validate_config(config: FuzzConfig) -> None:
    """
    Cross-field checks that must pass before any process is spawned.
    """
    p2p = config.p2p_config
    if not config.generate_pairs and p2p.pairs is None:
        raise ConfigurationError("You must specify pairs if the generate pairs feature is turned off.")
    if not p2p.generate_peer_ids and p2p.peer_ids is None:
        raise ConfigurationError("You must specify peer ids if the generate peer ids feature is turned off.")
    if not config.generate_ports and config.ports is None:
        raise ConfigurationError("You must specify ports if the generate ports feature is turned off.")
    if not config.node_config.networks:
        raise ConfigurationError("node_config.networks must name at least one network")
    if p2p.window <= 0:
        raise ConfigurationError("Window must be >= 1")
    if p2p.num_nodes is not None and p2p.num_nodes < 1:
        raise ConfigurationError("num_nodes must be >= 1")

    ranges = {
        "nodes": (p2p.min_nodes, p2p.max_nodes),
        "pairs": (config.min_pairs, config.max_pairs),
        "disconnect_interval": (p2p.disconnect_interval_min, p2p.disconnect_interval_max),
        "reconnect_interval": (p2p.reconnect_interval_min, p2p.reconnect_interval_max),
    }
    for name, (low, high) in ranges.items():
        if low < 0 or low > high:
            raise ConfigurationError(f"Invalid {name} range: min={low} max={high}")
    if p2p.min_nodes < 1:
        raise ConfigurationError("min_nodes must be >= 1")
    if p2p.string_bytes < 1 or p2p.max_decimals < 1:
        raise ConfigurationError("string_bytes and max_decimals must be >= 1")
    if p2p.outdated_rounds_allowed < 0:
        raise ConfigurationError("outdated_rounds_allowed must be >= 0")


def default_config_dict() -> dict[str, Any]:
    """The scenario written when the config path does not exist yet."""
    return {
        "generate_ports": True,
        "generate_pairs": True,
        "min_pairs": 1,
        "max_pairs": 7,
        "node_config": {
            "networks": ["evm"],
            "interval": 180000,
            "deviation": 0.3,
        },
        "p2p_config": {
            "min_nodes": 3,
            "max_nodes": 10,
            "generate_peer_ids": True,
            "allow_disconnects": False,
            "randomly_update_nodes": False,
            "randomly_update_reports": False,
            "creator_private_key_env": "CREATOR_PRIVATE_KEY",
        },
    }


def write_default_config(config_path: str | Path) -> Path:
    path = Path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        yaml.safe_dump(default_config_dict(), f, sort_keys=False)
    return path


def load_config(config_path: str | Path) -> FuzzConfig:
    """
    Load and validate a fuzz scenario from YAML, then apply environment overrides.

    A missing file is replaced with the default scenario and reported as a
    ConfigurationError so the caller exits instead of running.
    """
    path = Path(config_path)
    if not path.exists():
        write_default_config(path)
        raise ConfigurationError(f"Config {path} does not exist, wrote a default scenario there")

    with open(path) as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config {path} must be a YAML mapping")

    if output_root := os.environ.get("P2PFUZZ_OUTPUT_ROOT"):
        raw["output_root"] = output_root
    if chain_port := os.environ.get("P2PFUZZ_BLOCKCHAIN_PORT"):
        raw["blockchain_port"] = int(chain_port)
    if log_level := os.environ.get("P2PFUZZ_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    try:
        config = FuzzConfig(**raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid config {path}: {exc}") from exc

    validate_config(config)
    return config
