"""
P2P Fuzzer: Funding Chain Client

A transient local development chain that hands out funded identities and
hosts the registry contract every simulated node reports to.

``FundingChain`` is the contract the bootstrap adapter depends on.
``LocalDevChain`` implements it by launching a development node (anvil by
default) as a subprocess and talking JSON-RPC through web3.

Lifecycle: construct → start() → use → stop().
"""

from __future__ import annotations

import asyncio
import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

import structlog
from eth_account import Account
from web3 import AsyncWeb3
from web3.exceptions import TimeExhausted, Web3Exception

from p2pfuzz.errors import ChainDeploymentError, ChainStartError, ConfigurationError
from p2pfuzz.systems.scenario.ports import allocate_port, is_port_reachable

if TYPE_CHECKING:
    from p2pfuzz.config import ChainConfig

logger = structlog.get_logger("p2pfuzz.clients.chain")

_DEFAULT_DERIVATION_PATH = "m/44'/60'/0'/0/0"
_RECEIPT_TIMEOUT_S = 60
_POLL_INTERVAL_S = 0.25
_STOP_GRACE_S = 5.0


# ─── Data types ───────────────────────────────────────────────────


@dataclass(frozen=True)
class FundedIdentity:
    """An account with a balance on the funding chain."""

    address: str
    secret: str

    def __repr__(self) -> str:
        return f"FundedIdentity({self.address})"


class FundingChain(Protocol):
    async def start(self) -> None: ...

    async def create_funded_identity(self) -> FundedIdentity: ...

    async def deploy_registry(self) -> str: ...

    def creator_identity(self) -> FundedIdentity: ...

    def used_port(self) -> int: ...

    async def stop(self) -> None: ...


def load_registry_bytecode(artifact_path: str | Path) -> str:
    """Read contract creation bytecode from a compiled JSON artifact."""
    path = Path(artifact_path)
    if not path.exists():
        raise ConfigurationError(f"Registry contract artifact not found: {path}")

    with open(path) as f:
        data = json.load(f)

    bytecode = data.get("bytecode")
    if isinstance(bytecode, dict):
        bytecode = bytecode.get("object")
    if not isinstance(bytecode, str) or not bytecode:
        raise ConfigurationError(f"Bytecode not found in artifact {path}")
    return bytecode if bytecode.startswith("0x") else f"0x{bytecode}"


# ─── Local Dev Chain ──────────────────────────────────────────────


class LocalDevChain:
    """
    Funding chain backed by a local development node subprocess.

    If the configured port already answers, a free one is picked instead
    (avoiding ``reserved_ports``) and reported by ``used_port()``.
    """

    def __init__(
        self,
        config: ChainConfig,
        port: int,
        log_dir: str | Path | None = None,
        reserved_ports: set[int] | None = None,
    ) -> None:
        self._config = config
        self._port = port
        self._log_dir = Path(log_dir) if log_dir is not None else None
        self._reserved = set(reserved_ports or ())
        self._bytecode = load_registry_bytecode(config.registry_artifact)
        self._process: asyncio.subprocess.Process | None = None
        self._w3: AsyncWeb3 | None = None
        self._creator: FundedIdentity | None = None

    # ── Lifecycle ─────────────────────────────────────────────

    async def start(self) -> None:
        if is_port_reachable(self._port):
            logger.warning("chain_port_unavailable", port=self._port)
            self._port = allocate_port(self._reserved | {self._port})
        self._reserved.add(self._port)

        command = [
            part.format(port=self._port, chain_id=self._config.chain_id)
            for part in self._config.command
        ]
        stdout: Any = asyncio.subprocess.DEVNULL
        if self._log_dir is not None:
            self._log_dir.mkdir(parents=True, exist_ok=True)
            stdout = open(self._log_dir / "blockchain.log", "ab")

        try:
            self._process = await asyncio.create_subprocess_exec(
                *command,
                stdout=stdout,
                stderr=asyncio.subprocess.STDOUT,
            )
        except FileNotFoundError as exc:
            raise ChainStartError(f"Chain command not found: {command[0]}") from exc
        finally:
            if stdout is not asyncio.subprocess.DEVNULL:
                stdout.close()

        self._w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(self.rpc_url))
        await self._wait_until_ready()

        Account.enable_unaudited_hdwallet_features()
        account = Account.from_mnemonic(
            self._config.mnemonic, account_path=_DEFAULT_DERIVATION_PATH
        )
        self._creator = FundedIdentity(account.address, "0x" + bytes(account.key).hex())
        logger.info("chain_started", port=self._port, pid=self._process.pid)

    async def stop(self) -> None:
        process = self._process
        self._process = None
        if process is None or process.returncode is not None:
            return
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=_STOP_GRACE_S)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
        logger.info("chain_stopped", port=self._port)

    async def _wait_until_ready(self) -> None:
        assert self._process is not None and self._w3 is not None
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._config.startup_timeout_s
        while loop.time() < deadline:
            if self._process.returncode is not None:
                raise ChainStartError(
                    f"Chain process exited with code {self._process.returncode}"
                )
            if await self._w3.is_connected():
                return
            await asyncio.sleep(_POLL_INTERVAL_S)
        await self.stop()
        raise ChainStartError(
            f"Chain did not answer on port {self._port} within {self._config.startup_timeout_s}s"
        )

    # ── Accessors ─────────────────────────────────────────────

    @property
    def rpc_url(self) -> str:
        return f"http://localhost:{self._port}"

    def used_port(self) -> int:
        return self._port

    def creator_identity(self) -> FundedIdentity:
        """The chain's first pre-funded account."""
        if self._creator is None:
            raise RuntimeError("Chain not started")
        return self._creator

    # ── Operations ────────────────────────────────────────────

    async def _rpc(self, method: str, params: list[Any]) -> Any:
        if self._w3 is None:
            raise RuntimeError("Chain not started")
        response = await self._w3.provider.make_request(method, params)  # type: ignore[arg-type]
        if "error" in response:
            raise ChainStartError(f"{method} failed: {response['error']}")
        return response.get("result")

    async def create_funded_identity(self) -> FundedIdentity:
        """Create a fresh account and set its balance on the chain."""
        account = Account.create()
        await self._rpc(
            self._config.balance_method,
            [account.address, hex(self._config.fund_balance_wei)],
        )
        logger.debug("identity_funded", address=account.address)
        return FundedIdentity(account.address, "0x" + bytes(account.key).hex())

    async def deploy_registry(self) -> str:
        """Deploy the registry contract from the creator account."""
        if self._w3 is None:
            raise RuntimeError("Chain not started")
        sender = self.creator_identity().address
        logger.info("registry_deploying", sender=sender)

        tx_hash: Any = b""
        try:
            tx_hash = await self._w3.eth.send_transaction(
                {
                    "from": sender,
                    "data": self._bytecode,
                    "gas": self._config.deploy_gas,
                }
            )
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=_RECEIPT_TIMEOUT_S
            )
        except (TimeExhausted, Web3Exception) as exc:
            raise ChainDeploymentError(
                f"Registry deployment failed: {exc}", tx_hash=tx_hash.hex()
            ) from exc
        contract_address = receipt.get("contractAddress")
        if receipt.get("status") != 1 or not contract_address:
            raise ChainDeploymentError("Contract was not deployed", tx_hash=tx_hash.hex())

        logger.info("registry_deployed", contract_address=contract_address)
        return str(contract_address)
