"""
Unit tests for the local dev chain client that need no running chain.
"""

from __future__ import annotations

import asyncio
import json
from types import SimpleNamespace

import pytest
from web3.exceptions import TimeExhausted

from p2pfuzz.clients.chain import FundedIdentity, LocalDevChain, load_registry_bytecode
from p2pfuzz.config import ChainConfig
from p2pfuzz.errors import ChainDeploymentError, ConfigurationError

TX_HASH = b"\x01" * 32


def write_artifact(tmp_path, payload) -> str:
    path = tmp_path / "Registry.json"
    path.write_text(json.dumps(payload))
    return str(path)


def make_chain(tmp_path, **kwargs) -> LocalDevChain:
    config = ChainConfig(registry_artifact=write_artifact(tmp_path, {"bytecode": "0x00"}))
    return LocalDevChain(config, port=8545, **kwargs)


class FakeEth:
    def __init__(self, receipt=None, error: Exception | None = None) -> None:
        self.receipt = receipt
        self.error = error
        self.sent: list[dict] = []

    async def send_transaction(self, tx):
        self.sent.append(tx)
        return TX_HASH

    async def wait_for_transaction_receipt(self, tx_hash, timeout=None):
        if self.error is not None:
            raise self.error
        return self.receipt


def started_with(chain: LocalDevChain, eth: FakeEth) -> LocalDevChain:
    chain._w3 = SimpleNamespace(eth=eth)
    chain._creator = FundedIdentity("0x" + "c" * 40, "0x" + "1" * 64)
    return chain


class TestRegistryArtifact:
    def test_plain_bytecode(self, tmp_path):
        path = write_artifact(tmp_path, {"bytecode": "0x6080"})
        assert load_registry_bytecode(path) == "0x6080"

    def test_nested_bytecode_gets_prefixed(self, tmp_path):
        path = write_artifact(tmp_path, {"bytecode": {"object": "6080"}})
        assert load_registry_bytecode(path) == "0x6080"

    def test_missing_artifact(self, tmp_path):
        with pytest.raises(ConfigurationError):
            load_registry_bytecode(tmp_path / "missing.json")

    def test_artifact_without_bytecode(self, tmp_path):
        path = write_artifact(tmp_path, {"abi": []})
        with pytest.raises(ConfigurationError):
            load_registry_bytecode(path)


class TestLocalDevChain:
    def test_not_started(self, tmp_path):
        config = ChainConfig(registry_artifact=write_artifact(tmp_path, {"bytecode": "0x00"}))
        chain = LocalDevChain(config, port=8545)

        assert chain.used_port() == 8545
        assert chain.rpc_url == "http://localhost:8545"
        with pytest.raises(RuntimeError):
            chain.creator_identity()

    def test_secret_is_hidden_from_repr(self):
        identity = FundedIdentity("0xabc", "0xsecret")
        assert "0xsecret" not in repr(identity)


class TestDeployRegistry:
    @pytest.mark.asyncio
    async def test_deployed_address_is_returned(self, tmp_path):
        eth = FakeEth(receipt={"status": 1, "contractAddress": "0x" + "ab" * 20})
        chain = started_with(make_chain(tmp_path), eth)

        assert await chain.deploy_registry() == "0x" + "ab" * 20
        assert eth.sent[0]["data"] == "0x00"
        assert eth.sent[0]["from"] == "0x" + "c" * 40

    @pytest.mark.asyncio
    async def test_reverted_receipt(self, tmp_path):
        eth = FakeEth(receipt={"status": 0, "contractAddress": None})
        chain = started_with(make_chain(tmp_path), eth)

        with pytest.raises(ChainDeploymentError) as exc_info:
            await chain.deploy_registry()
        assert exc_info.value.tx_hash == TX_HASH.hex()

    @pytest.mark.asyncio
    async def test_receipt_timeout_is_a_deployment_error(self, tmp_path):
        chain = started_with(make_chain(tmp_path), FakeEth(error=TimeExhausted("not mined")))

        with pytest.raises(ChainDeploymentError) as exc_info:
            await chain.deploy_registry()
        assert isinstance(exc_info.value.__cause__, TimeExhausted)


class TestOccupiedPort:
    @pytest.mark.asyncio
    async def test_busy_port_is_replaced_outside_reserved(self, tmp_path, monkeypatch):
        reserved = set(range(8000, 8540))
        launched: list[tuple[str, ...]] = []

        async def fake_exec(*command, **kwargs):
            launched.append(command)
            return SimpleNamespace(pid=4242, returncode=0)

        async def ready(self):
            return None

        monkeypatch.setattr("p2pfuzz.clients.chain.is_port_reachable", lambda port: port == 8545)
        monkeypatch.setattr(
            "p2pfuzz.systems.scenario.ports.is_port_reachable", lambda *args, **kwargs: False
        )
        monkeypatch.setattr(asyncio, "create_subprocess_exec", fake_exec)
        monkeypatch.setattr(LocalDevChain, "_wait_until_ready", ready)
        chain = make_chain(tmp_path, reserved_ports=set(reserved))

        await chain.start()

        port = chain.used_port()
        assert port != 8545
        assert port not in reserved
        assert chain.rpc_url == f"http://localhost:{port}"
        assert str(port) in launched[0]
        assert chain.creator_identity().address.startswith("0x")
