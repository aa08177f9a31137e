"""
P2P Fuzzer: Chain Bootstrap

Thin orchestration over the funding chain: start it, deploy the registry,
bind node 0 to the chain's creator identity and fund a fresh identity for
every other node. The result is the final topology the workers run.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import structlog

from p2pfuzz.errors import ConfigurationError
from p2pfuzz.primitives.topology import NodeDescriptor, Topology

if TYPE_CHECKING:
    from p2pfuzz.clients.chain import FundedIdentity, FundingChain
    from p2pfuzz.systems.scenario.generator import Scenario

logger = structlog.get_logger("p2pfuzz.bootstrap")

NODE_KEY_ENV_PREFIX = "EVM_PRIVATE_KEY"


def node_key_env(node_id: int) -> str:
    return f"{NODE_KEY_ENV_PREFIX}{node_id}"


@dataclass
class BootstrapResult:
    contract_address: str
    creator: FundedIdentity
    chain_port: int
    topology: Topology
    # Environment key → private key, handed only to the worker that needs it.
    credentials: dict[str, str] = field(default_factory=dict)

    @property
    def rpc_url(self) -> str:
        return f"http://localhost:{self.chain_port}"


class ChainBootstrap:
    """
    Funds one identity per node and deploys the registry contract.

    Any deployment failure propagates; a run cannot proceed without a
    deployed contract. A configured ``expected_creator`` must be the
    chain's creator account.
    """

    def __init__(
        self,
        chain: FundingChain,
        creator_private_key_env: str,
        expected_creator: str = "",
    ) -> None:
        self._chain = chain
        self._creator_env = creator_private_key_env
        self._expected_creator = expected_creator

    async def bootstrap(self, scenario: Scenario) -> BootstrapResult:
        await self._chain.start()
        creator = self._chain.creator_identity()
        if self._expected_creator and self._expected_creator.lower() != creator.address.lower():
            raise ConfigurationError(
                f"Configured creator {self._expected_creator} does not match "
                f"the chain's creator account {creator.address}"
            )
        contract_address = await self._chain.deploy_registry()
        chain_port = self._chain.used_port()
        rpc = f"http://localhost:{chain_port}"
        logger.info("creator_bound", address=creator.address, chain_port=chain_port)

        credentials = {self._creator_env: creator.secret}
        nodes = [
            NodeDescriptor(
                id=0,
                port=scenario.ports[0],
                peer_id=scenario.identities[0],
                address=creator.address,
                private_key_env=self._creator_env,
                rpc=rpc,
            )
        ]
        for node_id in range(1, scenario.num_nodes):
            funded = await self._chain.create_funded_identity()
            env_key = node_key_env(node_id)
            credentials[env_key] = funded.secret
            nodes.append(
                NodeDescriptor(
                    id=node_id,
                    port=scenario.ports[node_id],
                    peer_id=scenario.identities[node_id],
                    address=funded.address,
                    private_key_env=env_key,
                    rpc=rpc,
                )
            )

        logger.info(
            "chain_bootstrapped",
            contract_address=contract_address,
            funded_nodes=len(nodes),
        )
        return BootstrapResult(
            contract_address=contract_address,
            creator=creator,
            chain_port=chain_port,
            topology=Topology(nodes),
            credentials=credentials,
        )
