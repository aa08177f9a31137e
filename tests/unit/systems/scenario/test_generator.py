"""
Unit tests for the Scenario Generator.

Covers node-count bounds, pair deduplication, supplied vs generated
identities and ports, and the configuration errors raised when a
generation feature is disabled without supplied values.
"""

from __future__ import annotations

import random

import pytest

from p2pfuzz.config import FuzzConfig, P2PConfig
from p2pfuzz.errors import ConfigurationError
from p2pfuzz.primitives.identity import PeerIdentity
from p2pfuzz.primitives.topology import Pair, Source
from p2pfuzz.systems.scenario.generator import ScenarioGenerator
from p2pfuzz.systems.scenario.pairs import END_POINTS, SOURCE_PATHS


def make_config(**p2p_kwargs) -> FuzzConfig:
    top = {k: p2p_kwargs.pop(k) for k in list(p2p_kwargs) if k in FuzzConfig.model_fields}
    return FuzzConfig(p2p_config=P2PConfig(**p2p_kwargs), **top)


# ─── Node Count ──────────────────────────────────────────────────


class TestNodeCount:
    @pytest.mark.parametrize("seed", range(25))
    def test_within_bounds(self, seed):
        generator = ScenarioGenerator(make_config(min_nodes=3, max_nodes=6), rng=random.Random(seed))
        assert 3 <= generator.node_count() <= 6

    def test_bounds_are_inclusive(self):
        rng = random.Random(0)
        generator = ScenarioGenerator(make_config(min_nodes=2, max_nodes=3), rng=rng)
        seen = {generator.node_count() for _ in range(200)}
        assert seen == {2, 3}

    def test_explicit_count_disables_generation(self):
        generator = ScenarioGenerator(make_config(num_nodes=4, min_nodes=10, max_nodes=20))
        assert generator.node_count() == 4

    def test_supplied_identities_fix_the_count(self):
        ids = [PeerIdentity.generate().to_json() for _ in range(3)]
        generator = ScenarioGenerator(make_config(generate_peer_ids=False, peer_ids=ids))
        assert generator.node_count() == 3


# ─── Pairs ───────────────────────────────────────────────────────


class TestPairs:
    @pytest.mark.parametrize("seed", range(10))
    def test_generated_pairs_are_unique_and_bounded(self, seed):
        config = make_config(min_pairs=5, max_pairs=40, string_bytes=1, max_decimals=2)
        pairs = ScenarioGenerator(config, rng=random.Random(seed)).generate_pairs()

        keys = [p.dedup_key for p in pairs]
        assert len(keys) == len(set(keys))
        assert 1 <= len(pairs) <= 40
        for pair in pairs:
            assert 1 <= len(pair.pair) <= 1
            assert 1 <= pair.decimals <= 2
            assert pair.sources[0].source_path in SOURCE_PATHS
            assert pair.sources[0].end_point in END_POINTS

    def test_supplied_pairs_are_used_verbatim(self):
        supplied = [Pair(pair="ETH/USD", decimals=8, sources=[Source(source_path="p", end_point="e")])]
        config = make_config(generate_pairs=False, pairs=supplied)
        assert ScenarioGenerator(config).generate_pairs() == supplied


# ─── Identities & Ports ──────────────────────────────────────────


class TestIdentities:
    def test_supplied_identities_are_parsed(self):
        originals = [PeerIdentity.generate() for _ in range(2)]
        config = make_config(generate_peer_ids=False, peer_ids=[i.to_json() for i in originals])
        assert ScenarioGenerator(config).generate_identities(2) == originals

    def test_count_mismatch_is_an_input_error(self):
        ids = [PeerIdentity.generate().to_json() for _ in range(2)]
        config = make_config(generate_peer_ids=False, peer_ids=ids, num_nodes=3)
        with pytest.raises(ConfigurationError, match="Expected 3 peer ids"):
            ScenarioGenerator(config).generate_identities(3)

    def test_malformed_identity_is_an_input_error(self):
        config = make_config(generate_peer_ids=False, peer_ids=[{"id": "nope"}])
        with pytest.raises(ConfigurationError, match="index 0"):
            ScenarioGenerator(config).generate_identities(1)


class TestPorts:
    def test_supplied_ports(self):
        config = make_config(generate_ports=False, ports=[9001, 9002])
        assert ScenarioGenerator(config).generate_ports(2) == [9001, 9002]

    def test_supplied_ports_must_be_distinct(self):
        config = make_config(generate_ports=False, ports=[9001, 9001])
        with pytest.raises(ConfigurationError, match="distinct"):
            ScenarioGenerator(config).generate_ports(2)

    def test_supplied_ports_must_match_count(self):
        config = make_config(generate_ports=False, ports=[9001])
        with pytest.raises(ConfigurationError, match="Expected 2 ports"):
            ScenarioGenerator(config).generate_ports(2)

    def test_generated_ports_avoid_reserved(self, no_port_probe):
        generator = ScenarioGenerator(
            make_config(), rng=random.Random(5), reserved_ports=set(range(8000, 11990))
        )
        ports = generator.generate_ports(5)
        assert all(p >= 11990 for p in ports)
        assert len(set(ports)) == 5

    def test_disabled_without_values(self):
        config = FuzzConfig.model_construct(
            generate_ports=False, ports=None, p2p_config=P2PConfig()
        )
        with pytest.raises(ConfigurationError):
            ScenarioGenerator(config).generate_ports(1)


# ─── Full Scenario ───────────────────────────────────────────────


class TestGenerate:
    @pytest.mark.parametrize("seed", range(5))
    def test_scenario_invariants(self, seed, no_port_probe):
        config = make_config(min_nodes=2, max_nodes=8)
        scenario = ScenarioGenerator(config, rng=random.Random(seed)).generate()

        assert 2 <= scenario.num_nodes <= 8
        assert len(scenario.identities) == scenario.num_nodes
        assert len(scenario.ports) == scenario.num_nodes
        assert len(set(scenario.ports)) == scenario.num_nodes
        assert set(scenario.ports) <= scenario.reserved_ports
