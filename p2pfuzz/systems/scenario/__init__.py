"""
P2P Fuzzer: Scenario System

Random topology, identities, ports and trading pairs for one fuzz run.
"""

from p2pfuzz.systems.scenario.generator import Scenario, ScenarioGenerator
from p2pfuzz.systems.scenario.ports import allocate_port, is_port_reachable

__all__ = ["Scenario", "ScenarioGenerator", "allocate_port", "is_port_reachable"]
