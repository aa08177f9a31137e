"""
P2P Fuzzer: Bootstrap System
"""

from p2pfuzz.systems.bootstrap.service import BootstrapResult, ChainBootstrap, node_key_env

__all__ = ["BootstrapResult", "ChainBootstrap", "node_key_env"]
