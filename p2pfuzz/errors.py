"""
P2P Fuzzer: Error Taxonomy

Fatal errors abort a run before (configuration) or during (chain) bootstrap.
Port collisions are recovered locally and never surface as exceptions.
"""

from __future__ import annotations


class P2PFuzzError(Exception):
    """Base class for every error raised by the fuzzer."""


class ConfigurationError(P2PFuzzError):
    """Invalid or incomplete fuzz configuration. Raised before any worker spawns."""


class ChainDeploymentError(P2PFuzzError):
    """The registry contract did not reach an active status after submission."""

    def __init__(self, message: str, tx_hash: str = "") -> None:
        super().__init__(message)
        self.tx_hash = tx_hash


class ChainStartError(P2PFuzzError):
    """The local funding chain process exited or never answered RPC."""
