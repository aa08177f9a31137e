"""
P2P Fuzzer: Churn System

Random disconnects and protocol version skew over the running worker pool.
"""

from p2pfuzz.systems.churn.controller import ChurnController
from p2pfuzz.systems.churn.versions import AxisState, AxisStatus, UpdateKind

__all__ = ["AxisState", "AxisStatus", "ChurnController", "UpdateKind"]
