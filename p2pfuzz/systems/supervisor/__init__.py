"""
P2P Fuzzer: Supervisor System
"""

from p2pfuzz.systems.supervisor.launcher import SubprocessLauncher
from p2pfuzz.systems.supervisor.service import WindowStore, WorkerSupervisor, window_file

__all__ = ["SubprocessLauncher", "WindowStore", "WorkerSupervisor", "window_file"]
