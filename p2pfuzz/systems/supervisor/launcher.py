"""
P2P Fuzzer: Worker Process Launcher

Starts ``python -m p2pfuzz.worker`` with the serialised start message as
its only argument.
"""

from __future__ import annotations

import asyncio
import sys
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from p2pfuzz.primitives.messages import StartWorker


class WorkerProcess(Protocol):
    @property
    def pid(self) -> int: ...

    @property
    def returncode(self) -> int | None: ...

    def terminate(self) -> None: ...

    def kill(self) -> None: ...

    async def wait(self) -> int: ...


class ProcessLauncher(Protocol):
    async def launch(self, message: StartWorker, env: dict[str, str]) -> WorkerProcess: ...


class SubprocessLauncher:
    """Launches each worker as an asyncio subprocess of the current interpreter."""

    def __init__(self, python: str | None = None, module: str = "p2pfuzz.worker") -> None:
        self._python = python or sys.executable
        self._module = module

    def command(self, message: StartWorker) -> list[str]:
        return [self._python, "-m", self._module, "--start", message.model_dump_json()]

    async def launch(self, message: StartWorker, env: dict[str, str]) -> WorkerProcess:
        return await asyncio.create_subprocess_exec(*self.command(message), env=env)
