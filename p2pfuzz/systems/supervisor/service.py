"""
P2P Fuzzer: Worker-Pool Supervisor

Owns the OS processes that run peer nodes, one per window. It knows how to
start a worker from a ``StartWorker`` message and how to stop it; deciding
when to do either belongs to the churn controller.

Coordination with workers is one-way and happens only at spawn time:
  - ``window_<index>.json`` in the run output directory (written once)
  - the start message on the command line
  - a per-spawn environment holding the window's signing keys
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Mapping

import structlog

if TYPE_CHECKING:
    from p2pfuzz.primitives.messages import StartWorker
    from p2pfuzz.systems.supervisor.launcher import ProcessLauncher, WorkerProcess

logger = structlog.get_logger("p2pfuzz.supervisor")

CONFIG_INFO_FILE = "config_info.json"
_TERMINATE_GRACE_S = 5.0

ExitCallback = Callable[[int, int], None]


def window_file(output_dir: str | Path, index: int) -> Path:
    return Path(output_dir) / f"window_{index}.json"


class WindowStore:
    """Persisted per-run state shared with worker processes."""

    def __init__(self, output_dir: str | Path) -> None:
        self._dir = Path(output_dir)

    @property
    def output_dir(self) -> Path:
        return self._dir

    def write_config_info(self, info: Mapping[str, Any]) -> Path:
        path = self._dir / CONFIG_INFO_FILE
        with open(path, "w") as f:
            json.dump(info, f, indent=2)
        return path

    def write_window(self, index: int, configs: list[dict[str, Any]]) -> Path:
        """Write one window's node configurations. Each file is written once."""
        path = window_file(self._dir, index)
        with open(path, "x") as f:
            json.dump({"configs": configs}, f, indent=2)
        return path

    def read_window(self, index: int) -> list[dict[str, Any]]:
        with open(window_file(self._dir, index)) as f:
            return json.load(f)["configs"]


class WorkerSupervisor:
    """
    Spawns and terminates worker processes.

    Processes are tracked by pid. A process that exits without ``terminate``
    being called is reported through the exit callback; the supervisor does
    not restart it.
    """

    def __init__(
        self,
        launcher: ProcessLauncher,
        credentials: Mapping[str, str] | None = None,
        base_env: Mapping[str, str] | None = None,
    ) -> None:
        self._launcher = launcher
        self._credentials = dict(credentials or {})
        self._base_env = dict(os.environ if base_env is None else base_env)
        self._processes: dict[int, WorkerProcess] = {}
        self._watchers: dict[int, asyncio.Task[None]] = {}
        self._stopping: dict[int, asyncio.Task[None]] = {}
        self._on_exit: ExitCallback | None = None

    def set_exit_callback(self, callback: ExitCallback | None) -> None:
        self._on_exit = callback

    def running(self) -> list[int]:
        return list(self._processes)

    def environment_for(self, message: StartWorker) -> dict[str, str]:
        """Fresh environment for one spawn. The coordinator's own is never modified."""
        env = dict(self._base_env)
        env.update(message.environment())
        for key in message.credential_envs:
            if key in self._credentials:
                env[key] = self._credentials[key]
        return env

    async def spawn(self, message: StartWorker) -> int:
        process = await self._launcher.launch(message, self.environment_for(message))
        pid = process.pid
        self._processes[pid] = process
        self._watchers[pid] = asyncio.create_task(
            self._watch(pid, process), name=f"worker-watch:{pid}"
        )
        logger.info(
            "worker_spawned",
            pid=pid,
            window=message.window_index,
            node_version=message.node_version,
            report_version=message.report_version,
        )
        return pid

    async def terminate(self, pid: int) -> None:
        """
        Stop a worker and wait until it has exited.

        The stop runs in its own task: a caller cancelled mid-way does not
        skip the kill after the grace period, and ``terminate_all`` still
        waits for it.
        """
        stopping = self._stopping.get(pid)
        if stopping is None:
            process = self._processes.pop(pid, None)
            watcher = self._watchers.pop(pid, None)
            if watcher is not None:
                watcher.cancel()
            if process is None:
                return
            stopping = asyncio.create_task(
                self._stop_process(pid, process), name=f"worker-stop:{pid}"
            )
            self._stopping[pid] = stopping
            stopping.add_done_callback(lambda _: self._stopping.pop(pid, None))
        await asyncio.shield(stopping)

    async def _stop_process(self, pid: int, process: WorkerProcess) -> None:
        if process.returncode is None:
            try:
                process.terminate()
            except ProcessLookupError:
                pass
            try:
                await asyncio.wait_for(process.wait(), timeout=_TERMINATE_GRACE_S)
            except asyncio.TimeoutError:
                logger.warning("worker_kill_forced", pid=pid)
                process.kill()
                await process.wait()
        logger.info("worker_terminated", pid=pid, returncode=process.returncode)

    async def terminate_all(self) -> None:
        pids = self.running()
        pending = set(pids) | set(self._stopping)
        if pending:
            await asyncio.gather(*(self.terminate(pid) for pid in pending))
        logger.info("worker_pool_terminated", count=len(pids))

    async def _watch(self, pid: int, process: WorkerProcess) -> None:
        returncode = await process.wait()
        if self._processes.get(pid) is not process:
            return
        del self._processes[pid]
        self._watchers.pop(pid, None)
        logger.warning("worker_exited", pid=pid, returncode=returncode)
        if self._on_exit is not None:
            self._on_exit(pid, returncode)
