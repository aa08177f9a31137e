"""
P2P Fuzzer: Churn & Version-Skew Controller

The single scheduling loop of a fuzz run. Each round it sleeps a random
interval, may disconnect one random worker, and escalates version
mismatches that have outlived ``outdated_rounds_allowed`` into a pool-wide
reconciliation.

Disconnects are typed ``Disconnect`` commands on a queue. A dispatcher task
turns each into terminate → random reconnect delay → respawn, with the
respawned worker's versions drawn (or reset) here. Several windows may be
mid-respawn at once; everything runs on one event loop so the record table
needs no locking.

Usage:
    controller = ChurnController(config.p2p_config, supervisor, output_dir=run_dir)
    await controller.start_pool(window_credentials)
    await controller.run(stop_event)
    await controller.shutdown()
"""

from __future__ import annotations

import asyncio
import random
from typing import TYPE_CHECKING, Any, Sequence

import structlog

from p2pfuzz.primitives.common import roll
from p2pfuzz.primitives.messages import Disconnect, StartWorker, WorkerRecord
from p2pfuzz.primitives.versions import VersionAxis, VersionTriple
from p2pfuzz.systems.churn.versions import (
    AxisState,
    AxisStatus,
    UpdateKind,
    apply_update,
    draw_update,
    initial_node_version,
    initial_report_version,
)

if TYPE_CHECKING:
    from p2pfuzz.config import LoggingConfig, P2PConfig
    from p2pfuzz.systems.supervisor.service import WorkerSupervisor

logger = structlog.get_logger("p2pfuzz.churn")


class ChurnController:
    """
    Owns worker records and per-axis version state for one run.

    Parameters
    ----------
    config:
        The run's P2P settings (intervals, chances, thresholds).
    supervisor:
        Starts and stops the worker processes.
    output_dir:
        Run output directory passed to every worker.
    """

    def __init__(
        self,
        config: P2PConfig,
        supervisor: WorkerSupervisor,
        output_dir: str,
        rng: random.Random | None = None,
        logging_config: LoggingConfig | None = None,
        runtime: str = "",
    ) -> None:
        self._config = config
        self._runtime = runtime
        self._supervisor = supervisor
        self._output_dir = output_dir
        self._rng = rng or random.Random()
        self._logging = logging_config

        self._records: dict[int, WorkerRecord] = {}
        self._next_worker_id = 0
        self._window_credentials: dict[int, list[str]] = {}
        self._respawning: set[int] = set()
        self._axes: dict[VersionAxis, AxisState] = {}

        self._commands: asyncio.Queue[Disconnect] = asyncio.Queue()
        self._stop = asyncio.Event()
        self._dispatcher: asyncio.Task[None] | None = None
        self._respawn_tasks: set[asyncio.Task[None]] = set()
        self._rounds = 0

        self._supervisor.set_exit_callback(self._on_worker_exit)

    # ── Lifecycle ─────────────────────────────────────────────────

    async def start_pool(
        self,
        window_credentials: Sequence[Sequence[str]],
        node_version: VersionTriple | None = None,
        report_version: VersionTriple | None = None,
    ) -> None:
        """Spawn one worker per window at the initial versions."""
        node_version = node_version or initial_node_version(self._rng)
        report_version = report_version or initial_report_version(self._rng)
        self._axes = {
            VersionAxis.NODE: AxisState(latest=node_version),
            VersionAxis.REPORT: AxisState(latest=report_version),
        }
        logger.info(
            "pool_starting",
            windows=len(window_credentials),
            node_version=str(node_version),
            report_version=str(report_version),
        )
        for index, keys in enumerate(window_credentials):
            self._window_credentials[index] = list(keys)
            await self._spawn(index, node_version, report_version)

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """
        Scheduling loop. Returns once ``stop`` is set.

        Every suspension point (round sleep, reconnect delay) wakes up on stop.
        """
        if stop is not None:
            self._stop = stop
        self._dispatcher = asyncio.create_task(self._dispatch(), name="churn:dispatch")
        logger.info("churn_loop_started")
        try:
            while not self._stop.is_set():
                delay_ms = self.sample_round_delay_ms()
                if await self._wait_stopped(delay_ms):
                    break
                self.run_round()
        finally:
            await self._cancel_background()
            logger.info("churn_loop_stopped", rounds=self._rounds)

    async def shutdown(self) -> None:
        """Stop scheduling and terminate every worker."""
        self._stop.set()
        await self._cancel_background()
        await self._supervisor.terminate_all()
        self._records.clear()
        self._respawning.clear()

    # ── Sampling ──────────────────────────────────────────────────

    def sample_round_delay_ms(self) -> int:
        return self._rng.randint(
            self._config.disconnect_interval_min, self._config.disconnect_interval_max
        )

    def sample_reconnect_delay_ms(self) -> int:
        return self._rng.randint(
            self._config.reconnect_interval_min, self._config.reconnect_interval_max
        )

    # ── Rounds ────────────────────────────────────────────────────

    def run_round(self) -> list[Disconnect]:
        """
        Evaluate one scheduling round and enqueue the resulting disconnects.

        A reconciliation ends the round: every running worker is already
        being cycled, so the other axis is evaluated next round.
        """
        self._rounds += 1
        commands: dict[int, Disconnect] = {}

        if (
            self._config.allow_disconnects
            and self._records
            and roll(self._config.random_disconnect_chance, self._rng)
        ):
            worker_id = self._rng.choice(sorted(self._records))
            commands[worker_id] = Disconnect(worker_id, reason="random")
            logger.info(
                "random_disconnect",
                worker_id=worker_id,
                window=self._records[worker_id].window_index,
            )

        for axis in (VersionAxis.NODE, VersionAxis.REPORT):
            state = self._axes.get(axis)
            if state is None or state.status is not AxisStatus.MISMATCHED:
                continue
            state.outdated_rounds += 1
            if state.outdated_rounds <= self._config.outdated_rounds_allowed:
                logger.info("version_mismatch_tolerated", axis=str(axis), rounds=state.outdated_rounds)
                continue
            for command in self._reconcile(axis):
                commands.setdefault(command.worker_id, command)
            break

        for command in commands.values():
            self._commands.put_nowait(command)
        return list(commands.values())

    def _reconcile(self, axis: VersionAxis) -> list[Disconnect]:
        state = self._axes[axis]
        running_windows = {record.window_index for record in self._records.values()}
        state.pending_reset = running_windows | self._respawning
        state.reset()
        logger.info(
            "version_reconciliation",
            axis=str(axis),
            target=str(state.latest),
            workers=len(self._records),
        )
        return [
            Disconnect(worker_id, reason=f"reconcile_{axis}")
            for worker_id in sorted(self._records)
        ]

    # ── Version Draws ─────────────────────────────────────────────

    def next_version(self, axis: VersionAxis, current: VersionTriple, window_index: int) -> VersionTriple:
        """Version a respawned worker takes on ``axis``."""
        state = self._axes[axis]
        if window_index in state.pending_reset:
            state.pending_reset.discard(window_index)
            return state.latest

        if axis is VersionAxis.NODE:
            enabled, chance = self._config.randomly_update_nodes, self._config.update_nodes_chance
        else:
            enabled, chance = self._config.randomly_update_reports, self._config.update_reports_chance
        if not enabled or not roll(chance, self._rng):
            return current

        kind = draw_update(
            self._rng, self._config.major_update_chance, self._config.minor_update_chance
        )
        updated = apply_update(current, kind)
        if kind is UpdateKind.MAJOR:
            state.status = AxisStatus.MISMATCHED
            state.observe(updated)
        logger.info(
            "version_updated",
            axis=str(axis),
            window=window_index,
            kind=str(kind),
            version=str(updated),
        )
        return updated

    # ── Disconnect Handling ───────────────────────────────────────

    async def handle_disconnect(self, command: Disconnect) -> None:
        """Terminate a worker, stay away for a random interval, then respawn it."""
        record = self._records.pop(command.worker_id, None)
        if record is None:
            logger.debug("disconnect_ignored", worker_id=command.worker_id, reason=command.reason)
            return

        window = record.window_index
        self._respawning.add(window)
        try:
            await self._supervisor.terminate(record.pid)
            delay_ms = self.sample_reconnect_delay_ms()
            logger.info("worker_disconnected", window=window, reason=command.reason, reconnect_ms=delay_ms)
            if await self._wait_stopped(delay_ms):
                return

            node_version = self.next_version(VersionAxis.NODE, record.node_version, window)
            report_version = self.next_version(VersionAxis.REPORT, record.report_version, window)
            logger.info("worker_reconnecting", window=window)
            await self._spawn(window, node_version, report_version)
        finally:
            self._respawning.discard(window)

    def _on_worker_exit(self, pid: int, returncode: int) -> None:
        # Crashes are not respawned; the window stays down until the run ends.
        for worker_id, record in list(self._records.items()):
            if record.pid == pid:
                del self._records[worker_id]
                logger.warning(
                    "worker_lost",
                    worker_id=worker_id,
                    window=record.window_index,
                    returncode=returncode,
                )
                return

    # ── Internals ─────────────────────────────────────────────────

    async def _spawn(
        self,
        window_index: int,
        node_version: VersionTriple,
        report_version: VersionTriple,
    ) -> WorkerRecord:
        message = StartWorker(
            window_index=window_index,
            output_dir=self._output_dir,
            node_version=str(node_version),
            report_version=str(report_version),
            credential_envs=self._window_credentials.get(window_index, []),
            runtime=self._runtime,
        )
        if self._logging is not None:
            message = message.model_copy(
                update={"log_level": self._logging.level, "log_format": self._logging.format}
            )
        pid = await self._supervisor.spawn(message)

        record = WorkerRecord(
            worker_id=self._next_worker_id,
            window_index=window_index,
            node_version=node_version,
            report_version=report_version,
            output_dir=self._output_dir,
            pid=pid,
            credential_envs=list(message.credential_envs),
        )
        self._next_worker_id += 1
        self._records[record.worker_id] = record
        return record

    async def _dispatch(self) -> None:
        while True:
            command = await self._commands.get()
            task = asyncio.create_task(
                self.handle_disconnect(command), name=f"churn:respawn:{command.worker_id}"
            )
            self._respawn_tasks.add(task)
            task.add_done_callback(self._respawn_done)

    def _respawn_done(self, task: asyncio.Task[None]) -> None:
        self._respawn_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("respawn_failed", error=str(exc), error_type=type(exc).__name__)

    async def _wait_stopped(self, delay_ms: int) -> bool:
        """Sleep ``delay_ms``; True if stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stop.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            return False
        return True

    async def _cancel_background(self) -> None:
        tasks = [t for t in (self._dispatcher, *self._respawn_tasks) if t is not None and not t.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._dispatcher = None

    # ── Introspection ─────────────────────────────────────────────

    @property
    def records(self) -> dict[int, WorkerRecord]:
        return dict(self._records)

    def axis_state(self, axis: VersionAxis) -> AxisState:
        return self._axes[axis]

    def pending_commands(self) -> int:
        return self._commands.qsize()

    @property
    def stats(self) -> dict[str, Any]:
        return {
            "rounds": self._rounds,
            "workers": len(self._records),
            "respawning": sorted(self._respawning),
            "axes": {
                str(axis): {
                    "status": str(state.status),
                    "latest": str(state.latest),
                    "outdated_rounds": state.outdated_rounds,
                }
                for axis, state in self._axes.items()
            },
        }
