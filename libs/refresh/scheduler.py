# libs/refresh/scheduler.py
from __future__ import annotations

import threading
from enum import StrEnum
from typing import Callable, List, Optional, Sequence

import structlog

from libs.contracts.errors import FetchCancelled
from libs.contracts.records import DataKind
from libs.refresh.orchestrator import FetchOrchestrator, RunResult
from libs.runtime.cancel import CancelToken


class SchedulerState(StrEnum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Scheduler:
    """
    Periodic refresh loop for one data kind.

    - one run right away (when keys are configured), then one run per interval
    - an Exception out of a cycle is logged and the loop keeps going
    - the cancel token ends both the interval wait and the in-flight fetch; that is a clean stop
    - anything that is not an Exception (SystemExit, KeyboardInterrupt) propagates;
      in a background thread it is handed to on_fatal so the owner can stop the process
    """

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        kind: DataKind,
        keys: Sequence[str],
        interval_sec: float,
        *,
        cancel: Optional[CancelToken] = None,
        on_fatal: Optional[Callable[[BaseException], None]] = None,
        logger=None,
    ) -> None:
        if interval_sec <= 0:
            raise ValueError("interval_sec must be > 0")
        self.orchestrator = orchestrator
        self.kind = DataKind(kind)
        self.keys: List[str] = list(keys)
        self.interval_sec = float(interval_sec)
        self.cancel = cancel or CancelToken()
        self.on_fatal = on_fatal
        self.log = (logger or structlog.get_logger("refresh.scheduler")).bind(kind=self.kind.value)

        self.state = SchedulerState.IDLE
        self.cycles = 0
        self.failed_cycles = 0
        self.last_result: Optional[RunResult] = None
        self.fatal_error: Optional[BaseException] = None
        self._thread: Optional[threading.Thread] = None

    # ---- lifecycle ----
    def start(self) -> None:
        """Run the loop in a background daemon thread."""
        if self._thread is not None:
            raise RuntimeError(f"{self.kind.value} scheduler already started")
        self._thread = threading.Thread(
            target=self._thread_main,
            name=f"refresh-scheduler-{self.kind.value}",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        if self.state in (SchedulerState.IDLE, SchedulerState.RUNNING):
            self.state = SchedulerState.STOPPING
        self.cancel.cancel()
        if self._thread is not None:
            self._thread.join(timeout)

    @property
    def alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_forever(self) -> None:
        """Blocking loop; returns once cancelled."""
        if self.state is SchedulerState.IDLE:
            self.state = SchedulerState.RUNNING
        self.log.info("scheduler.start", interval_sec=self.interval_sec, keys=self.keys)
        if not self.keys:
            self.log.warning("scheduler.no_keys")

        try:
            if self.keys and not self.cancel.cancelled:
                self._cycle()
            while not self.cancel.wait(self.interval_sec):
                self.log.debug("scheduler.tick", cycle=self.cycles + 1)
                if self.keys:
                    self._cycle()
        except FetchCancelled:
            self.log.info("scheduler.cancelled")
        finally:
            self.state = SchedulerState.STOPPED
            self.log.info("scheduler.stopped", cycles=self.cycles, failed_cycles=self.failed_cycles)

    # ---- internals ----
    def _cycle(self) -> None:
        self.cycles += 1
        try:
            result = self.orchestrator.run(self.kind, self.keys, cancel=self.cancel, trigger="scheduled")
        except FetchCancelled:
            raise
        except Exception:
            # 单次失败不终止循环
            self.failed_cycles += 1
            self.log.exception("scheduler.cycle_error", cycle=self.cycles)
            return
        self.last_result = result
        if not result.ok:
            self.failed_cycles += 1

    def _thread_main(self) -> None:
        try:
            self.run_forever()
        except BaseException as exc:
            self.fatal_error = exc
            self.log.critical("scheduler.fatal", error=repr(exc))
            if self.on_fatal is not None:
                self.on_fatal(exc)
            raise
