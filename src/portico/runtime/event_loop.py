from __future__ import annotations

import logging
import queue
import threading
from typing import Callable, List, Optional

from portico.core.models import DEFAULT_EVENT_BUFFER_SIZE
from portico.core.state import SyncEvent
from portico.runtime.reconciler import CycleResult, Reconciler
from portico.runtime.reload_contracts import LoopEvent, LoopState, transition_loop_state
from portico.utils.diagnostics import PorticoError

log = logging.getLogger(__name__)


class EventLoop:
    """
    Buffered event channel drained by a single sync worker.

    Every drained batch triggers exactly one reconciliation cycle, which runs
    to completion before the next batch is taken. `publish` blocks when the
    buffer is full. Stop requests are honoured between cycles only.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        apply_event: Callable[[SyncEvent], bool],
        buffer_size: int = DEFAULT_EVENT_BUFFER_SIZE,
        idle_poll_seconds: float = 0.2,
    ) -> None:
        self.reconciler = reconciler
        self.apply_event = apply_event
        self.idle_poll_seconds = idle_poll_seconds
        self.events: "queue.Queue[SyncEvent]" = queue.Queue(maxsize=buffer_size)
        self.state: LoopState = LoopState.STOPPED
        self.cycles = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def publish(self, event: SyncEvent, timeout: Optional[float] = None) -> None:
        """Enqueue a watcher event, blocking while the buffer is full."""
        self.events.put(event, timeout=timeout)

    def drain(self) -> List[SyncEvent]:
        """Wait for one event, then take everything else already queued."""
        batch: List[SyncEvent] = []
        while not self._stop_event.is_set():
            try:
                batch.append(self.events.get(timeout=self.idle_poll_seconds))
                break
            except queue.Empty:
                continue

        if not batch:
            return batch

        while True:
            try:
                batch.append(self.events.get_nowait())
            except queue.Empty:
                return batch

    def run_once(self, batch: List[SyncEvent]) -> Optional[CycleResult]:
        """Apply one batch to the desired state and run a single sync cycle."""
        self.state = transition_loop_state(self.state, LoopEvent.BATCH_RECEIVED)
        try:
            for event in batch:
                self.apply_event(event)
            return self.reconciler.sync()
        except PorticoError as exc:
            log.error("Sync cycle failed: %s", exc)
            return None
        except Exception:
            log.exception("Unexpected error during sync cycle")
            return None
        finally:
            self.cycles += 1
            for _ in batch:
                self.events.task_done()
            self.state = transition_loop_state(self.state, LoopEvent.SYNC_COMPLETE)

    def run(self) -> None:
        """Process batches until `stop()` is called."""
        self.state = transition_loop_state(self.state, LoopEvent.START)
        log.debug("Event loop started")
        while not self._stop_event.is_set():
            batch = self.drain()
            if not batch:
                continue
            log.debug("Processing %d event(s)", len(batch))
            self.run_once(batch)

        self.state = transition_loop_state(self.state, LoopEvent.STOP)
        log.debug("Event loop stopped after %d cycle(s)", self.cycles)

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self.run, daemon=True, name="portico-sync")
        self._thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Request cancellation and wait for the in-flight cycle to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        self._thread = None
