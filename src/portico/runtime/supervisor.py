from __future__ import annotations

import logging
import os
import signal
import subprocess
from pathlib import Path
from typing import Any, Callable, List, Optional

from portico.runtime.process import ProcessHandle, resolve_process
from portico.runtime.reload_contracts import LifecycleAction, LifecycleOutcome
from portico.runtime.server_state import ServerStateSnapshotter
from portico.utils.diagnostics import ServerStateError, SupervisorError, UnknownActionError

log = logging.getLogger(__name__)

STOP_SIGNAL = signal.SIGUSR1
RELOAD_SIGNAL = signal.SIGUSR2

Spawner = Callable[[List[str]], Any]
Signaller = Callable[[int, int], None]
Resolver = Callable[[Path], ProcessHandle]


class ProcessSupervisor:
    """
    Start/stop/reload/restart state machine over the managed proxy process.

    The process handle is resolved from the PID record on every call. Spawned
    processes inherit stdio and are never waited on; readiness shows up later
    through the runtime socket.
    """

    def __init__(
        self,
        config_file: Path,
        pid_file: Path,
        binary: str = "haproxy",
        snapshotter: Optional[ServerStateSnapshotter] = None,
        dry_run: bool = False,
        spawner: Spawner = subprocess.Popen,
        signaller: Signaller = os.kill,
        resolver: Resolver = resolve_process,
    ) -> None:
        self.config_file = config_file
        self.pid_file = pid_file
        self.binary = binary
        self.snapshotter = snapshotter
        self.dry_run = dry_run
        self._spawn = spawner
        self._signal = signaller
        self._resolve = resolver

    def service(self, action: LifecycleAction | str) -> LifecycleOutcome:
        """Run one lifecycle action against the managed process."""
        try:
            action = LifecycleAction(action)
        except ValueError:
            raise UnknownActionError(str(action)) from None

        if self.dry_run:
            log.info("HAProxy would be %s now", action.past_tense)
            return LifecycleOutcome.SKIPPED

        if action == LifecycleAction.START:
            return self.start()
        if action == LifecycleAction.STOP:
            return self.stop()
        if action == LifecycleAction.RELOAD:
            return self.reload()
        return self.restart()

    def start(self) -> LifecycleOutcome:
        handle = self._resolve(self.pid_file)
        if handle.alive:
            log.warning("HAProxy is already running (pid=%s)", handle.pid)
            return LifecycleOutcome.ALREADY_RUNNING

        self._launch(LifecycleAction.START, self.base_command())
        return LifecycleOutcome.SUCCESS

    def stop(self) -> LifecycleOutcome:
        handle = self._resolve(self.pid_file)
        if not handle.alive:
            log.warning("HAProxy already stopped: %s", handle.reason)
            return LifecycleOutcome.ALREADY_STOPPED

        self._send(LifecycleAction.STOP, handle, STOP_SIGNAL)
        return LifecycleOutcome.SUCCESS

    def reload(self) -> LifecycleOutcome:
        self._save_server_state()
        handle = self._resolve(self.pid_file)
        if not handle.alive:
            log.warning("HAProxy is not running, trying to start it")
            return self.start()

        self._send(LifecycleAction.RELOAD, handle, RELOAD_SIGNAL)
        return LifecycleOutcome.SUCCESS

    def restart(self) -> LifecycleOutcome:
        self._save_server_state()
        handle = self._resolve(self.pid_file)
        if not handle.alive:
            log.warning("HAProxy is not running, trying to start it")
            return self.start()

        # -sf: the new instance takes over the listeners, the old one drains
        self._launch(LifecycleAction.RESTART, self.base_command() + ["-sf", str(handle.pid)])
        return LifecycleOutcome.SUCCESS

    def base_command(self) -> List[str]:
        return [self.binary, "-W", "-f", str(self.config_file), "-p", str(self.pid_file)]

    def _save_server_state(self) -> None:
        if self.snapshotter is None:
            return
        try:
            self.snapshotter.snapshot()
        except ServerStateError as exc:
            log.error("Unable to save server state: %s", exc)
        except Exception:
            log.exception("Unexpected error while saving server state")

    def _launch(self, action: LifecycleAction, command: List[str]) -> None:
        log.debug("Spawning %s", " ".join(command))
        try:
            self._spawn(command)
        except OSError as exc:
            raise SupervisorError(f"unable to spawn '{command[0]}': {exc}", action=action.value) from exc

    def _send(self, action: LifecycleAction, handle: ProcessHandle, signum: int) -> None:
        try:
            self._signal(handle.pid, signum)
        except OSError as exc:
            raise SupervisorError(
                f"unable to signal pid={handle.pid} with {signal.Signals(signum).name}: {exc}",
                action=action.value,
            ) from exc
