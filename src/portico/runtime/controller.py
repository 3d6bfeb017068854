from __future__ import annotations

import logging
import os
import socket
import subprocess
import threading
from typing import Optional

from portico.core.models import ControllerSettings
from portico.core.state import DesiredState, EventKind, SyncEvent
from portico.runtime.event_loop import EventLoop
from portico.runtime.passes import StatusPublisher, TranslationPasses
from portico.runtime.reconciler import Reconciler
from portico.runtime.reload_contracts import LifecycleAction
from portico.runtime.server_state import RuntimeClient, RuntimeSocketClient, ServerStateSnapshotter
from portico.runtime.process import resolve_process
from portico.runtime.supervisor import ProcessSupervisor, Resolver, Signaller, Spawner
from portico.runtime.transaction import ConfigurationBackend, FileConfigurationBackend, TransactionManager
from portico.utils.diagnostics import ConfigurationError, SupervisorError

log = logging.getLogger(__name__)


class IngressController:
    """Wires settings, desired state, supervisor and sync loop together."""

    def __init__(
        self,
        settings: ControllerSettings,
        passes: Optional[TranslationPasses] = None,
        state: Optional[DesiredState] = None,
        status_publisher: Optional[StatusPublisher] = None,
        runtime: Optional[RuntimeClient] = None,
        backend: Optional[ConfigurationBackend] = None,
        spawner: Spawner = subprocess.Popen,
        signaller: Signaller = os.kill,
        resolver: Resolver = resolve_process,
    ) -> None:
        self.settings = settings
        self.passes = passes or TranslationPasses()
        self.state = state or DesiredState(publish_service=settings.publish_service)
        self.status_publisher = status_publisher
        self._runtime = runtime
        self._backend = backend
        self._spawner = spawner
        self._signaller = signaller
        self._resolver = resolver

        self.supervisor: Optional[ProcessSupervisor] = None
        self.transactions: Optional[TransactionManager] = None
        self.reconciler: Optional[Reconciler] = None
        self.event_loop: Optional[EventLoop] = None
        self._shutdown = threading.Event()

    @property
    def initialized(self) -> bool:
        return self.event_loop is not None

    def initialize(self) -> None:
        """Prepare directories, start the proxy and build the sync components.

        Every failure here is fatal and raised as ConfigurationError.
        """
        config_path = self.settings.config_path
        if not config_path.is_file():
            raise ConfigurationError(f"HAProxy configuration file not found: {config_path}")

        for directory in self.settings.managed_dirs():
            try:
                directory.mkdir(mode=0o755, parents=True, exist_ok=True)
            except OSError as exc:
                raise ConfigurationError(f"Unable to create directory '{directory}': {exc}") from exc

        self._log_proxy_version()

        runtime = self._runtime or self._runtime_client()
        self.supervisor = ProcessSupervisor(
            config_file=config_path,
            pid_file=self.settings.pid_file,
            binary=self.settings.haproxy_binary,
            snapshotter=ServerStateSnapshotter(runtime, self.settings.state_dir),
            dry_run=self.settings.test_mode,
            spawner=self._spawner,
            signaller=self._signaller,
            resolver=self._resolver,
        )

        log.info("Starting HAProxy with %s", config_path)
        try:
            self.supervisor.service(LifecycleAction.START)
        except SupervisorError as exc:
            raise ConfigurationError(f"Unable to start HAProxy: {exc}") from exc
        log.info("Running on %s", socket.gethostname())

        backend = self._backend or FileConfigurationBackend(
            config_file=config_path,
            transaction_dir=self.settings.transaction_path,
            validate_command=(
                [self.settings.haproxy_binary, "-c", "-f"] if self.settings.validate_config else None
            ),
        )
        try:
            backend.version()
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigurationError(f"Unable to initialize configuration backend: {exc}") from exc

        self.transactions = TransactionManager(backend)
        self.reconciler = Reconciler(
            settings=self.settings,
            transactions=self.transactions,
            passes=self.passes,
            state=self.state,
            supervisor=self.supervisor,
            status_publisher=self.status_publisher,
        )
        self.event_loop = EventLoop(
            reconciler=self.reconciler,
            apply_event=self.state.apply_event,
            buffer_size=self.settings.event_buffer_size,
        )

    def start(self) -> None:
        """Start the sync worker and queue an initial full sync."""
        if not self.initialized:
            self.initialize()
        self.event_loop.start()
        self.request_sync()

    def request_sync(self) -> None:
        self.event_loop.publish(SyncEvent(kind=EventKind.COMMAND, name="sync"))

    def stop(self) -> None:
        """Stop the sync worker once the in-flight cycle completes."""
        if self.event_loop is not None:
            self.event_loop.stop()

    def shutdown(self) -> None:
        """Ask `run_forever` to return; safe to call from a signal handler."""
        self._shutdown.set()

    def run_forever(self) -> None:
        self.start()
        try:
            self._shutdown.wait()
        finally:
            self.stop()

    def _runtime_client(self) -> RuntimeSocketClient:
        socket_path = self.settings.runtime_socket
        if not socket_path.parent.is_dir():
            raise ConfigurationError(f"Runtime socket directory not found: {socket_path.parent}")
        if socket_path.exists() and not socket_path.is_socket():
            raise ConfigurationError(f"Runtime socket path is not a socket: {socket_path}")
        return RuntimeSocketClient(socket_path)

    def _log_proxy_version(self) -> None:
        try:
            result = subprocess.run(
                [self.settings.haproxy_binary, "-v"],
                capture_output=True,
                text=True,
            )
        except OSError as exc:
            log.warning("Unable to query HAProxy version: %s", exc)
            return
        log.info("Running with %s", result.stdout.replace("\n", " ").strip())
