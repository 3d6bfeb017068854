import signal

import pytest

from portico.runtime.process import ProcessState
from portico.runtime.reload_contracts import LifecycleAction, LifecycleOutcome
from portico.runtime.server_state import ServerStateSnapshotter
from portico.runtime.supervisor import ProcessSupervisor
from portico.utils.diagnostics import ServerStateError, SupervisorError, UnknownActionError


class _RecordingSnapshotter:
    def __init__(self, events, fail=False):
        self.events = events
        self.fail = fail

    def snapshot(self):
        self.events.append("snapshot")
        if self.fail:
            raise ServerStateError("runtime socket unavailable")


def _supervisor(tmp_path, processes, **kwargs):
    return ProcessSupervisor(
        config_file=tmp_path / "haproxy.cfg",
        pid_file=tmp_path / "haproxy.pid",
        spawner=processes.spawn,
        signaller=processes.signal,
        resolver=processes.resolve,
        **kwargs,
    )


def test_start_spawns_master_worker_process(tmp_path, processes):
    supervisor = _supervisor(tmp_path, processes)

    outcome = supervisor.service("start")

    assert outcome == LifecycleOutcome.SUCCESS
    assert processes.spawned == [
        ["haproxy", "-W", "-f", str(tmp_path / "haproxy.cfg"), "-p", str(tmp_path / "haproxy.pid")]
    ]


def test_second_start_reports_already_running_without_spawning(tmp_path, processes):
    supervisor = _supervisor(tmp_path, processes)

    assert supervisor.service(LifecycleAction.START) == LifecycleOutcome.SUCCESS
    assert supervisor.service(LifecycleAction.START) == LifecycleOutcome.ALREADY_RUNNING
    assert len(processes.spawned) == 1


def test_stop_sends_graceful_signal(tmp_path, processes):
    processes.pid, processes.state = 77, ProcessState.RUNNING
    supervisor = _supervisor(tmp_path, processes)

    assert supervisor.service("stop") == LifecycleOutcome.SUCCESS
    assert processes.signals == [(77, signal.SIGUSR1)]


@pytest.mark.parametrize("state", [ProcessState.NOT_FOUND, ProcessState.DEAD])
def test_stop_reports_already_stopped(tmp_path, processes, state):
    processes.pid, processes.state = (None if state == ProcessState.NOT_FOUND else 99), state
    supervisor = _supervisor(tmp_path, processes)

    assert supervisor.service("stop") == LifecycleOutcome.ALREADY_STOPPED
    assert processes.signals == []


def test_reload_signals_live_process_after_snapshot(tmp_path, processes):
    events = []
    processes.pid, processes.state = 77, ProcessState.RUNNING
    supervisor = _supervisor(tmp_path, processes, snapshotter=_RecordingSnapshotter(events))

    assert supervisor.service("reload") == LifecycleOutcome.SUCCESS
    assert events == ["snapshot"]
    assert processes.signals == [(77, signal.SIGUSR2)]
    assert processes.spawned == []


@pytest.mark.parametrize("state", [ProcessState.NOT_FOUND, ProcessState.DEAD])
def test_reload_without_live_process_falls_back_to_start(tmp_path, processes, state, caplog):
    processes.pid, processes.state = (None if state == ProcessState.NOT_FOUND else 99), state
    supervisor = _supervisor(tmp_path, processes)

    with caplog.at_level("WARNING"):
        outcome = supervisor.service("reload")

    assert outcome == LifecycleOutcome.SUCCESS
    assert processes.signals == []
    assert processes.spawned == [supervisor.base_command()]
    assert "not running" in caplog.text


@pytest.mark.parametrize("state", [ProcessState.NOT_FOUND, ProcessState.DEAD])
def test_restart_without_live_process_falls_back_to_start(tmp_path, processes, state):
    processes.pid, processes.state = (None if state == ProcessState.NOT_FOUND else 99), state
    supervisor = _supervisor(tmp_path, processes)

    assert supervisor.service("restart") == LifecycleOutcome.SUCCESS
    assert processes.spawned == [supervisor.base_command()]


def test_restart_hands_sockets_over_to_replacement(tmp_path, processes):
    processes.pid, processes.state = 77, ProcessState.RUNNING
    supervisor = _supervisor(tmp_path, processes)

    assert supervisor.service("restart") == LifecycleOutcome.SUCCESS
    assert processes.spawned == [supervisor.base_command() + ["-sf", "77"]]
    assert processes.signals == []


def test_restart_snapshots_before_spawn_even_when_snapshot_fails(tmp_path, processes):
    events = []
    processes.pid, processes.state = 77, ProcessState.RUNNING

    def spawn(command):
        events.append("spawn")
        processes.spawn(command)

    supervisor = ProcessSupervisor(
        config_file=tmp_path / "haproxy.cfg",
        pid_file=tmp_path / "haproxy.pid",
        snapshotter=_RecordingSnapshotter(events, fail=True),
        spawner=spawn,
        signaller=processes.signal,
        resolver=processes.resolve,
    )

    assert supervisor.service("restart") == LifecycleOutcome.SUCCESS
    assert events == ["snapshot", "spawn"]


def test_unknown_action_is_definitional_error(tmp_path, processes):
    supervisor = _supervisor(tmp_path, processes)

    with pytest.raises(UnknownActionError) as excinfo:
        supervisor.service("explode")

    assert "explode" in str(excinfo.value)
    assert processes.spawned == []


def test_dry_run_logs_without_executing(tmp_path, processes, caplog):
    events = []
    processes.pid, processes.state = 77, ProcessState.RUNNING
    supervisor = _supervisor(tmp_path, processes, dry_run=True, snapshotter=_RecordingSnapshotter(events))

    with caplog.at_level("INFO"):
        outcome = supervisor.service("reload")

    assert outcome == LifecycleOutcome.SKIPPED
    assert "would be reloaded" in caplog.text
    assert events == []
    assert processes.signals == []


def test_spawn_failure_raises_supervisor_error(tmp_path, processes):
    def spawn(command):
        raise FileNotFoundError(2, "No such file or directory", command[0])

    supervisor = ProcessSupervisor(
        config_file=tmp_path / "haproxy.cfg",
        pid_file=tmp_path / "haproxy.pid",
        spawner=spawn,
        resolver=processes.resolve,
    )

    with pytest.raises(SupervisorError) as excinfo:
        supervisor.service("start")

    assert not isinstance(excinfo.value, UnknownActionError)
    assert excinfo.value.action == "start"


def test_signal_failure_raises_supervisor_error(tmp_path, processes):
    processes.pid, processes.state = 77, ProcessState.RUNNING

    def signaller(pid, signum):
        raise ProcessLookupError()

    supervisor = ProcessSupervisor(
        config_file=tmp_path / "haproxy.cfg",
        pid_file=tmp_path / "haproxy.pid",
        signaller=signaller,
        resolver=processes.resolve,
    )

    with pytest.raises(SupervisorError):
        supervisor.service("stop")


class _BytesRuntime:
    def __init__(self, result=b"", error=None):
        self.result = result
        self.error = error

    def execute_raw(self, command):
        if self.error is not None:
            raise self.error
        return self.result


def test_restart_persists_non_utf8_server_state_and_hands_over(tmp_path, processes):
    processes.pid, processes.state = 77, ProcessState.RUNNING
    snapshotter = ServerStateSnapshotter(_BytesRuntime(result=b"1\n\xff\xfe srv\n"), tmp_path)
    supervisor = _supervisor(tmp_path, processes, snapshotter=snapshotter)

    assert supervisor.service("restart") == LifecycleOutcome.SUCCESS
    assert (tmp_path / "global").read_bytes() == b"1\n\xff\xfe srv\n"
    assert processes.spawned == [supervisor.base_command() + ["-sf", "77"]]


def test_reload_signals_even_when_runtime_client_raises_non_os_error(tmp_path, processes, caplog):
    processes.pid, processes.state = 77, ProcessState.RUNNING
    error = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
    snapshotter = ServerStateSnapshotter(_BytesRuntime(error=error), tmp_path)
    supervisor = _supervisor(tmp_path, processes, snapshotter=snapshotter)

    with caplog.at_level("ERROR"):
        assert supervisor.service("reload") == LifecycleOutcome.SUCCESS

    assert processes.signals == [(77, signal.SIGUSR2)]
    assert "Unable to save server state" in caplog.text


def test_restart_proceeds_when_snapshotter_raises_unexpectedly(tmp_path, processes):
    events = []
    processes.pid, processes.state = 77, ProcessState.RUNNING

    class _BrokenSnapshotter:
        def snapshot(self):
            events.append("snapshot")
            raise RuntimeError("state dir vanished")

    supervisor = _supervisor(tmp_path, processes, snapshotter=_BrokenSnapshotter())

    assert supervisor.service("restart") == LifecycleOutcome.SUCCESS
    assert events == ["snapshot"]
    assert processes.spawned == [supervisor.base_command() + ["-sf", "77"]]
