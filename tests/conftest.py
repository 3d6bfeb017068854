import pytest
import sys
from pathlib import Path

# Ensure src/ is in the python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from portico.core.models import ControllerSettings
from portico.runtime.process import ProcessHandle, ProcessState

@pytest.fixture
def cfg_dir(tmp_path):
    """
    Returns a temporary HAProxy configuration directory holding a minimal
    haproxy.cfg.
    """
    directory = tmp_path / "haproxy"
    directory.mkdir()
    (directory / "haproxy.cfg").write_text("global\n  daemon\n")
    return directory

@pytest.fixture
def settings(tmp_path, cfg_dir):
    return ControllerSettings(
        cfg_dir=cfg_dir,
        pid_file=tmp_path / "haproxy.pid",
        state_dir=tmp_path / "state",
        runtime_socket=tmp_path / "runtime.sock",
        haproxy_binary="haproxy-not-installed",
        validate_config=False,
    )


class FakeProcessTable:
    """Stands in for spawn, signal and PID lookup of the managed process."""

    def __init__(self, pid=None, state=ProcessState.NOT_FOUND):
        self.pid = pid
        self.state = state
        self.spawned = []
        self.signals = []
        self.next_pid = 1000

    def resolve(self, pid_file):
        return ProcessHandle(state=self.state, pid=self.pid, pid_file=str(pid_file), reason="fake")

    def spawn(self, command):
        self.spawned.append(command)
        self.next_pid += 1
        self.pid = self.next_pid
        self.state = ProcessState.RUNNING

    def signal(self, pid, signum):
        self.signals.append((pid, signum))


@pytest.fixture
def processes():
    return FakeProcessTable()
