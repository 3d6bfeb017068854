from __future__ import annotations

import os
from enum import Enum
from pathlib import Path

from pydantic import BaseModel


class ProcessState(str, Enum):
    """Classification of the managed process as seen through its PID record."""

    NOT_FOUND = "not_found"
    DEAD = "dead"
    RUNNING = "running"


class ProcessHandle(BaseModel):
    """Managed process handle resolved from the PID record.

    Never cache one: a restart hands the listening sockets to a new process,
    so the PID behind the record changes between lifecycle calls.
    """

    state: ProcessState
    pid: int | None = None
    pid_file: str
    reason: str

    @property
    def alive(self) -> bool:
        return self.state == ProcessState.RUNNING


def read_pid_record(pid_file: Path) -> int | None:
    """Return the PID named on the first line of the record, or None when unusable."""
    try:
        with pid_file.open("r", encoding="utf-8") as handle:
            first_line = handle.readline()
    except OSError:
        return None

    try:
        pid = int(first_line.strip())
    except ValueError:
        return None

    return pid if pid > 0 else None


def is_process_alive(pid: int) -> bool:
    """Return True when a process id appears to be alive on this host."""
    if pid <= 0:
        return False

    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return False

    return True


def resolve_process(pid_file: Path) -> ProcessHandle:
    """Classify the managed process as not found, dead, or running."""
    if not pid_file.exists():
        return ProcessHandle(
            state=ProcessState.NOT_FOUND,
            pid_file=str(pid_file),
            reason="PID record not found.",
        )

    pid = read_pid_record(pid_file)
    if pid is None:
        return ProcessHandle(
            state=ProcessState.NOT_FOUND,
            pid_file=str(pid_file),
            reason="PID record is empty or not a valid process id.",
        )

    if not is_process_alive(pid):
        return ProcessHandle(
            state=ProcessState.DEAD,
            pid=pid,
            pid_file=str(pid_file),
            reason=f"Process pid={pid} is not alive.",
        )

    return ProcessHandle(
        state=ProcessState.RUNNING,
        pid=pid,
        pid_file=str(pid_file),
        reason="Process is alive.",
    )
