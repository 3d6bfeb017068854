from __future__ import annotations

import logging
import os
import socket
from pathlib import Path
from typing import Protocol

from portico.utils.diagnostics import ServerStateError

log = logging.getLogger(__name__)

SHOW_SERVERS_STATE = "show servers state"
STATE_FILE_NAME = "global"


class RuntimeClient(Protocol):
    """Runtime control channel of the managed proxy process."""

    def execute_raw(self, command: str) -> bytes:
        ...


class RuntimeSocketClient:
    """Runtime API client over the proxy's local unix stream socket.

    Each command uses its own connection: the command line is sent, then the
    response is read until the proxy closes the stream.
    """

    def __init__(self, socket_path: Path, timeout_seconds: float | None = None) -> None:
        self.socket_path = socket_path
        self.timeout_seconds = timeout_seconds

    def execute_raw(self, command: str) -> bytes:
        chunks: list[bytes] = []
        with socket.socket(socket.AF_UNIX, socket.SOCK_STREAM) as sock:
            sock.settimeout(self.timeout_seconds)
            sock.connect(str(self.socket_path))
            sock.sendall(f"{command}\n".encode("utf-8"))
            while True:
                chunk = sock.recv(65536)
                if not chunk:
                    break
                chunks.append(chunk)

        return b"".join(chunks)


class ServerStateSnapshotter:
    """Persists live server state so a replacement process can pick it up."""

    def __init__(self, runtime: RuntimeClient, state_dir: Path) -> None:
        self.runtime = runtime
        self.state_dir = state_dir

    @property
    def state_file(self) -> Path:
        return self.state_dir / STATE_FILE_NAME

    def snapshot(self) -> Path:
        """Query server state and overwrite the state file with the raw result.

        The response is stored as returned, without decoding.
        """
        try:
            result = self.runtime.execute_raw(SHOW_SERVERS_STATE)
        except Exception as exc:
            raise ServerStateError(f"runtime query '{SHOW_SERVERS_STATE}' failed: {exc}") from exc

        try:
            with self.state_file.open("wb") as handle:
                handle.write(result)
                handle.flush()
                os.fsync(handle.fileno())
        except OSError as exc:
            raise ServerStateError(f"unable to persist server state to '{self.state_file}': {exc}") from exc

        log.debug("Server state saved to %s (%d bytes)", self.state_file, len(result))
        return self.state_file
