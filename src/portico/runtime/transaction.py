from __future__ import annotations

import logging
import os
import re
import subprocess
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional, Protocol

from portico.utils.diagnostics import (
    NoActiveTransactionError,
    TransactionAlreadyActiveError,
    TransactionError,
)

log = logging.getLogger(__name__)

VERSION_PATTERN = re.compile(r"^# _version=(\d+)\s*$")


class TransactionView:
    """Read/write access to the candidate configuration of one transaction."""

    def __init__(self, transaction_id: str, path: Path, base_content: str) -> None:
        self.transaction_id = transaction_id
        self.path = path
        self.base_content = base_content

    def read_text(self) -> str:
        return self.path.read_text(encoding="utf-8")

    def write_text(self, content: str) -> None:
        self.path.write_text(content, encoding="utf-8")

    @property
    def has_changes(self) -> bool:
        return self.read_text() != self.base_content


class ConfigurationBackend(Protocol):
    """Transactional store for the proxy's configuration file."""

    def version(self) -> int:
        ...

    def start_transaction(self, version: int) -> str:
        ...

    def view(self, transaction_id: str) -> TransactionView:
        ...

    def commit_transaction(self, transaction_id: str) -> None:
        ...

    def delete_transaction(self, transaction_id: str) -> None:
        ...


def split_version(content: str) -> tuple[int, str]:
    """Split a leading '# _version=N' header from configuration content."""
    first_line, _, rest = content.partition("\n")
    match = VERSION_PATTERN.match(first_line)
    if match is None:
        return 0, content
    return int(match.group(1)), rest


class FileConfigurationBackend:
    """
    Configuration backend that keeps each transaction as a copy of the live
    configuration file and swaps it in with an atomic rename on commit.

    The live file carries a '# _version=N' header. Commit is refused when the
    live version moved after the transaction started, and every committed
    change bumps it.
    """

    def __init__(
        self,
        config_file: Path,
        transaction_dir: Path,
        validate_command: Optional[list[str]] = None,
    ) -> None:
        self.config_file = config_file
        self.transaction_dir = transaction_dir
        self.validate_command = validate_command
        self._transactions: dict[str, tuple[int, TransactionView]] = {}

    def version(self) -> int:
        version, _ = split_version(self.config_file.read_text(encoding="utf-8"))
        return version

    def start_transaction(self, version: int) -> str:
        current_version, body = split_version(self.config_file.read_text(encoding="utf-8"))
        if version != current_version:
            raise TransactionError(f"version mismatch: requested {version}, live {current_version}")

        self.transaction_dir.mkdir(parents=True, exist_ok=True)
        transaction_id = uuid.uuid4().hex
        path = self.transaction_dir / f"{self.config_file.name}.{transaction_id}"
        path.write_text(body, encoding="utf-8")
        self._transactions[transaction_id] = (version, TransactionView(transaction_id, path, body))
        return transaction_id

    def view(self, transaction_id: str) -> TransactionView:
        return self._get(transaction_id)[1]

    def commit_transaction(self, transaction_id: str) -> None:
        version, view = self._get(transaction_id)
        if self.version() != version:
            raise TransactionError("configuration changed outside this transaction", transaction_id)

        content = view.read_text()
        if content == view.base_content:
            self._forget(transaction_id)
            return

        staged = view.path.with_suffix(".commit")
        staged.write_text(f"# _version={version + 1}\n{content}", encoding="utf-8")
        try:
            self._validate(transaction_id, staged)
            os.replace(staged, self.config_file)
        finally:
            if staged.exists():
                staged.unlink()

        self._forget(transaction_id)
        log.debug("Committed transaction %s as version %d", transaction_id, version + 1)

    def delete_transaction(self, transaction_id: str) -> None:
        self._get(transaction_id)
        self._forget(transaction_id)

    def _validate(self, transaction_id: str, candidate: Path) -> None:
        if not self.validate_command:
            return
        result = subprocess.run(
            [*self.validate_command, str(candidate)],
            capture_output=True,
            text=True,
        )
        if result.returncode != 0:
            detail = (result.stderr or result.stdout).strip()
            raise TransactionError(f"configuration validation failed: {detail}", transaction_id)

    def _get(self, transaction_id: str) -> tuple[int, TransactionView]:
        entry = self._transactions.get(transaction_id)
        if entry is None:
            raise TransactionError("transaction does not exist", transaction_id)
        return entry

    def _forget(self, transaction_id: str) -> None:
        _, view = self._transactions.pop(transaction_id)
        if view.path.exists():
            view.path.unlink()


class TransactionManager:
    """
    Single-writer transaction lifecycle over a configuration backend.

    At most one transaction is active. Only the sync worker opens
    transactions, so no lock guards this state.
    """

    def __init__(self, backend: ConfigurationBackend) -> None:
        self.backend = backend
        self.active_transaction: Optional[str] = None

    def start_transaction(self) -> str:
        if self.active_transaction is not None:
            raise TransactionAlreadyActiveError("a transaction is already active", self.active_transaction)

        try:
            transaction_id = self.backend.start_transaction(self.backend.version())
        except TransactionError:
            raise
        except (OSError, UnicodeDecodeError) as exc:
            raise TransactionError(f"unable to start transaction: {exc}") from exc

        self.active_transaction = transaction_id
        return transaction_id

    def active_view(self) -> TransactionView:
        if self.active_transaction is None:
            raise NoActiveTransactionError()
        return self.backend.view(self.active_transaction)

    def commit(self) -> None:
        if self.active_transaction is None:
            raise NoActiveTransactionError()

        try:
            self.backend.commit_transaction(self.active_transaction)
        except TransactionError:
            raise
        except (OSError, UnicodeDecodeError) as exc:
            raise TransactionError(f"unable to commit: {exc}", self.active_transaction) from exc

        self.active_transaction = None

    def dispose(self) -> None:
        """Discard any transaction commit has not cleared; safe on every exit path."""
        if self.active_transaction is None:
            return

        transaction_id = self.active_transaction
        self.active_transaction = None
        try:
            self.backend.delete_transaction(transaction_id)
        except (TransactionError, OSError) as exc:
            log.error("Unable to dispose transaction %s: %s", transaction_id, exc)

    @contextmanager
    def transaction(self) -> Iterator[TransactionView]:
        """Open a transaction and dispose it on exit, committed or not."""
        self.start_transaction()
        try:
            yield self.active_view()
        finally:
            self.dispose()
