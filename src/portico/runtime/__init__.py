"""Sync engine and process supervision components."""

from portico.runtime.controller import IngressController
from portico.runtime.event_loop import EventLoop
from portico.runtime.passes import PassOutcome, StatusPublisher, TranslationPasses
from portico.runtime.process import (
	ProcessHandle,
	ProcessState,
	is_process_alive,
	read_pid_record,
	resolve_process,
)
from portico.runtime.reconciler import CycleResult, Reconciler
from portico.runtime.reload_contracts import CycleDecision, LifecycleAction, LifecycleOutcome
from portico.runtime.server_state import RuntimeSocketClient, ServerStateSnapshotter
from portico.runtime.supervisor import ProcessSupervisor
from portico.runtime.transaction import FileConfigurationBackend, TransactionManager, TransactionView

__all__ = [
	"IngressController",
	"EventLoop",
	"PassOutcome",
	"StatusPublisher",
	"TranslationPasses",
	"ProcessHandle",
	"ProcessState",
	"is_process_alive",
	"read_pid_record",
	"resolve_process",
	"CycleResult",
	"Reconciler",
	"CycleDecision",
	"LifecycleAction",
	"LifecycleOutcome",
	"RuntimeSocketClient",
	"ServerStateSnapshotter",
	"ProcessSupervisor",
	"FileConfigurationBackend",
	"TransactionManager",
	"TransactionView",
]
