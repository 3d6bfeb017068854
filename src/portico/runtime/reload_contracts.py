from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict


class LifecycleAction(str, Enum):
    """Actions the supervisor can perform on the managed proxy process."""

    START = "start"
    STOP = "stop"
    RELOAD = "reload"
    RESTART = "restart"

    @property
    def past_tense(self) -> str:
        return {
            "start": "started",
            "stop": "stopped",
            "reload": "reloaded",
            "restart": "restarted",
        }[self.value]


class LifecycleOutcome(str, Enum):
    """Non-error results of a lifecycle action."""

    SUCCESS = "success"
    ALREADY_RUNNING = "already_running"
    ALREADY_STOPPED = "already_stopped"
    SKIPPED = "skipped"


class LoopState(str, Enum):
    """High-level states for the event loop lifecycle."""

    STOPPED = "stopped"
    WAITING = "waiting"
    SYNCING = "syncing"


class LoopEvent(str, Enum):
    """Events that drive event loop state transitions."""

    START = "start"
    BATCH_RECEIVED = "batch_received"
    SYNC_COMPLETE = "sync_complete"
    STOP = "stop"


class CycleDecision(BaseModel):
    """Reload/restart signal accumulated across every pass of one sync cycle.

    Both flags only ever go from False to True within a cycle, so the final
    value does not depend on pass order.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    reload: bool = False
    restart: bool = False

    def fold(self, changed: bool = False, restart: bool = False) -> None:
        self.reload = self.reload or bool(changed)
        self.restart = self.restart or bool(restart)

    @property
    def action(self) -> Optional[LifecycleAction]:
        return resolve_lifecycle_action(self)


def resolve_lifecycle_action(decision: CycleDecision) -> Optional[LifecycleAction]:
    """Map a cycle decision onto at most one lifecycle action.

    Restart subsumes reload: a replacement process reads the new configuration
    anyway, so reload is never dispatched alongside it.
    """

    if decision.restart:
        return LifecycleAction.RESTART
    if decision.reload:
        return LifecycleAction.RELOAD
    return None


def transition_loop_state(current: LoopState, event: LoopEvent) -> LoopState:
    """Compute the next event loop state for a given event.

    Invalid transitions raise ValueError.
    """

    if event == LoopEvent.STOP:
        return LoopState.STOPPED

    if current == LoopState.STOPPED:
        if event == LoopEvent.START:
            return LoopState.WAITING
        raise ValueError(f"Invalid loop transition: {current} -> {event}")

    if current == LoopState.WAITING:
        if event == LoopEvent.BATCH_RECEIVED:
            return LoopState.SYNCING
        raise ValueError(f"Invalid loop transition: {current} -> {event}")

    if current == LoopState.SYNCING:
        if event == LoopEvent.SYNC_COMPLETE:
            return LoopState.WAITING
        raise ValueError(f"Invalid loop transition: {current} -> {event}")

    raise ValueError(f"Unknown loop state: {current}")
