import pytest

from portico.runtime.reload_contracts import (
    CycleDecision,
    LifecycleAction,
    LoopEvent,
    LoopState,
    resolve_lifecycle_action,
    transition_loop_state,
)


def test_cycle_decision_fold_is_monotonic():
    decision = CycleDecision()

    decision.fold(changed=True)
    decision.fold(changed=False)
    decision.fold(restart=True)
    decision.fold()

    assert decision.reload is True
    assert decision.restart is True


def test_resolve_lifecycle_action_precedence():
    assert resolve_lifecycle_action(CycleDecision()) is None
    assert resolve_lifecycle_action(CycleDecision(reload=True)) == LifecycleAction.RELOAD
    assert resolve_lifecycle_action(CycleDecision(restart=True)) == LifecycleAction.RESTART
    assert resolve_lifecycle_action(CycleDecision(reload=True, restart=True)) == LifecycleAction.RESTART


def test_lifecycle_action_past_tense():
    assert LifecycleAction.RELOAD.past_tense == "reloaded"
    assert LifecycleAction("restart").past_tense == "restarted"


def test_loop_state_happy_path():
    state = LoopState.STOPPED
    state = transition_loop_state(state, LoopEvent.START)
    assert state == LoopState.WAITING

    state = transition_loop_state(state, LoopEvent.BATCH_RECEIVED)
    assert state == LoopState.SYNCING

    state = transition_loop_state(state, LoopEvent.SYNC_COMPLETE)
    assert state == LoopState.WAITING


@pytest.mark.parametrize("state", list(LoopState))
def test_stop_allowed_from_any_state(state):
    assert transition_loop_state(state, LoopEvent.STOP) == LoopState.STOPPED


def test_invalid_loop_transition_raises():
    with pytest.raises(ValueError):
        transition_loop_state(LoopState.STOPPED, LoopEvent.BATCH_RECEIVED)

    with pytest.raises(ValueError):
        transition_loop_state(LoopState.SYNCING, LoopEvent.BATCH_RECEIVED)
