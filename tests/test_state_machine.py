import pytest

from syndata.jobs.state_machine import (
    TERMINAL_STATUSES,
    InvalidTransition,
    JobStateMachine,
    JobStatus,
    can_transition,
    is_terminal,
    transition,
    transition_path,
)


def test_forward_transitions_are_allowed():
    assert can_transition("pending", "queued")
    assert can_transition("queued", "running")
    assert can_transition("running", "completed")


@pytest.mark.parametrize("current", ["pending", "queued", "running"])
def test_any_active_status_can_fail_or_be_cancelled(current):
    assert can_transition(current, JobStatus.FAILED)
    assert can_transition(current, JobStatus.CANCELLED)


def test_backwards_and_skipping_steps_are_rejected():
    assert not can_transition("running", "queued")
    assert not can_transition("queued", "pending")
    assert not can_transition("pending", "running")
    assert not can_transition("pending", "completed")


@pytest.mark.parametrize("terminal", sorted(TERMINAL_STATUSES, key=lambda s: s.value))
def test_terminal_statuses_have_no_way_out(terminal):
    assert is_terminal(terminal)
    for target in JobStatus:
        assert not can_transition(terminal, target)


def test_transition_raises_with_both_states():
    with pytest.raises(InvalidTransition) as exc:
        transition("completed", "running")
    assert exc.value.current == JobStatus.COMPLETED
    assert exc.value.target == JobStatus.RUNNING
    assert "completed to running" in str(exc.value)


def test_unknown_status_is_a_value_error():
    with pytest.raises(ValueError):
        can_transition("pending", "paused")


def test_transition_path_walks_skipped_states():
    assert transition_path("pending", "completed") == [JobStatus.QUEUED, JobStatus.RUNNING, JobStatus.COMPLETED]
    assert transition_path("queued", "completed") == [JobStatus.RUNNING, JobStatus.COMPLETED]
    assert transition_path("queued", "failed") == [JobStatus.FAILED]


def test_transition_path_same_state_and_unreachable():
    assert transition_path("running", "running") == []
    assert transition_path("running", "queued") is None
    assert transition_path("failed", "completed") is None


def test_state_machine_tracks_state():
    machine = JobStateMachine()
    assert machine.state == JobStatus.PENDING
    machine.transition("queued")
    machine.transition(JobStatus.RUNNING)
    assert not machine.is_terminal
    machine.transition("completed")
    assert machine.is_terminal
    assert not machine.can_transition("failed")
    with pytest.raises(InvalidTransition):
        machine.transition("failed")
    assert machine.state == JobStatus.COMPLETED
