"""
Job status model.

A job moves forward only:

    pending -> queued -> running -> completed
       |          |          |
       +----------+----------+--> failed | cancelled

`completed`, `failed` and `cancelled` are terminal; nothing leaves them.
"""

from __future__ import annotations

from collections import deque
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Union


class JobStatus(str, Enum):
    PENDING = "pending"
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


TERMINAL_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}
)
ACTIVE_STATUSES: FrozenSet[JobStatus] = frozenset(
    {JobStatus.PENDING, JobStatus.QUEUED, JobStatus.RUNNING}
)

TRANSITIONS: Dict[JobStatus, FrozenSet[JobStatus]] = {
    JobStatus.PENDING: frozenset({JobStatus.QUEUED, JobStatus.CANCELLED, JobStatus.FAILED}),
    JobStatus.QUEUED: frozenset({JobStatus.RUNNING, JobStatus.CANCELLED, JobStatus.FAILED}),
    JobStatus.RUNNING: frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED}),
    JobStatus.COMPLETED: frozenset(),
    JobStatus.FAILED: frozenset(),
    JobStatus.CANCELLED: frozenset(),
}

StatusLike = Union[JobStatus, str]


class InvalidTransition(Exception):
    def __init__(self, current: StatusLike, target: StatusLike):
        self.current = JobStatus(current)
        self.target = JobStatus(target)
        super().__init__(f"Cannot transition job from {self.current.value} to {self.target.value}")


def is_terminal(status: StatusLike) -> bool:
    return JobStatus(status) in TERMINAL_STATUSES


def can_transition(current: StatusLike, target: StatusLike) -> bool:
    return JobStatus(target) in TRANSITIONS[JobStatus(current)]


def transition(current: StatusLike, target: StatusLike) -> JobStatus:
    """Validate a single step and return the new status."""
    if not can_transition(current, target):
        raise InvalidTransition(current, target)
    return JobStatus(target)


def transition_path(current: StatusLike, target: StatusLike) -> Optional[List[JobStatus]]:
    """
    Shortest sequence of legal steps from `current` to `target`, excluding
    `current`. Returns [] when already there and None when unreachable.

    Used when an external status report skips intermediate states
    (e.g. a queued job reported as completed).
    """
    start, goal = JobStatus(current), JobStatus(target)
    if start == goal:
        return []

    previous: Dict[JobStatus, JobStatus] = {}
    queue = deque([start])
    seen = {start}
    while queue:
        node = queue.popleft()
        # Sorted for a deterministic path.
        for nxt in sorted(TRANSITIONS[node], key=lambda s: s.value):
            if nxt in seen:
                continue
            previous[nxt] = node
            if nxt == goal:
                path = [nxt]
                while path[-1] != start and previous[path[-1]] != start:
                    path.append(previous[path[-1]])
                return list(reversed(path))
            seen.add(nxt)
            queue.append(nxt)
    return None


class JobStateMachine:
    """Tracks one job's status and enforces legal transitions."""

    def __init__(self, state: StatusLike = JobStatus.PENDING):
        self._state = JobStatus(state)

    @property
    def state(self) -> JobStatus:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self._state)

    def can_transition(self, target: StatusLike) -> bool:
        return can_transition(self._state, target)

    def transition(self, target: StatusLike) -> JobStatus:
        self._state = transition(self._state, target)
        return self._state
