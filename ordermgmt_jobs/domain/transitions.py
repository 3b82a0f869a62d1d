"""
Job state machine.

    queued -> running <-> throttled
    running/throttled -> pausing -> paused -> resuming -> running
    any live status -> cancelling -> cancelled | force_terminated
    running/throttled/pausing/resuming -> completed | failed | timeout_cancelled

Writers:
    Control verbs write intent (queued->cancelled, ->pausing, ->cancelling,
    paused->resuming/queued).  Only the runner moves pausing->paused and
    cancelling->cancelled.  The supervisor sweep writes force_terminated and
    timeout_cancelled.  Nothing leaves a terminal status.
"""

from __future__ import annotations

from ordermgmt_kernel.exceptions import InvalidJobTransitionError

from ordermgmt_jobs.domain.types import JobStatus

S = JobStatus

ALLOWED_TRANSITIONS: dict[JobStatus, frozenset[JobStatus]] = {
    S.QUEUED: frozenset({S.RUNNING, S.CANCELLED, S.FAILED}),
    S.RUNNING: frozenset({
        S.THROTTLED, S.PAUSING, S.CANCELLING, S.COMPLETED, S.FAILED,
        S.TIMEOUT_CANCELLED,
    }),
    S.THROTTLED: frozenset({
        S.RUNNING, S.PAUSING, S.CANCELLING, S.COMPLETED, S.FAILED,
        S.TIMEOUT_CANCELLED,
    }),
    S.PAUSING: frozenset({
        S.PAUSED, S.CANCELLING, S.COMPLETED, S.FAILED, S.TIMEOUT_CANCELLED,
    }),
    S.PAUSED: frozenset({S.RESUMING, S.QUEUED, S.CANCELLING}),
    S.RESUMING: frozenset({
        S.RUNNING, S.PAUSING, S.CANCELLING, S.FAILED, S.TIMEOUT_CANCELLED,
    }),
    S.CANCELLING: frozenset({S.CANCELLED, S.FORCE_TERMINATED, S.TIMEOUT_CANCELLED}),
    S.CANCELLED: frozenset(),
    S.FORCE_TERMINATED: frozenset(),
    S.TIMEOUT_CANCELLED: frozenset(),
    S.COMPLETED: frozenset(),
    S.FAILED: frozenset(),
}

TERMINAL = frozenset({
    S.CANCELLED, S.FORCE_TERMINATED, S.TIMEOUT_CANCELLED, S.COMPLETED, S.FAILED,
})

# Not finished.  A second job of the same type is refused while one of these exists.
ACTIVE = frozenset(s for s in JobStatus if s not in TERMINAL)

# Holding the (tenant, resource) slot.  Queued and paused jobs wait outside it.
OCCUPYING = frozenset({S.RUNNING, S.THROTTLED, S.PAUSING, S.RESUMING, S.CANCELLING})

# The supervisor hands these to the runner each pass.
RUNNABLE = frozenset({S.RUNNING, S.THROTTLED, S.RESUMING, S.PAUSING, S.CANCELLING})

# The runner may start batch work from these.
EXECUTABLE = frozenset({S.QUEUED, S.RUNNING, S.THROTTLED, S.RESUMING})

# Watched by the heartbeat sweep.
HEARTBEAT_WATCHED = frozenset({S.RUNNING, S.THROTTLED, S.RESUMING, S.PAUSING})


def can_transition(current: JobStatus | str, target: JobStatus | str) -> bool:
    current, target = JobStatus(current), JobStatus(target)
    if current == target:
        return True
    return target in ALLOWED_TRANSITIONS[current]


def require_transition(
    job_id: object,
    current: JobStatus | str,
    target: JobStatus | str,
    verb: str | None = None,
) -> JobStatus:
    """Return ``target`` as a JobStatus, or raise InvalidJobTransitionError."""
    if not can_transition(current, target):
        raise InvalidJobTransitionError(
            str(job_id), JobStatus(current).value, verb or JobStatus(target).value,
        )
    return JobStatus(target)
