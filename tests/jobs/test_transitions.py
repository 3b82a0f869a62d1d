"""Tests for the Job Record state machine."""

import pytest

from ordermgmt_jobs.domain.transitions import (
    ACTIVE,
    ALLOWED_TRANSITIONS,
    OCCUPYING,
    TERMINAL,
    can_transition,
    require_transition,
)
from ordermgmt_jobs.domain.types import JobStatus
from ordermgmt_kernel.exceptions import InvalidJobTransitionError


class TestTransitionTable:
    def test_every_status_has_an_entry(self):
        assert set(ALLOWED_TRANSITIONS) == set(JobStatus)

    @pytest.mark.parametrize("status", sorted(TERMINAL, key=lambda s: s.value))
    def test_nothing_leaves_a_terminal_status(self, status):
        assert ALLOWED_TRANSITIONS[status] == frozenset()
        assert status.is_terminal
        assert status not in ACTIVE

    @pytest.mark.parametrize(
        "current, target",
        [
            (JobStatus.QUEUED, JobStatus.RUNNING),
            (JobStatus.RUNNING, JobStatus.THROTTLED),
            (JobStatus.THROTTLED, JobStatus.RUNNING),
            (JobStatus.RUNNING, JobStatus.PAUSING),
            (JobStatus.PAUSING, JobStatus.PAUSED),
            (JobStatus.PAUSED, JobStatus.RESUMING),
            (JobStatus.PAUSED, JobStatus.QUEUED),
            (JobStatus.RESUMING, JobStatus.RUNNING),
            (JobStatus.RUNNING, JobStatus.CANCELLING),
            (JobStatus.CANCELLING, JobStatus.CANCELLED),
            (JobStatus.CANCELLING, JobStatus.FORCE_TERMINATED),
            (JobStatus.RUNNING, JobStatus.TIMEOUT_CANCELLED),
            (JobStatus.QUEUED, JobStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current, target",
        [
            (JobStatus.QUEUED, JobStatus.PAUSED),
            (JobStatus.PAUSED, JobStatus.RUNNING),
            (JobStatus.COMPLETED, JobStatus.RUNNING),
            (JobStatus.CANCELLED, JobStatus.QUEUED),
            (JobStatus.CANCELLING, JobStatus.RUNNING),
            (JobStatus.FAILED, JobStatus.QUEUED),
        ],
    )
    def test_forbidden(self, current, target):
        assert not can_transition(current, target)

    def test_same_status_is_a_no_op(self):
        assert can_transition("completed", "completed")

    def test_paused_and_queued_jobs_do_not_occupy_the_slot(self):
        assert JobStatus.QUEUED not in OCCUPYING
        assert JobStatus.PAUSED not in OCCUPYING
        assert JobStatus.CANCELLING in OCCUPYING


class TestRequireTransition:
    def test_returns_target_status(self):
        assert require_transition("j-1", "running", "pausing") is JobStatus.PAUSING

    def test_raises_with_verb(self):
        with pytest.raises(InvalidJobTransitionError) as exc_info:
            require_transition("j-1", JobStatus.COMPLETED, JobStatus.CANCELLING, verb="cancel")

        assert exc_info.value.code == "INVALID_JOB_TRANSITION"
        assert "cancel" in str(exc_info.value)
