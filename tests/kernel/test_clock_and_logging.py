"""Tests for the injectable Clock and the structured JSON logging layer."""

import json
import logging
from datetime import datetime, timedelta, timezone
from io import StringIO
from uuid import uuid4

from ordermgmt_kernel.domain.clock import DeterministicClock, SystemClock
from ordermgmt_kernel.exceptions import JobConflictError
from ordermgmt_kernel.logging_config import LogContext, StructuredFormatter, get_logger


class TestClock:
    def test_deterministic_clock_is_frozen_until_advanced(self, clock):
        first = clock.now()
        assert clock.now() == first

        clock.advance(31)
        assert clock.now() == first + timedelta(seconds=31)
        assert clock.tick() == first + timedelta(seconds=32)

    def test_set_time_resets_offset(self):
        c = DeterministicClock()
        c.advance(100)
        target = datetime(2030, 1, 1, tzinfo=timezone.utc)
        c.set_time(target)

        assert c.now() == target

    def test_seconds_since(self, clock):
        start = clock.now()
        clock.advance(12.5)

        assert clock.seconds_since(start) == 12.5
        assert clock.seconds_since(None) is None

    def test_seconds_since_treats_naive_as_utc(self, clock):
        naive = clock.now().replace(tzinfo=None) - timedelta(seconds=5)
        assert clock.seconds_since(naive) == 5

    def test_system_clock_is_aware(self):
        assert SystemClock().now().tzinfo is not None


class TestStructuredLogging:
    def test_logger_namespace(self):
        assert get_logger("jobs.runner").name == "ordermgmt.jobs.runner"

    def test_extra_fields_and_context_are_emitted(self, captured_logs):
        job_id = uuid4()
        with LogContext.bind(job_id=job_id, tenant_id="t-1"):
            get_logger("test").info("job_promoted", extra={"priority": 3})

        record = [r for r in captured_logs() if r["message"] == "job_promoted"][0]
        assert record["job_id"] == str(job_id)
        assert record["tenant_id"] == "t-1"
        assert record["priority"] == 3
        assert record["level"] == "INFO"

    def test_bind_restores_previous_context(self):
        LogContext.set(tenant_id="outer")
        with LogContext.bind(tenant_id="inner", job_id="j"):
            assert LogContext.get_all()["tenant_id"] == "inner"

        assert LogContext.get_all() == {"tenant_id": "outer"}

    def test_exception_attributes_are_structured(self):
        stream = StringIO()
        handler = logging.StreamHandler(stream)
        handler.setFormatter(StructuredFormatter())
        logger = logging.getLogger("ordermgmt.test.exc")
        logger.addHandler(handler)
        try:
            try:
                raise JobConflictError("t-1", "backup", "j-1")
            except JobConflictError:
                logger.exception("admission_failed")
        finally:
            logger.removeHandler(handler)

        payload = json.loads(stream.getvalue().strip().split("\n")[-1])
        assert payload["exc_type"] == "JobConflictError"
        assert payload["exc_code"] == "JOB_ALREADY_ACTIVE"
        assert payload["exc_active_job_id"] == "j-1"
        assert "traceback" in payload
