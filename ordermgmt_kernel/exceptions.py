"""
Typed exception hierarchy for the order-management core.

Every error has a typed class (catch by type, not message), a class-level
``code`` (machine-readable, API-safe) and structured attributes.

    OrderMgmtError (base)
    |
    +-- InvalidRequestError
    +-- AccessDeniedError
    +-- EntityNotFoundError
    +-- ConfigurationError
    |
    +-- JobError
    |   +-- JobNotFoundError
    |   +-- InvalidJobTransitionError
    |   +-- JobConflictError
    |   +-- TaskNotRegisteredError
    |   +-- EmptyBackupError
    |
    +-- TransientStoreError
    |   +-- RateLimitedError
    |   +-- RetryExhaustedError
    |
    +-- SettlementError
        +-- SettlementImportNotFoundError
        +-- UnsupportedFormatError
        +-- HeaderNotFoundError
        +-- SettlementParseError
        +-- IntegrityViolationError
        +-- NoActiveOrdersError
        +-- NoEligibleRowsError

Category        | Code                          | HTTP
----------------|-------------------------------|------
Request         | VALIDATION_ERROR              | 400
Access          | ACCESS_DENIED                 | 403
Lookup          | ENTITY_NOT_FOUND              | 404
Job             | JOB_NOT_FOUND                 | 404
                | INVALID_JOB_TRANSITION        | 400
                | JOB_ALREADY_ACTIVE            | 400
                | TASK_NOT_REGISTERED           | 400
                | BACKUP_EMPTY                  | (job failed)
Transient       | RATE_LIMITED                  | (retried)
                | RETRY_EXHAUSTED               | (job failed)
Settlement      | SETTLEMENT_IMPORT_NOT_FOUND   | 404
                | UNSUPPORTED_FORMAT            | 400
                | PARSER_ERROR                  | 400
                | INTEGRITY_VIOLATION           | (import failed)
                | NO_ACTIVE_ORDERS              | 400
                | NO_ELIGIBLE_MATCHED_ROWS      | 400
"""

from __future__ import annotations

from typing import Iterable


class OrderMgmtError(Exception):
    """
    Base exception for all order-management errors.

    All subclasses must set a ``code`` class attribute.
    """

    code: str = "ORDERMGMT_ERROR"


# Request / access / lookup


class InvalidRequestError(OrderMgmtError):
    """A request is missing fields or carries malformed values."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class AccessDeniedError(OrderMgmtError):
    """AccessGuard rejected the caller for the tenant."""

    code: str = "ACCESS_DENIED"

    def __init__(self, tenant_id: str, reason: str):
        self.tenant_id = tenant_id
        self.reason = reason
        super().__init__(f"Access denied for tenant {tenant_id}: {reason}")


class EntityNotFoundError(OrderMgmtError):
    """Tenant-scoped record lookup found nothing."""

    code: str = "ENTITY_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class ConfigurationError(OrderMgmtError):
    """Runtime policy values are invalid."""

    code: str = "CONFIGURATION_ERROR"

    def __init__(self, key: str, message: str):
        self.key = key
        super().__init__(f"Invalid configuration '{key}': {message}")


# Job lifecycle


class JobError(OrderMgmtError):
    """Base exception for job lifecycle errors."""

    code: str = "JOB_ERROR"


class JobNotFoundError(JobError):
    """Job id does not exist for the tenant."""

    code: str = "JOB_NOT_FOUND"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidJobTransitionError(JobError):
    """The requested status change is not permitted from the current status."""

    code: str = "INVALID_JOB_TRANSITION"

    def __init__(self, job_id: str, current_status: str, requested: str):
        self.job_id = job_id
        self.current_status = current_status
        self.requested = requested
        super().__init__(
            f"Job {job_id} cannot {requested} from status '{current_status}'"
        )


class JobConflictError(JobError):
    """A conflicting job is already active for the tenant."""

    code: str = "JOB_ALREADY_ACTIVE"

    def __init__(self, tenant_id: str, job_type: str, active_job_id: str):
        self.tenant_id = tenant_id
        self.job_type = job_type
        self.active_job_id = active_job_id
        super().__init__(
            f"A {job_type} job is already active for tenant {tenant_id} "
            f"(job {active_job_id})"
        )


class TaskNotRegisteredError(JobError):
    """No task implementation is registered for the job type."""

    code: str = "TASK_NOT_REGISTERED"

    def __init__(self, job_type: str, available: Iterable[str] = ()):
        self.job_type = job_type
        self.available = tuple(available)
        super().__init__(
            f"No task registered for job type '{job_type}'. "
            f"Available: {list(self.available)}"
        )


class EmptyBackupError(JobError):
    """A backup captured nothing although the workspace holds data."""

    code: str = "BACKUP_EMPTY"

    def __init__(self, tenant_id: str, live_rows: int):
        self.tenant_id = tenant_id
        self.live_rows = live_rows
        super().__init__(
            f"Backup of workspace {tenant_id} is empty but {live_rows} rows exist"
        )


# Transient infrastructure


class TransientStoreError(OrderMgmtError):
    """Base for store failures that are worth retrying."""

    code: str = "TRANSIENT_STORE_ERROR"


class RateLimitedError(TransientStoreError):
    """The entity store rejected a write with a rate limit or gateway error."""

    code: str = "RATE_LIMITED"

    def __init__(self, operation: str, detail: str = ""):
        self.operation = operation
        self.detail = detail
        super().__init__(f"Rate limited during {operation}: {detail}".rstrip(": "))


class RetryExhaustedError(TransientStoreError):
    """Transient retries hit the attempt ceiling."""

    code: str = "RETRY_EXHAUSTED"

    def __init__(self, item_key: str, attempts: int, last_error: str):
        self.item_key = item_key
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Item {item_key} failed after {attempts} attempts: {last_error}"
        )


# Settlement


class SettlementError(OrderMgmtError):
    """Base exception for settlement pipeline errors."""

    code: str = "SETTLEMENT_ERROR"


class SettlementImportNotFoundError(SettlementError):
    """Settlement import does not exist for the tenant."""

    code: str = "SETTLEMENT_IMPORT_NOT_FOUND"

    def __init__(self, import_id: str):
        self.import_id = import_id
        super().__init__(f"Settlement import not found: {import_id}")


class UnsupportedFormatError(SettlementError):
    """The uploaded report is neither CSV nor XLSX."""

    code: str = "UNSUPPORTED_FORMAT"

    def __init__(self, file_name: str):
        self.file_name = file_name
        super().__init__(f"Unsupported settlement report format: {file_name}")


class HeaderNotFoundError(SettlementError):
    """No header row was found in the scanned prefix of the report."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, scanned_lines: int, missing: Iterable[str]):
        self.scanned_lines = scanned_lines
        self.missing = tuple(missing)
        super().__init__(
            f"No settlement header found in first {scanned_lines} lines "
            f"(missing: {', '.join(self.missing)})"
        )


class SettlementParseError(SettlementError):
    """The report could not be read at all."""

    code: str = "PARSER_ERROR"

    def __init__(self, file_name: str, reason: str):
        self.file_name = file_name
        self.reason = reason
        super().__init__(f"Could not parse {file_name}: {reason}")


class IntegrityViolationError(SettlementError):
    """Materialized rows fall short of the declared total beyond tolerance."""

    code: str = "INTEGRITY_VIOLATION"

    def __init__(self, import_id: str, expected: int, actual: int, tolerance: float):
        self.import_id = import_id
        self.expected = expected
        self.actual = actual
        self.tolerance = tolerance
        super().__init__(
            f"Import {import_id}: {actual} rows materialized, expected {expected} "
            f"(minimum {tolerance:.0%})"
        )


class NoActiveOrdersError(SettlementError):
    """COGS recompute found no active orders for the tenant."""

    code: str = "NO_ACTIVE_ORDERS"

    def __init__(self, tenant_id: str):
        self.tenant_id = tenant_id
        super().__init__(f"No active orders for tenant {tenant_id}")


class NoEligibleRowsError(SettlementError):
    """COGS recompute found no matched settlement rows."""

    code: str = "NO_ELIGIBLE_MATCHED_ROWS"

    def __init__(self, tenant_id: str, import_id: str | None = None):
        self.tenant_id = tenant_id
        self.import_id = import_id
        scope = f"import {import_id}" if import_id else f"tenant {tenant_id}"
        super().__init__(f"No matched settlement rows eligible for COGS in {scope}")
