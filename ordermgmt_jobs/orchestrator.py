"""
JobOrchestrator -- DI container for the job system.

Contract:
    Wires the TaskRegistry with the built-in tasks and creates the control
    service, runners and the supervisor.  Single place where job
    dependencies are composed.

Architecture: ordermgmt_jobs (top-level).  The HTTP layer and any CLI go
    through this to reach the job system.

Invariants:
    - Every service receives the same Clock and RuntimeConfig.
    - Runners built for the supervisor commit after each checkpoint.
"""

from __future__ import annotations

from typing import Callable

from sqlalchemy.orm import Session

from ordermgmt_config.schema import RuntimeConfig
from ordermgmt_kernel.domain.clock import Clock, SystemClock
from ordermgmt_kernel.logging_config import get_logger

from ordermgmt_jobs.services.control import JobControlService
from ordermgmt_jobs.services.runner import JobRunner
from ordermgmt_jobs.services.supervisor import JobSupervisor
from ordermgmt_jobs.tasks.base import TaskRegistry
from ordermgmt_jobs.tasks.inventory_tasks import BulkDeleteSkusTask, StockResetTask
from ordermgmt_jobs.tasks.notification_tasks import NotificationExportTask, NotificationSender
from ordermgmt_jobs.tasks.settlement_tasks import SettlementImportTask
from ordermgmt_jobs.tasks.workspace_tasks import BackupTask, CloneTask, RestoreTask

logger = get_logger("jobs.orchestrator")


def default_task_registry(sender: NotificationSender | None = None) -> TaskRegistry:
    """Create a TaskRegistry pre-loaded with every built-in job type."""
    registry = TaskRegistry()
    registry.register(BulkDeleteSkusTask())
    registry.register(StockResetTask())
    registry.register(SettlementImportTask())
    registry.register(BackupTask())
    registry.register(RestoreTask())
    registry.register(CloneTask())
    registry.register(NotificationExportTask(sender))
    return registry


class JobOrchestrator:
    """DI container for the job system.

    Contract:
        - ``from_session()`` creates a fully wired orchestrator.
        - ``create_control_service()`` for admission and control verbs.
        - ``create_runner()`` for ad-hoc runs.
        - ``create_supervisor()`` for the background loop.

    Non-goals:
        - Does NOT start the supervisor -- caller decides.
        - Does NOT commit -- caller controls the session.
    """

    def __init__(
        self,
        session: Session,
        task_registry: TaskRegistry,
        clock: Clock | None = None,
        config: RuntimeConfig | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> None:
        self._session = session
        self._task_registry = task_registry
        self._clock = clock or SystemClock()
        self._config = config or RuntimeConfig()
        self._sleep = sleep

    @classmethod
    def from_session(
        cls,
        session: Session,
        clock: Clock | None = None,
        config: RuntimeConfig | None = None,
        task_registry: TaskRegistry | None = None,
        sender: NotificationSender | None = None,
        sleep: Callable[[float], None] | None = None,
    ) -> JobOrchestrator:
        """Create a fully wired JobOrchestrator.

        Args:
            session: SQLAlchemy session for request-scoped services.
            clock: Optional clock for deterministic testing.
            config: Optional runtime policy; defaults to the dataclass defaults.
            task_registry: Optional pre-configured registry.  If None, the
                built-in tasks are registered.
            sender: Notification sender for the default registry.
            sleep: Optional sleeper for runners (tests pass a no-op).
        """
        registry = (
            task_registry if task_registry is not None else default_task_registry(sender)
        )
        return cls(
            session=session,
            task_registry=registry,
            clock=clock or SystemClock(),
            config=config,
            sleep=sleep,
        )

    # -------------------------------------------------------------------------
    # Services
    # -------------------------------------------------------------------------

    def create_control_service(self, session: Session | None = None) -> JobControlService:
        return JobControlService(
            session=session or self._session,
            task_registry=self._task_registry,
            clock=self._clock,
            config=self._config,
        )

    def create_runner(
        self,
        session: Session | None = None,
        on_checkpoint: Callable[[], None] | None = None,
    ) -> JobRunner:
        return JobRunner(
            session=session or self._session,
            task_registry=self._task_registry,
            clock=self._clock,
            config=self._config,
            on_checkpoint=on_checkpoint,
            sleep=self._sleep,
        )

    def create_supervisor(
        self,
        session_factory: Callable[[], Session],
        tick_interval_seconds: float | None = None,
    ) -> JobSupervisor:
        """Create a JobSupervisor whose runners commit after each batch.

        Args:
            session_factory: Callable returning a new session per tick.
            tick_interval_seconds: Polling interval; defaults to
                ``supervisor_tick_seconds`` from the config.
        """

        def runner_factory(session: Session) -> JobRunner:
            return self.create_runner(session=session, on_checkpoint=session.commit)

        return JobSupervisor(
            session_factory=session_factory,
            runner_factory=runner_factory,
            clock=self._clock,
            config=self._config,
            tick_interval_seconds=tick_interval_seconds,
        )

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session(self) -> Session:
        return self._session

    @property
    def task_registry(self) -> TaskRegistry:
        return self._task_registry

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> RuntimeConfig:
        return self._config
