"""
create_app -- FastAPI application factory.

Every collaborator is injected: the session factory, the AccessGuard, the
runtime config, the task registry and the clock.  With
``run_supervisor=True`` the app also owns a JobSupervisor that ticks on a
background thread for the lifetime of the process.
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from sqlalchemy.orm import Session

from ordermgmt_config import get_active_config
from ordermgmt_config.schema import RuntimeConfig
from ordermgmt_kernel.access import AccessGuard
from ordermgmt_kernel.domain.clock import Clock, SystemClock
from ordermgmt_kernel.logging_config import get_logger

from ordermgmt_jobs.orchestrator import default_task_registry
from ordermgmt_jobs.tasks.base import TaskRegistry

from ordermgmt_api.dependencies import ApiState
from ordermgmt_api.errors import install_error_handlers
from ordermgmt_api.routers import jobs, settlement

logger = get_logger("api.app")


def create_app(
    session_factory: Callable[[], Session],
    access_guard: AccessGuard,
    config: RuntimeConfig | None = None,
    task_registry: TaskRegistry | None = None,
    clock: Clock | None = None,
    run_supervisor: bool = False,
) -> FastAPI:
    state = ApiState(
        session_factory=session_factory,
        access_guard=access_guard,
        config=config or get_active_config(),
        task_registry=task_registry if task_registry is not None else default_task_registry(),
        clock=clock or SystemClock(),
    )

    @asynccontextmanager
    async def lifespan(application: FastAPI):
        supervisor = None
        if run_supervisor:
            with session_factory() as session:
                supervisor = state.orchestrator(session).create_supervisor(session_factory)
            supervisor.start()
        logger.info("api_started", extra={"run_supervisor": run_supervisor})
        try:
            yield
        finally:
            if supervisor is not None:
                supervisor.stop()
            logger.info("api_stopped")

    app = FastAPI(title="Order management jobs and settlement", lifespan=lifespan)
    app.state.api = state
    install_error_handlers(app)
    app.include_router(jobs.router)
    app.include_router(settlement.router)
    return app
