"""
Request-scoped dependencies: DB session, bearer token, tenant access.

The tenant a request acts on travels in its body or query string, so role
checks run through ``TenantAccess.require`` once the tenant id is known.
Listing endpoints use the ``require_role`` dependency on the query string.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterator
from uuid import UUID

from fastapi import Depends, Query, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session, sessionmaker

from ordermgmt_config.schema import RuntimeConfig
from ordermgmt_kernel.access import AccessGuard, MembershipRole, Principal
from ordermgmt_kernel.domain.clock import Clock
from ordermgmt_kernel.logging_config import LogContext

from ordermgmt_jobs.orchestrator import JobOrchestrator
from ordermgmt_jobs.tasks.base import TaskRegistry

_bearer = HTTPBearer(auto_error=False)


@dataclass
class ApiState:
    """Collaborators the app factory puts on ``app.state.api``."""

    session_factory: sessionmaker[Session] | Callable[[], Session]
    access_guard: AccessGuard
    config: RuntimeConfig
    task_registry: TaskRegistry
    clock: Clock

    def orchestrator(self, session: Session) -> JobOrchestrator:
        return JobOrchestrator.from_session(
            session,
            clock=self.clock,
            config=self.config,
            task_registry=self.task_registry,
        )


def get_state(request: Request) -> ApiState:
    return request.app.state.api


def get_db(state: ApiState = Depends(get_state)) -> Iterator[Session]:
    """One session per request.  Endpoints commit; anything left is rolled back."""
    session = state.session_factory()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


def bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
) -> str | None:
    return credentials.credentials if credentials is not None else None


class TenantAccess:
    """Authorizes the caller against a tenant named by the request."""

    def __init__(self, guard: AccessGuard, token: str | None):
        self._guard = guard
        self._token = token

    def require(self, tenant_id: UUID, role: MembershipRole) -> Principal:
        principal = self._guard.authorize(self._token, tenant_id, role)
        LogContext.set(tenant_id=tenant_id, actor_id=principal.user_id)
        return principal


def get_access(
    state: ApiState = Depends(get_state),
    token: str | None = Depends(bearer_token),
) -> TenantAccess:
    return TenantAccess(state.access_guard, token)


def require_role(role: MembershipRole):
    def _dep(
        tenant_id: UUID = Query(...),
        access: TenantAccess = Depends(get_access),
    ) -> Principal:
        return access.require(tenant_id, role)

    return _dep


member_access = require_role(MembershipRole.MEMBER)
