"""
AccessGuard -- membership / role lookup contract.

Authentication and membership management live outside this core.  The HTTP
layer asks an injected ``AccessGuard`` to resolve a bearer token to a user
and to confirm the user's role in the tenant named by the request.

``StaticAccessGuard`` is an in-memory implementation for tests, local
tooling and deployments that front the API with their own gateway.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, Protocol, runtime_checkable
from uuid import UUID

from ordermgmt_kernel.exceptions import AccessDeniedError


class MembershipRole(str, Enum):
    """Workspace role, ordered by privilege."""

    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"

    @property
    def rank(self) -> int:
        return _ROLE_RANK[self]

    def satisfies(self, required: MembershipRole) -> bool:
        return self.rank >= required.rank


_ROLE_RANK = {
    MembershipRole.MEMBER: 0,
    MembershipRole.ADMIN: 1,
    MembershipRole.OWNER: 2,
}


@dataclass(frozen=True)
class Principal:
    """Authenticated caller, as seen by one tenant."""

    user_id: UUID
    tenant_id: UUID
    role: MembershipRole


@runtime_checkable
class AccessGuard(Protocol):
    """Resolves a bearer token to a principal with at least ``required`` role."""

    def authorize(
        self, token: str | None, tenant_id: UUID, required: MembershipRole,
    ) -> Principal:
        """Return the principal or raise ``AccessDeniedError``."""
        ...


class StaticAccessGuard:
    """AccessGuard backed by fixed token and membership tables."""

    def __init__(
        self,
        tokens: Mapping[str, UUID],
        memberships: Mapping[tuple[UUID, UUID], MembershipRole],
    ) -> None:
        self._tokens = dict(tokens)
        self._memberships = dict(memberships)

    def authorize(
        self, token: str | None, tenant_id: UUID, required: MembershipRole,
    ) -> Principal:
        if not token or token not in self._tokens:
            raise AccessDeniedError(str(tenant_id), "unknown or missing token")
        user_id = self._tokens[token]
        role = self._memberships.get((tenant_id, user_id))
        if role is None:
            raise AccessDeniedError(str(tenant_id), "not a member of this workspace")
        if not role.satisfies(required):
            raise AccessDeniedError(
                str(tenant_id), f"requires {required.value}, has {role.value}",
            )
        return Principal(user_id=user_id, tenant_id=tenant_id, role=role)
