"""Parameter coercion shared by the task modules."""

from __future__ import annotations

from typing import Any
from uuid import UUID

from ordermgmt_kernel.exceptions import InvalidRequestError


def require_uuid(parameters: dict[str, Any], name: str) -> UUID:
    value = parameters.get(name)
    if value in (None, ""):
        raise InvalidRequestError(f"Missing required parameter '{name}'", field=name)
    return coerce_uuid(value, name)


def coerce_uuid(value: Any, name: str) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise InvalidRequestError(f"Parameter '{name}' is not a valid id: {value!r}", field=name) from None


def optional_uuid_list(parameters: dict[str, Any], name: str) -> list[str] | None:
    """Validate an optional list of ids; returns them as strings (JSON-safe)."""
    value = parameters.get(name)
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        raise InvalidRequestError(f"Parameter '{name}' must be a list", field=name)
    return [str(coerce_uuid(item, name)) for item in value]


def require_text(parameters: dict[str, Any], name: str) -> str:
    value = parameters.get(name)
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequestError(f"Missing required parameter '{name}'", field=name)
    return value.strip()
