"""
ordermgmt_config -- single public entrypoint for runtime policy.

``get_active_config()`` returns the process-wide ``RuntimeConfig``: the
packaged defaults overlaid with the YAML file named by the
``ORDERMGMT_CONFIG`` environment variable, if set.  Services receive the
config (or one of its policy sections) by injection; none of them read files
or environment variables themselves.
"""

from __future__ import annotations

import os
import threading

from ordermgmt_config.loader import config_checksum, load_config
from ordermgmt_config.schema import JobPolicy, RuntimeConfig, SettlementPolicy
from ordermgmt_kernel.logging_config import get_logger

__all__ = [
    "JobPolicy",
    "RuntimeConfig",
    "SettlementPolicy",
    "config_checksum",
    "get_active_config",
    "load_config",
    "reset_active_config",
]

CONFIG_ENV_VAR = "ORDERMGMT_CONFIG"

_logger = get_logger("config")
_active: RuntimeConfig | None = None
_lock = threading.Lock()


def get_active_config() -> RuntimeConfig:
    """Return (and cache) the effective runtime configuration."""
    global _active
    with _lock:
        if _active is None:
            path = os.environ.get(CONFIG_ENV_VAR) or None
            _active = load_config(path)
            _logger.info(
                "config_loaded",
                extra={"source": path or "defaults", "checksum": _active.checksum},
            )
        return _active


def reset_active_config() -> None:
    """Drop the cached configuration. FOR TESTING ONLY."""
    global _active
    with _lock:
        _active = None
