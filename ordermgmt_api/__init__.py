"""
ordermgmt_api -- HTTP surface over the job system and settlement services.

Thin layer: authorize through the injected AccessGuard, call one service in
one session, commit, and map typed errors to status codes.
"""

from ordermgmt_api.app import create_app

__all__ = ["create_app"]
