"""
Order-management kernel.

Shared infrastructure for the job engine and the settlement pipeline:
- Declarative base, UUID keys, UTC timestamps, tenant scoping
- Engine / session factory and transactional scope
- Injectable clock
- Structured JSON logging
- Typed exception hierarchy
- Tenant-scoped repositories (Entity Store) and the AccessGuard contract
"""

__version__ = "0.1.0"
