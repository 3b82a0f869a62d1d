"""
ORM registry (``ordermgmt_jobs._orm_registry``).

Ensures every SQLAlchemy model is imported so that ``Base.metadata``
contains all table definitions before ``create_tables()`` runs.  Lives in
the outermost domain package because it is the only one allowed to import
from all the others; the kernel reaches it lazily.
"""


def import_all_orm_models() -> None:
    """Import kernel, settlement and job models.  Idempotent."""
    import ordermgmt_kernel.models  # noqa: F401
    import ordermgmt_settlement.models  # noqa: F401
    import ordermgmt_jobs.models  # noqa: F401
