"""
ordermgmt_jobs -- Persisted, resumable background jobs.

A Job Record describes one long-running unit of work: its state, counters,
checkpoint and error log.  The runner executes it in bounded batches with a
SAVEPOINT per item; the supervisor promotes queued jobs one per
(tenant, resource), drives runnable ones and sweeps stuck ones; control
verbs only write intent the runner observes at the next batch boundary.

Architecture:
    ordermgmt_jobs/ is a top-level package.  Nothing in kernel/, config/,
    engines/ or settlement/ imports from it (create_tables reaches the
    model registry lazily); the job tasks import them.

Invariants:
    - Suspension only at batch boundaries.
    - One occupying job per (tenant, resource).
    - Only the runner writes counters and checkpoints.
    - All timestamps from the injected Clock.
"""
