"""
import_jobs -- Resumable, rate-limit-aware batch import engine.

Pulls a list of candidate identities from an external, quota-limited
service and imports them one bounded batch at a time.  Progress lives in
a durable job record (one per job id) so any process can pick a job up
where the last one stopped, and the rate-limit gate pauses a job before
the external quota runs out instead of after.

Architecture:
    import_jobs/ is a top-level package built on import_kernel (db,
    clock, logging, exceptions).  Nothing in import_kernel imports from
    import_jobs except ``create_tables``, which registers its models.

    domain/    pure types, rate-limit gate, progress projection
    models/    SQLAlchemy models (job record + candidate pages)
    services/  job store, activity log, batch driver, runner
    sources/   fetcher/processor protocols, registry, GitHub adapters
"""
