"""
rental_batch -- the daily rent batch.

Recomputes interest and penalties on due rent obligations, raises tenant
notifications, purges old housekeeping rows and leaves an audit trail of
every step.  ``BatchRunCoordinator.from_session()`` is the entry point;
``rental-batch`` (``rental_batch.cli``) wraps it for schedulers.

Architecture:
    rental_batch/ is a top-level package.  Nothing in rental_kernel/ or
    rental_engines/ imports from rental_batch.

Invariants:
    - Each obligation is processed inside its own SAVEPOINT; one failure
      never aborts the others.
    - Overdue is sticky: the batch never moves an obligation back to
      pending.
    - Audit entries are append-only; only the retention purge removes
      them.
    - A completed run for a date is not repeated unless forced.
"""
