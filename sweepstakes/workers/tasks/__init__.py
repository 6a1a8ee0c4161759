from sweepstakes.workers.tasks.migration_automation import run_migration_automation

__all__ = [
    "run_migration_automation",
]
