from sweepstakes.db.repo.entries_repo import EntriesRepo
from sweepstakes.db.repo.migration_automation_repo import MigrationAutomationRepo
from sweepstakes.db.repo.migration_subscribers_repo import MigrationSubscribersRepo
from sweepstakes.db.repo.operation_logs_repo import OperationLogsRepo
from sweepstakes.db.repo.referral_conversions_repo import ReferralConversionsRepo

__all__ = [
    "EntriesRepo",
    "MigrationAutomationRepo",
    "MigrationSubscribersRepo",
    "OperationLogsRepo",
    "ReferralConversionsRepo",
]
