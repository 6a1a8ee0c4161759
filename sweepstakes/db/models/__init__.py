from sweepstakes.db.models.entries import Entry
from sweepstakes.db.models.migration_automation import MigrationAutomation
from sweepstakes.db.models.migration_subscribers import MigrationSubscriber
from sweepstakes.db.models.operation_logs import OperationLog
from sweepstakes.db.models.referral_conversions import ReferralConversion

__all__ = [
    "Entry",
    "MigrationAutomation",
    "MigrationSubscriber",
    "OperationLog",
    "ReferralConversion",
]
