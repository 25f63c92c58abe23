"""
Re-drive failed accounting sync jobs.

Examples:
    python manage.py reprocess_sync_jobs list --entity-type payout
    python manage.py reprocess_sync_jobs all --limit 10
"""

from finance.management.commands._reprocess import ReprocessCommand
from finance.services import SyncJobReprocessingService
from finance.state_machines import SyncEntityType


class Command(ReprocessCommand):
    help = "Re-process failed accounting sync jobs"
    service = SyncJobReprocessingService
    item_label = "sync job"

    def _add_filter_arguments(self, parser):
        super()._add_filter_arguments(parser)
        parser.add_argument("--entity-type", dest="entity_type", choices=SyncEntityType.values)

    def describe(self, item) -> str:
        return (
            f"{item.id}  {item.entity_type}:{item.entity_id}  "
            f"attempts={item.attempt_count}/{item.max_attempts}  "
            f"failed_at={item.updated_at.isoformat()}\n"
            f"    {item.last_error}"
        )
