"""
Re-drive failed webhook events.

Examples:
    python manage.py reprocess_webhooks list --provider stripe
    python manage.py reprocess_webhooks stats
    python manage.py reprocess_webhooks single <uuid>
    python manage.py reprocess_webhooks all --event-type charge.refunded --dry-run
    python manage.py reprocess_webhooks reset <uuid>
"""

from finance.management.commands._reprocess import ReprocessCommand
from finance.services import WebhookReprocessingService


class Command(ReprocessCommand):
    help = "Re-process failed webhook events"
    service = WebhookReprocessingService
    item_label = "webhook event"

    def _add_filter_arguments(self, parser):
        super()._add_filter_arguments(parser)
        parser.add_argument("--provider")
        parser.add_argument("--event-type", dest="event_type")

    def describe(self, item) -> str:
        return (
            f"{item.id}  {item.provider}  {item.event_type}  {item.event_id}  "
            f"attempts={item.attempt_count}  failed_at={item.updated_at.isoformat()}\n"
            f"    {item.last_error}"
        )
