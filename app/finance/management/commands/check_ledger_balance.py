"""
Run the ledger integrity check and print its findings.

Exits non-zero when discrepancies are found, so it can gate deploy
scripts and cron jobs.

Examples:
    python manage.py check_ledger_balance
"""

from django.core.management.base import BaseCommand, CommandError

from finance.services import LedgerReconciliationService


class Command(BaseCommand):
    help = "Verify that the ledger balances and report discrepancies"

    def handle(self, *args, **options):
        run = LedgerReconciliationService.run()

        self.stdout.write(
            f"Checked {run.transactions_checked} transactions, "
            f"{run.entries_checked} entries, {run.payments_checked} payments "
            f"(ledger total {run.ledger_total_cents} cents)"
        )

        if run.is_clean:
            self.stdout.write(self.style.SUCCESS("Ledger is balanced"))
            return

        for discrepancy in run.discrepancies.all():
            self.stdout.write(
                self.style.ERROR(
                    f"  {discrepancy.discrepancy_type}  "
                    f"{discrepancy.entity_type}:{discrepancy.entity_id}  "
                    f"{discrepancy.amount_cents}"
                )
            )
        raise CommandError(f"{run.discrepancies_found} discrepancies found")
