import uuid

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.db import migrations, models

import finance.models.accounting_sync
import finance.models.payment


def id_field():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier for this record",
            primary_key=True,
            serialize=False,
        ),
    )


def timestamp_fields():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


def sync_fields():
    return [
        (
            "sync_status",
            django_fsm.FSMField(
                choices=[
                    ("pending", "Pending"),
                    ("syncing", "Syncing"),
                    ("synced", "Synced"),
                    ("failed", "Failed"),
                ],
                db_index=True,
                default="pending",
                help_text="Accounting sync status (managed by FSM)",
                max_length=50,
            ),
        ),
        (
            "external_accounting_id",
            models.CharField(
                blank=True,
                help_text="Id assigned by the accounting system once synced",
                max_length=64,
                null=True,
            ),
        ),
        ("sync_last_attempt_at", models.DateTimeField(blank=True, null=True)),
        ("synced_at", models.DateTimeField(blank=True, null=True)),
        ("sync_error", models.TextField(blank=True, default="")),
    ]


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Account",
            fields=[
                id_field(),
                *timestamp_fields(),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("asset", "Asset"),
                            ("liability", "Liability"),
                            ("revenue", "Revenue"),
                            ("expense", "Expense"),
                            ("equity", "Equity"),
                        ],
                        help_text="Account classification",
                        max_length=20,
                    ),
                ),
                (
                    "name",
                    models.CharField(
                        help_text="Chart name of this account (e.g., 'cash')",
                        max_length=64,
                        unique=True,
                    ),
                ),
                ("description", models.CharField(blank=True, default="", max_length=255)),
            ],
            options={
                "ordering": ["kind", "name"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("kind", "name"), name="unique_account_kind_name"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerReconciliationRun",
            fields=[
                id_field(),
                *timestamp_fields(),
                ("started_at", models.DateTimeField()),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("transactions_checked", models.PositiveIntegerField(default=0)),
                ("entries_checked", models.PositiveIntegerField(default=0)),
                ("payments_checked", models.PositiveIntegerField(default=0)),
                ("ledger_total_cents", models.BigIntegerField(default=0)),
                ("discrepancies_found", models.PositiveIntegerField(default=0)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("running", "Running"),
                            ("completed", "Completed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="running",
                        max_length=20,
                    ),
                ),
                ("error_message", models.TextField(blank=True)),
            ],
            options={
                "ordering": ["-started_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "started_at"], name="ledger_run_status_started_idx"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                id_field(),
                *timestamp_fields(),
                ("provider", models.CharField(default="stripe", max_length=32)),
                ("event_id", models.CharField(max_length=255)),
                ("event_type", models.CharField(db_index=True, max_length=100)),
                ("payload", models.JSONField(default=dict)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("attempt_count", models.PositiveSmallIntegerField(default=0)),
                ("last_error", models.TextField(blank=True, default="")),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "updated_at"], name="webhook_status_updated_idx"
                    ),
                    models.Index(
                        fields=["event_type", "created_at"], name="webhook_type_created_idx"
                    ),
                    models.Index(
                        fields=["status", "attempt_count"], name="webhook_status_attempts_idx"
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("provider", "event_id"),
                        name="unique_webhook_event_per_provider",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="AccountingSyncJob",
            fields=[
                id_field(),
                *timestamp_fields(),
                (
                    "entity_type",
                    models.CharField(
                        choices=[
                            ("payment", "Payment"),
                            ("refund", "Refund"),
                            ("payout", "Payout"),
                            ("expense_report", "Expense Report"),
                        ],
                        max_length=32,
                    ),
                ),
                ("entity_id", models.UUIDField()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("syncing", "Syncing"),
                            ("synced", "Synced"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("attempt_count", models.PositiveIntegerField(default=0)),
                (
                    "max_attempts",
                    models.PositiveIntegerField(
                        default=finance.models.accounting_sync._default_max_attempts
                    ),
                ),
                (
                    "next_attempt_at",
                    models.DateTimeField(db_index=True, default=django.utils.timezone.now),
                ),
                ("last_attempt_at", models.DateTimeField(blank=True, null=True)),
                ("last_error", models.TextField(blank=True, default="")),
                ("idempotency_key", models.UUIDField(unique=True)),
                ("external_id", models.CharField(blank=True, max_length=64, null=True)),
                ("synced_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Accounting Sync Job",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "next_attempt_at"], name="sync_job_status_due_idx"
                    ),
                    models.Index(
                        fields=["status", "updated_at"], name="sync_job_status_updated_idx"
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("entity_type", "entity_id"), name="unique_sync_job_per_entity"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="ExpenseReport",
            fields=[
                id_field(),
                *sync_fields(),
                *timestamp_fields(),
                ("user_id", models.UUIDField(db_index=True)),
                ("purpose", models.CharField(max_length=255)),
                ("total_amount_cents", models.PositiveBigIntegerField()),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("draft", "Draft"),
                            ("submitted", "Submitted"),
                            ("approved", "Approved"),
                            ("rejected", "Rejected"),
                            ("paid", "Paid"),
                        ],
                        db_index=True,
                        default="draft",
                        max_length=50,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="Payment",
            fields=[
                id_field(),
                *sync_fields(),
                *timestamp_fields(),
                (
                    "reference_id",
                    models.CharField(
                        default=finance.models.payment.generate_payment_reference,
                        editable=False,
                        max_length=32,
                        unique=True,
                    ),
                ),
                ("external_provider", models.CharField(default="stripe", max_length=32)),
                (
                    "external_payment_id",
                    models.CharField(
                        help_text=(
                            "Processor payment id (e.g., pi_xxx); unique to reject "
                            "double-recording"
                        ),
                        max_length=255,
                        unique=True,
                    ),
                ),
                ("amount_cents", models.PositiveBigIntegerField()),
                ("processor_fee_cents", models.PositiveBigIntegerField(default=0)),
                ("currency", models.CharField(default="usd", max_length=3)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("succeeded", "Succeeded"),
                            ("partially_refunded", "Partially Refunded"),
                            ("refunded", "Refunded"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                    ),
                ),
                ("user_id", models.UUIDField(blank=True, db_index=True, null=True)),
                ("entity_type", models.CharField(blank=True, default="", max_length=32)),
                ("entity_id", models.CharField(blank=True, default="", max_length=255)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("payment_date", models.DateTimeField()),
            ],
            options={
                "ordering": ["-payment_date"],
                "indexes": [
                    models.Index(
                        fields=["status", "payment_date"], name="payment_status_date_idx"
                    ),
                    models.Index(
                        fields=["entity_type", "entity_id"], name="payment_entity_idx"
                    ),
                    models.Index(
                        fields=["sync_status", "created_at"], name="payment_sync_status_idx"
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents__gt", 0)),
                        name="payment_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerTransaction",
            fields=[
                id_field(),
                *timestamp_fields(),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("payment", "Payment"),
                            ("refund", "Refund"),
                            ("fee", "Fee"),
                            ("adjustment", "Adjustment"),
                        ],
                        db_index=True,
                        max_length=20,
                    ),
                ),
                (
                    "total_amount_cents",
                    models.BigIntegerField(
                        help_text="Sum of the debit side of this transaction, in cents"
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[("pending", "Pending"), ("posted", "Posted")],
                        db_index=True,
                        default="pending",
                        max_length=50,
                    ),
                ),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("posted_at", models.DateTimeField(blank=True, null=True)),
                (
                    "payment",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transactions",
                        to="finance.payment",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["payment", "kind"], name="ledger_txn_payment_kind_idx"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerEntry",
            fields=[
                id_field(),
                *timestamp_fields(),
                (
                    "amount_cents",
                    models.BigIntegerField(
                        help_text="Signed amount in cents: positive = debit, negative = credit"
                    ),
                ),
                (
                    "related_entity_type",
                    models.CharField(blank=True, default="", max_length=50),
                ),
                (
                    "related_entity_id",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="entries",
                        to="finance.account",
                    ),
                ),
                (
                    "payment",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="ledger_entries",
                        to="finance.payment",
                    ),
                ),
                (
                    "transaction",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="entries",
                        to="finance.ledgertransaction",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "Ledger entries",
                "ordering": ["created_at"],
                "indexes": [
                    models.Index(
                        fields=["account", "created_at"], name="ledger_entry_account_idx"
                    ),
                    models.Index(
                        fields=["related_entity_type", "related_entity_id"],
                        name="ledger_entry_related_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents", 0), _negated=True),
                        name="ledger_entry_amount_nonzero",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Refund",
            fields=[
                id_field(),
                *sync_fields(),
                *timestamp_fields(),
                ("amount_cents", models.PositiveBigIntegerField()),
                ("reason", models.CharField(blank=True, default="", max_length=255)),
                ("external_refund_id", models.CharField(max_length=255, unique=True)),
                (
                    "payment",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refunds",
                        to="finance.payment",
                    ),
                ),
                (
                    "transaction",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="refund",
                        to="finance.ledgertransaction",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["sync_status", "created_at"], name="refund_sync_status_idx"
                    )
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_cents__gt", 0)),
                        name="refund_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="Payout",
            fields=[
                id_field(),
                *sync_fields(),
                *timestamp_fields(),
                ("external_payout_id", models.CharField(max_length=255, unique=True)),
                ("amount_cents", models.BigIntegerField()),
                ("currency", models.CharField(default="usd", max_length=3)),
                ("fee_total_cents", models.BigIntegerField(blank=True, null=True)),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending", "Pending"),
                            ("in_transit", "In Transit"),
                            ("paid", "Paid"),
                            ("failed", "Failed"),
                            ("canceled", "Canceled"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=50,
                    ),
                ),
                ("arrival_date", models.DateTimeField(blank=True, null=True)),
                ("description", models.CharField(blank=True, default="", max_length=255)),
                ("unresolved_count", models.PositiveIntegerField(default=0)),
                ("last_reconciled_at", models.DateTimeField(blank=True, null=True)),
                (
                    "payments",
                    models.ManyToManyField(
                        blank=True, related_name="payouts", to="finance.payment"
                    ),
                ),
                (
                    "refunds",
                    models.ManyToManyField(
                        blank=True, related_name="payouts", to="finance.refund"
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "arrival_date"], name="payout_status_arrival_idx"
                    ),
                    models.Index(
                        fields=["sync_status", "created_at"], name="payout_sync_status_idx"
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="LedgerDiscrepancy",
            fields=[
                id_field(),
                *timestamp_fields(),
                (
                    "discrepancy_type",
                    models.CharField(
                        choices=[
                            ("ledger_imbalance", "Ledger does not net to zero"),
                            ("transaction_imbalance", "Transaction does not net to zero"),
                            (
                                "payment_without_transaction",
                                "Succeeded payment has no payment transaction",
                            ),
                            ("refund_over_payment", "Refunds exceed payment amount"),
                        ],
                        db_index=True,
                        max_length=50,
                    ),
                ),
                ("entity_type", models.CharField(max_length=50)),
                ("entity_id", models.CharField(blank=True, max_length=64)),
                ("amount_cents", models.BigIntegerField(blank=True, null=True)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("reviewed", models.BooleanField(db_index=True, default=False)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
                ("review_notes", models.TextField(blank=True)),
                (
                    "run",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discrepancies",
                        to="finance.ledgerreconciliationrun",
                    ),
                ),
            ],
            options={
                "verbose_name_plural": "Ledger discrepancies",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["entity_type", "entity_id"], name="discrepancy_entity_idx"
                    ),
                    models.Index(
                        fields=["run", "discrepancy_type"], name="discrepancy_run_type_idx"
                    ),
                ],
            },
        ),
    ]
