"""
Add celery-beat schedules for the finance background jobs.

Interval tasks:
    - Retry failed webhooks: every 5 minutes
    - Clean up stuck webhooks: every 10 minutes
    - Process accounting sync jobs: every minute

Crontab tasks:
    - Clean up old webhooks: daily at 04:00
    - Enqueue unsynced records: daily at 02:00
    - Ledger balance check: daily at 03:00
"""

from django.db import migrations

INTERVAL_TASKS = [
    {
        "name": "Retry Failed Webhooks",
        "task": "finance.tasks.retry_failed_webhooks",
        "every": 5,
        "description": "Resets failed webhook events with attempts left and queues them.",
    },
    {
        "name": "Clean Up Stuck Webhooks",
        "task": "finance.tasks.cleanup_stuck_webhooks",
        "every": 10,
        "description": "Fails webhook events stuck in processing so the retry sweep picks them up.",
    },
    {
        "name": "Process Accounting Sync Jobs",
        "task": "finance.workers.accounting_sync_worker.process_accounting_sync_jobs",
        "every": 1,
        "description": "Queues due accounting sync jobs.",
    },
]

CRONTAB_TASKS = [
    {
        "name": "Clean Up Old Webhooks",
        "task": "finance.tasks.cleanup_old_webhooks",
        "hour": "4",
        "description": "Deletes succeeded webhook events past the retention window.",
    },
    {
        "name": "Enqueue Unsynced Records",
        "task": "finance.workers.accounting_sync_worker.enqueue_unsynced_records",
        "hour": "2",
        "description": "Creates accounting sync jobs for settled records that have none.",
    },
    {
        "name": "Ledger Balance Check",
        "task": "finance.workers.reconciliation_worker.run_ledger_balance_check",
        "hour": "3",
        "description": "Verifies the ledger balances and records discrepancies.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for finance background jobs."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in INTERVAL_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )

    for entry in CRONTAB_TASKS:
        schedule, _ = CrontabSchedule.objects.get_or_create(
            minute="0",
            hour=entry["hour"],
            day_of_week="*",
            day_of_month="*",
            month_of_year="*",
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "crontab": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry["name"] for entry in INTERVAL_TASKS + CRONTAB_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("finance", "0002_seed_chart_of_accounts"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
