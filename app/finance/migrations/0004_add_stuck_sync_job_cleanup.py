"""
Add a celery-beat schedule for releasing stuck accounting sync jobs.

Interval tasks:
    - Clean up stuck sync jobs: every 10 minutes
"""

from django.db import migrations

TASK_NAME = "Clean Up Stuck Sync Jobs"


def create_periodic_task(apps, schema_editor):
    """Create the stuck sync job cleanup task."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule, _ = IntervalSchedule.objects.get_or_create(
        every=10,
        period="minutes",
    )
    PeriodicTask.objects.get_or_create(
        name=TASK_NAME,
        defaults={
            "task": "finance.workers.accounting_sync_worker.cleanup_stuck_sync_jobs",
            "interval": schedule,
            "enabled": True,
            "description": (
                "Moves sync jobs stuck in syncing back to pending, "
                "or to failed when out of attempts."
            ),
        },
    )


def remove_periodic_task(apps, schema_editor):
    """Remove the periodic task on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name=TASK_NAME).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("finance", "0003_add_periodic_tasks"),
    ]

    operations = [
        migrations.RunPython(create_periodic_task, remove_periodic_task),
    ]
