"""
Seed the Account table from the chart of accounts.

Accounts are never renamed or deleted once entries reference them, so the
reverse operation only removes accounts that have no entries.
"""

from django.db import migrations

from finance.ledger.chart import DEFAULT_CHART


def seed_accounts(apps, schema_editor):
    Account = apps.get_model("finance", "Account")

    for spec in DEFAULT_CHART:
        Account.objects.get_or_create(
            name=str(spec.name),
            defaults={"kind": str(spec.kind), "description": spec.description},
        )


def remove_unused_accounts(apps, schema_editor):
    Account = apps.get_model("finance", "Account")

    Account.objects.filter(
        name__in=[str(spec.name) for spec in DEFAULT_CHART],
        entries__isnull=True,
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("finance", "0001_initial"),
    ]

    operations = [
        migrations.RunPython(seed_accounts, remove_unused_accounts),
    ]
