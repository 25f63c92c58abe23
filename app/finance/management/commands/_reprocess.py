"""
Shared base for the reprocess_* management commands.

Subcommands:
    list    [--provider P] [--event-type T] [--entity-type E] [--since ISO] [--limit N]
    stats
    single  ID
    all     [filters] [--limit N] [--dry-run]
    reset   ID
"""

from __future__ import annotations

import json

from django.core.management.base import BaseCommand, CommandError
from django.utils.dateparse import parse_datetime

from core.exceptions import BaseApplicationError

from finance.services.reprocessing_service import (
    DEFAULT_LIST_LIMIT,
    DEFAULT_RETRY_LIMIT,
    FailedItemFilter,
)


class ReprocessCommand(BaseCommand):
    service = None
    item_label = "item"

    def add_arguments(self, parser):
        sub = parser.add_subparsers(dest="subcommand", required=True)

        list_parser = sub.add_parser("list", help=f"List failed {self.item_label}s")
        self._add_filter_arguments(list_parser)
        list_parser.add_argument("--limit", type=int, default=DEFAULT_LIST_LIMIT)

        sub.add_parser("stats", help="Show failure counts")

        single = sub.add_parser("single", help=f"Reset and process one failed {self.item_label}")
        single.add_argument("item_id")

        all_parser = sub.add_parser("all", help=f"Re-drive failed {self.item_label}s in bulk")
        self._add_filter_arguments(all_parser)
        all_parser.add_argument("--limit", type=int, default=DEFAULT_RETRY_LIMIT)
        all_parser.add_argument("--dry-run", action="store_true")

        reset = sub.add_parser("reset", help=f"Reset one failed {self.item_label} to pending")
        reset.add_argument("item_id")

    def _add_filter_arguments(self, parser):
        parser.add_argument("--since", help="ISO-8601 datetime")

    def build_filter(self, options) -> FailedItemFilter:
        since = None
        if options.get("since"):
            since = parse_datetime(options["since"])
            if since is None:
                raise CommandError(f"Invalid --since value: {options['since']}")
        return FailedItemFilter(
            provider=options.get("provider"),
            event_type=options.get("event_type"),
            entity_type=options.get("entity_type"),
            since=since,
        )

    def handle(self, *args, **options):
        handler = getattr(self, f"handle_{options['subcommand']}")
        try:
            handler(options)
        except BaseApplicationError as e:
            raise CommandError(e.message) from e

    def describe(self, item) -> str:
        raise NotImplementedError

    def handle_list(self, options):
        items = self.service.list_failed(self.build_filter(options), limit=options["limit"])
        if not items:
            self.stdout.write(f"No failed {self.item_label}s found.")
            return
        self.stdout.write(f"Found {len(items)} failed {self.item_label}s:")
        for item in items:
            self.stdout.write(self.describe(item))

    def handle_stats(self, options):
        self.stdout.write(json.dumps(self.service.stats(), indent=2, sort_keys=True))

    def handle_single(self, options):
        result = self.service.retry_one(options["item_id"])
        if result.success:
            self.stdout.write(self.style.SUCCESS(f"Re-processed {result.id}: {result.status}"))
        else:
            self.stdout.write(self.style.ERROR(f"Re-processing {result.id} failed: {result.error}"))

    def handle_all(self, options):
        summary = self.service.retry_all(
            self.build_filter(options),
            limit=options["limit"],
            dry_run=options["dry_run"],
        )
        if summary.dry_run:
            self.stdout.write(f"Dry run: {summary.found} {self.item_label}s would be retried")
            for result in summary.results:
                self.stdout.write(f"  {result.id}")
            return

        self.stdout.write(
            f"Found {summary.found}, succeeded {summary.succeeded}, failed {summary.failed}"
        )
        for result in summary.results:
            if not result.success:
                self.stdout.write(self.style.ERROR(f"  {result.id} [{result.status}] {result.error}"))

    def handle_reset(self, options):
        item = self.service.reset_to_pending(options["item_id"])
        self.stdout.write(self.style.SUCCESS(f"Reset {item.id} to pending"))
