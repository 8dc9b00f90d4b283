"""Backfill settled state onto the distributed ledger.

Usage:
  python manage.py reconcile_ledger
  python manage.py reconcile_ledger --dry-run
  python manage.py reconcile_ledger --only properties --only payments
"""

import json

from django.core.management.base import BaseCommand, CommandError

from core.errors import LedgerDisabled, InvalidInput
from core.reconciliation import CATEGORIES, build_reconciliation_engine


class Command(BaseCommand):
	help = "Replay approved properties, issued orders and certificates onto the distributed ledger"

	def add_arguments(self, parser):
		parser.add_argument("--dry-run", action="store_true", help="Report what would be submitted without writing anything")
		parser.add_argument(
			"--only", action="append", choices=CATEGORIES, dest="categories",
			help="Restrict the run to a category (repeatable); default is all",
		)
		parser.add_argument("--database", default="default", help="Database alias holding the settlement ledger")
		parser.add_argument("--json", action="store_true", help="Print the summary as JSON")

	def handle(self, *args, **options):
		try:
			engine = build_reconciliation_engine(using=options["database"])
			summary = engine.run(options["categories"], dry_run=options["dry_run"])
		except (LedgerDisabled, InvalidInput) as e:
			raise CommandError(str(e))

		if options["json"]:
			self.stdout.write(json.dumps(summary.to_dict(), indent=2))
			return

		if summary.dry_run:
			self.stdout.write("DRY RUN - nothing was submitted")
		for name, result in summary.results.items():
			line = f"{name}: {result.processed} processed, {result.synced} synced, {result.failed} failed"
			self.stdout.write(self.style.SUCCESS(line) if result.failed == 0 else self.style.WARNING(line))
		self.stdout.write(f"completed in {summary.elapsed_seconds:.2f}s")
