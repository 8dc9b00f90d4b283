import json
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from core.models import OnChainEvent, ReconciliationRun

pytestmark = pytest.mark.django_db


@pytest.fixture
def stub_ledger(settings):
	settings.LEDGER = {"ENABLED": True, "BACKEND": "stub", "CONTRACT": "estathub"}


def run_command(*args):
	out = StringIO()
	call_command("reconcile_ledger", *args, stdout=out)
	return out.getvalue()


def test_dry_run_output(stub_ledger, approved_property):
	output = run_command("--dry-run")

	assert "DRY RUN - nothing was submitted" in output
	assert "properties: 1 processed, 1 synced, 0 failed" in output
	assert "payments: 0 processed, 0 synced, 0 failed" in output
	assert "completed in" in output
	assert not OnChainEvent.objects.exists()
	assert not ReconciliationRun.objects.exists()


def test_run_selected_category(stub_ledger, approved_property):
	output = run_command("--only", "properties")

	assert "properties: 1 processed, 1 synced, 0 failed" in output
	assert "payments" not in output
	approved_property.refresh_from_db()
	assert approved_property.ledger_tx_id
	assert ReconciliationRun.objects.get().categories == ["properties"]


def test_json_summary(stub_ledger, approved_property):
	summary = json.loads(run_command("--json", "--dry-run"))
	assert summary["dry_run"] is True
	assert summary["ok"] is True
	assert summary["results"]["properties"]["processed"] == 1


def test_disabled_ledger(settings):
	settings.LEDGER = {"ENABLED": False}
	with pytest.raises(CommandError, match="ledger_disabled"):
		run_command()


def test_unknown_backend(settings):
	settings.LEDGER = {"ENABLED": True, "BACKEND": "smoke-signals"}
	with pytest.raises(CommandError, match="unknown_ledger_backend"):
		run_command()
