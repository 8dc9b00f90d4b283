"""Settlement calls racing from separate threads, each on its own database connection."""

import threading
from decimal import Decimal

import pytest
from django.db import connections

from core.errors import InsufficientFunds, InsufficientSupply
from core.models import Certificate, Holding, Order, OrderStatus, Transaction, TransactionType, Wallet
from core.services import SettlementEngine
from core.store import LedgerStore

pytestmark = pytest.mark.django_db(transaction=True)


def race(*calls):
	"""
	Start every call at the same moment; returns one outcome per call:
	"ok", or the exception it raised.
	"""
	barrier = threading.Barrier(len(calls))
	outcomes = [None] * len(calls)

	def worker(i, call):
		try:
			barrier.wait()
			call(SettlementEngine(LedgerStore()))
			outcomes[i] = "ok"
		except Exception as e:
			outcomes[i] = e
		finally:
			connections.close_all()

	threads = [threading.Thread(target=worker, args=(i, call)) for i, call in enumerate(calls)]
	for t in threads:
		t.start()
	for t in threads:
		t.join(timeout=60)
	return outcomes


def test_racing_confirmations_do_not_oversell(engine, investor, second_investor, approved_property, check_supply):
	first = engine.create_order(investor.pk, approved_property.pk, 60)
	second = engine.create_order(second_investor.pk, approved_property.pk, 60)

	outcomes = race(
		lambda e: e.confirm_payment(first["id"]),
		lambda e: e.confirm_payment(second["id"]),
	)

	assert outcomes.count("ok") == 1
	losers = [o for o in outcomes if o != "ok"]
	assert len(losers) == 1 and isinstance(losers[0], InsufficientSupply)

	approved_property.refresh_from_db()
	assert approved_property.remaining_tokens == 40
	assert sum(h.tokens for h in Holding.objects.filter(property=approved_property)) == 60
	assert Certificate.objects.count() == 1
	assert Order.objects.filter(status=OrderStatus.ISSUED).count() == 1
	check_supply(approved_property)


def test_racing_confirmations_of_one_order_issue_once(engine, investor, approved_property, check_supply):
	order = engine.create_order(investor.pk, approved_property.pk, 30)

	outcomes = race(
		lambda e: e.confirm_payment(order["id"]),
		lambda e: e.confirm_payment(order["id"]),
	)

	assert outcomes == ["ok", "ok"]
	approved_property.refresh_from_db()
	assert approved_property.remaining_tokens == 70
	assert Holding.objects.get(user=investor).tokens == 30
	assert Certificate.objects.filter(order_id=order["id"]).count() == 1
	check_supply(approved_property)


def test_racing_withdrawals_serialize(engine, investor):
	engine.deposit(investor.pk, "100.00")

	outcomes = race(
		lambda e: e.withdraw(investor.pk, "70.00"),
		lambda e: e.withdraw(investor.pk, "70.00"),
	)

	assert outcomes.count("ok") == 1
	losers = [o for o in outcomes if o != "ok"]
	assert len(losers) == 1 and isinstance(losers[0], InsufficientFunds)
	assert Wallet.objects.get(user=investor).cash_balance == Decimal("30.00")
	assert Transaction.objects.filter(type=TransactionType.WITHDRAWAL).count() == 1
