"""Shared fixtures for the settlement and reconciliation tests."""

from decimal import Decimal

import pytest

from core.adapters.chain_adapter import LedgerClient
from core.config import LedgerConfig, SettlementLimits
from core.models import User, Property, PropertyStatus, Holding
from core.services import SettlementEngine
from core.store import LedgerStore


class FakeLedgerClient(LedgerClient):
	"""Records every submission; functions listed in `failures` raise the given error."""

	def __init__(self):
		self.calls = []
		self.failures = {}
		self._seq = 0

	def fail(self, function, error, first_arg=None):
		"""Make `function` raise; with first_arg, only calls whose first argument matches."""
		self.failures[function] = (error, None if first_arg is None else str(first_arg))

	def submit(self, contract, function, *args):
		args = tuple(str(a) for a in args)
		self.calls.append((function, args))
		if function in self.failures:
			error, first_arg = self.failures[function]
			if first_arg is None or (args and args[0] == first_arg):
				raise error
		self._seq += 1
		return {"tx_id": f"tx-{self._seq:04d}-{function}", "status": "VALID"}

	def reset(self):
		self.calls = []
		self.failures = {}

	@property
	def functions(self):
		return [name for name, _ in self.calls]


@pytest.fixture
def store():
	return LedgerStore()


@pytest.fixture
def engine(store):
	"""Settlement engine without investment limits."""
	return SettlementEngine(store, SettlementLimits())


@pytest.fixture
def investor(db):
	return User.objects.create(email="investor@example.com", display_name="Investor One")


@pytest.fixture
def second_investor(db):
	return User.objects.create(email="second@example.com", display_name="Investor Two")


@pytest.fixture
def approved_property(db):
	"""totalTokens=100, tokenPrice=1000, remainingTokens=100"""
	return Property.objects.create(
		title="Olaya Tower",
		location="Riyadh",
		total_tokens=100,
		token_price=Decimal("1000.00"),
		status=PropertyStatus.APPROVED,
	)


@pytest.fixture
def ledger_client():
	return FakeLedgerClient()


@pytest.fixture
def ledger_config():
	return LedgerConfig(enabled=True, backend="stub", contract="estathub")


@pytest.fixture
def check_supply():
	"""remaining_tokens + sum(holdings) == total_tokens"""
	def check(prop):
		prop.refresh_from_db()
		held = sum(h.tokens for h in Holding.objects.filter(property=prop))
		assert prop.remaining_tokens + held == prop.total_tokens
	return check
