"""Distributed ledger client adapters.

submit(contract, function, *args) -> {"tx_id", "status"}; every failure is a
LedgerSubmissionFailed (reason network/rejected), with "already exists"
rejections surfaced as LedgerAlreadyRecorded.

- StubLedgerClient drives the in-process contract in chain_stub (same database).
- GatewayLedgerClient posts to an HTTP gateway in front of the real network;
  chain_stub exposes the same endpoint for local runs.
"""

import logging

import requests

from chain_stub import contract as stub_contract
from core.config import LedgerConfig
from core.errors import LedgerSubmissionFailed, LedgerAlreadyRecorded, InvalidInput, is_already_exists

logger = logging.getLogger(__name__)


def _rejection(code: str, detail: str, function: str, tx_id: str | None = None) -> LedgerSubmissionFailed:
	if is_already_exists(code):
		return LedgerAlreadyRecorded(code, detail, function=function, tx_id=tx_id)
	return LedgerSubmissionFailed(code, detail, reason=LedgerSubmissionFailed.REJECTED, function=function, tx_id=tx_id)


class LedgerClient:
	"""
	Interface consumed by the reconciliation engine
	"""

	def submit(self, contract: str, function: str, *args) -> dict:
		raise NotImplementedError


class StubLedgerClient(LedgerClient):
	"""
	Submits to the chain_stub contract emulation; receipts are confirmed immediately.
	"""

	def submit(self, contract: str, function: str, *args) -> dict:
		try:
			tx_id = stub_contract.submit(contract, function, *[str(a) for a in args])
		except stub_contract.ContractRejection as e:
			raise _rejection(e.code, e.detail, function, e.tx_id) from e
		return {"tx_id": tx_id, "status": "VALID"}


class GatewayLedgerClient(LedgerClient):
	"""
	JSON-over-HTTP client for the ledger gateway
	"""

	def __init__(self, base_url: str, timeout: float = 10.0, session: requests.Session | None = None):
		self.url = base_url.rstrip("/") + "/submit"
		self.timeout = timeout
		self.session = session or requests.Session()
		self.session.headers["content-type"] = "application/json"

	def submit(self, contract: str, function: str, *args) -> dict:
		payload = {"contract": contract, "function": function, "args": [str(a) for a in args]}
		try:
			response = self.session.post(self.url, json=payload, timeout=self.timeout)
		except requests.exceptions.Timeout as e:
			raise LedgerSubmissionFailed(
				"timeout", f"no reply within {self.timeout}s", reason=LedgerSubmissionFailed.NETWORK, function=function,
			) from e
		except requests.exceptions.RequestException as e:
			raise LedgerSubmissionFailed(
				"connection_failed", f"{self.url}: {e}", reason=LedgerSubmissionFailed.NETWORK, function=function,
			) from e

		try:
			body = response.json()
		except ValueError as e:
			raise LedgerSubmissionFailed(
				"invalid_response", f"HTTP {response.status_code}", reason=LedgerSubmissionFailed.NETWORK, function=function,
			) from e

		if isinstance(body, dict) and body.get("error"):
			raise _rejection(str(body["error"]), str(body.get("message", "")), function, body.get("tx_id"))
		if response.status_code >= 400 or not isinstance(body, dict) or not body.get("tx_id"):
			raise LedgerSubmissionFailed(
				"invalid_response", f"HTTP {response.status_code}", reason=LedgerSubmissionFailed.NETWORK, function=function,
			)
		return {"tx_id": body["tx_id"], "status": body.get("status", "VALID")}


def build_ledger_client(config: LedgerConfig) -> LedgerClient:
	if config.backend == "stub":
		return StubLedgerClient()
	if config.backend == "gateway":
		if not config.gateway_url:
			raise InvalidInput("ledger_gateway_url_missing", "LEDGER_GATEWAY_URL is not set")
		return GatewayLedgerClient(config.gateway_url, timeout=config.timeout)
	raise InvalidInput("unknown_ledger_backend", config.backend)
