"""Closed error taxonomy shared by settlement, reconciliation and the ledger client.

Callers switch on `kind`; `code` is the stable machine string surfaced to the
HTTP layer and the operator log.
"""

import enum


class ErrorKind(enum.Enum):
	NOT_FOUND = "not_found"
	INSUFFICIENT_SUPPLY = "insufficient_supply"
	INSUFFICIENT_FUNDS = "insufficient_funds"
	INVALID_INPUT = "invalid_input"
	LEDGER_SUBMISSION_FAILED = "ledger_submission_failed"
	LEDGER_ALREADY_RECORDED = "ledger_already_recorded"
	LEDGER_DISABLED = "ledger_disabled"


class EstateLedgerError(Exception):
	"""Base class; subclasses pin `kind`."""
	kind: ErrorKind

	def __init__(self, code: str | None = None, detail: str = ""):
		self.code = code or self.kind.value
		self.detail = detail
		super().__init__(f"{self.code}: {detail}" if detail else self.code)


class NotFound(EstateLedgerError):
	kind = ErrorKind.NOT_FOUND


class InsufficientSupply(EstateLedgerError):
	kind = ErrorKind.INSUFFICIENT_SUPPLY

	def __init__(self, available: int, requested: int):
		self.available = available
		self.requested = requested
		super().__init__(detail=f"available {available}, requested {requested}")


class InsufficientFunds(EstateLedgerError):
	kind = ErrorKind.INSUFFICIENT_FUNDS

	def __init__(self, balance, requested):
		self.balance = balance
		self.requested = requested
		super().__init__(detail=f"balance {balance}, requested {requested}")


class InvalidInput(EstateLedgerError):
	kind = ErrorKind.INVALID_INPUT


class LedgerDisabled(EstateLedgerError):
	"""Raised at construction when the ledger integration is switched off."""
	kind = ErrorKind.LEDGER_DISABLED


class LedgerSubmissionFailed(EstateLedgerError):
	"""
	A ledger call did not produce a receipt.

	reason is NETWORK (unreachable, timeout, malformed reply) or REJECTED
	(the contract refused the call; `code` holds the contract's error string).
	A rejection may still carry tx_id, the receipt of an earlier submission
	that moved the record past the requested state.
	"""
	kind = ErrorKind.LEDGER_SUBMISSION_FAILED
	NETWORK = "network"
	REJECTED = "rejected"

	def __init__(self, code: str, detail: str = "", *, reason: str = REJECTED, function: str = "", tx_id: str | None = None):
		self.reason = reason
		self.function = function
		self.tx_id = tx_id
		super().__init__(code, detail)


class LedgerAlreadyRecorded(LedgerSubmissionFailed):
	"""
	The contract reports the record already exists. Reconciliation treats this
	as success; tx_id is the existing receipt when the ledger reports one.
	"""
	kind = ErrorKind.LEDGER_ALREADY_RECORDED

	def __init__(self, code: str, detail: str = "", *, function: str = "", tx_id: str | None = None):
		super().__init__(code, detail, reason=LedgerSubmissionFailed.REJECTED, function=function, tx_id=tx_id)


ALREADY_EXISTS_SUFFIX = "_already_exists"


def is_already_exists(code: str) -> bool:
	return bool(code) and code.endswith(ALREADY_EXISTS_SUFFIX)
