"""Deterministic emulation of the property-token contract.

Each function validates against the stub world state, mutates it, and appends a
receipt. Rejections carry the contract's error string; "already exists"
rejections also carry the receipt of the original submission.
"""

import inspect
import logging

from django.db import transaction

from .models import ChainStubTx, ChainStubProperty, ChainStubHolding, ChainStubMint, ChainStubDeed

logger = logging.getLogger(__name__)


class ContractRejection(Exception):

	def __init__(self, code: str, detail: str = "", tx_id: str | None = None):
		self.code = code
		self.detail = detail
		self.tx_id = tx_id
		super().__init__(f"{code}: {detail}" if detail else code)


def _int_arg(value, code="invalid_tokens") -> int:
	try:
		qty = int(str(value))
	except ValueError:
		raise ContractRejection(code, f"not an integer: {value!r}")
	if qty <= 0:
		raise ContractRejection(code, f"must be positive: {qty}")
	return qty


def _get_property(property_key: str) -> ChainStubProperty:
	prop = ChainStubProperty.objects.select_for_update().filter(property_key=property_key).first()
	if prop is None:
		raise ContractRejection("property_not_found", property_key)
	return prop


def _receipt(contract: str, function: str, args) -> str:
	return ChainStubTx.objects.create(contract=contract, function=function, args=[str(a) for a in args]).tx_id


def register_property(contract, property_id, title, location, total_tokens):
	existing = ChainStubProperty.objects.filter(property_key=str(property_id)).first()
	if existing:
		raise ContractRejection("property_already_exists", str(property_id), tx_id=existing.register_tx_id)
	qty = _int_arg(total_tokens)
	tx_id = _receipt(contract, "RegisterProperty", [property_id, title, location, total_tokens])
	ChainStubProperty.objects.create(
		property_key=str(property_id),
		title=title,
		location=location or "",
		total_tokens=qty,
		remaining_tokens=qty,
		status="PENDING",
		register_tx_id=tx_id,
	)
	return tx_id


def approve_property(contract, property_id):
	prop = _get_property(str(property_id))
	if prop.status != "PENDING":
		# approve_tx_id is set once the property has moved past PENDING
		raise ContractRejection("property_not_pending", f"{property_id} is {prop.status}", tx_id=prop.approve_tx_id or None)
	prop.status = "APPROVED"
	prop.approve_tx_id = _receipt(contract, "ApproveProperty", [property_id])
	prop.save(update_fields=["status", "approve_tx_id"])
	return prop.approve_tx_id


def tokenize_property(contract, property_id):
	prop = _get_property(str(property_id))
	if prop.status != "APPROVED":
		raise ContractRejection("property_not_approved", f"{property_id} is {prop.status}", tx_id=prop.tokenize_tx_id or None)
	prop.status = "TOKENIZED"
	prop.tokenize_tx_id = _receipt(contract, "TokenizeProperty", [property_id])
	prop.save(update_fields=["status", "tokenize_tx_id"])
	return prop.tokenize_tx_id


def mint_tokens(contract, property_id, user_id, tokens, order_id):
	qty = _int_arg(tokens)
	existing = ChainStubMint.objects.filter(order_key=str(order_id)).first()
	if existing:
		raise ContractRejection("mint_already_exists", f"order {order_id}", tx_id=existing.tx_id)
	prop = _get_property(str(property_id))
	if prop.status != "TOKENIZED":
		raise ContractRejection("property_not_tokenized", str(property_id))
	if prop.remaining_tokens < qty:
		raise ContractRejection("insufficient_remaining_tokens", f"available {prop.remaining_tokens}, requested {qty}")
	prop.remaining_tokens -= qty
	prop.save(update_fields=["remaining_tokens"])
	holding, _ = ChainStubHolding.objects.get_or_create(
		property_key=str(property_id), holder_key=str(user_id), defaults={"tokens": 0},
	)
	holding.tokens += qty
	holding.save(update_fields=["tokens"])
	tx_id = _receipt(contract, "MintTokens", [property_id, user_id, tokens, order_id])
	ChainStubMint.objects.create(order_key=str(order_id), tx_id=tx_id)
	return tx_id


def invest_property(contract, property_id, investor_email, tokens):
	_get_property(str(property_id))
	_int_arg(tokens)
	return _receipt(contract, "InvestProperty", [property_id, investor_email, tokens])


def issue_deed(contract, deed_number, user_id, property_id, owned_tokens, deed_hash, order_id=""):
	existing = ChainStubDeed.objects.filter(deed_number=str(deed_number)).first()
	if existing:
		raise ContractRejection("deed_already_exists", str(deed_number), tx_id=existing.tx_id)
	qty = _int_arg(owned_tokens)
	if not deed_hash:
		raise ContractRejection("invalid_deed_hash", str(deed_number))
	tx_id = _receipt(contract, "IssueDeed", [deed_number, user_id, property_id, owned_tokens, deed_hash, order_id])
	ChainStubDeed.objects.create(
		deed_number=str(deed_number),
		holder_key=str(user_id),
		property_key=str(property_id),
		owned_tokens=qty,
		deed_hash=deed_hash,
		order_key=str(order_id or ""),
		tx_id=tx_id,
	)
	return tx_id


FUNCTIONS = {
	"RegisterProperty": register_property,
	"ApproveProperty": approve_property,
	"TokenizeProperty": tokenize_property,
	"MintTokens": mint_tokens,
	"InvestProperty": invest_property,
	"IssueDeed": issue_deed,
}


def submit(contract: str, function: str, *args) -> str:
	"""
	Execute one contract function atomically; returns the committed tx id
	"""
	handler = FUNCTIONS.get(function)
	if handler is None:
		raise ContractRejection("unknown_function", function)
	try:
		inspect.signature(handler).bind(contract, *args)
	except TypeError as e:
		raise ContractRejection("invalid_arguments", f"{function}: {e}")
	with transaction.atomic():
		tx_id = handler(contract, *args)
	logger.debug("stub ledger committed %s %s -> %s", contract, function, tx_id)
	return tx_id
