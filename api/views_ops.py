"""Operational endpoints that move settlement forward (orders, payment, mint, cash)."""

import json
import logging

from django.http import JsonResponse, HttpResponseBadRequest
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from core.config import SettlementLimits
from core.errors import EstateLedgerError, ErrorKind, InvalidInput
from core.services import SettlementEngine
from core.store import LedgerStore

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
	ErrorKind.NOT_FOUND: 404,
	ErrorKind.INVALID_INPUT: 400,
	ErrorKind.INSUFFICIENT_SUPPLY: 409,
	ErrorKind.INSUFFICIENT_FUNDS: 409,
}


def settlement_engine() -> SettlementEngine:
	return SettlementEngine(LedgerStore(), SettlementLimits.from_settings())


def error_response(err: EstateLedgerError) -> JsonResponse:
	return JsonResponse({"error": err.code, "detail": err.detail}, status=STATUS_BY_KIND.get(err.kind, 500))


def settlement_view(handler):
	"""
	POST-only JSON view: parses the body, maps settlement errors to status codes
	"""
	@csrf_exempt
	@require_POST
	def view(request):
		try:
			body = json.loads(request.body or b"{}")
		except ValueError:
			return HttpResponseBadRequest("Invalid JSON")
		if not isinstance(body, dict):
			return HttpResponseBadRequest("JSON object required")
		try:
			return handler(body)
		except KeyError as e:
			return JsonResponse({"error": "invalid_input", "detail": f"missing field: {e.args[0]}"}, status=400)
		except EstateLedgerError as e:
			logger.info("%s rejected: %s", handler.__name__, e)
			return error_response(e)
	view.__name__ = handler.__name__
	return view


def health(request):
	return JsonResponse({"ok": True})


@settlement_view
def create_order(body):
	"""
	POST {"user_id", "property_id", "tokens"}: 201 {"id", "status", "amount", "tokens"}
	"""
	out = settlement_engine().create_order(body["user_id"], body["property_id"], body["tokens"])
	return JsonResponse(out, status=201)


@settlement_view
def confirm_payment(body):
	"""
	POST {"order_id", "pay_from_wallet"?}: settle the order; repeat calls are no-ops
	"""
	pay_from_wallet = body.get("pay_from_wallet", False)
	if not isinstance(pay_from_wallet, bool):
		raise InvalidInput("invalid_pay_from_wallet", "pay_from_wallet must be a JSON boolean")
	out = settlement_engine().confirm_payment(body["order_id"], pay_from_wallet=pay_from_wallet)
	return JsonResponse({"ok": True, **out})


@settlement_view
def mint_tokens(body):
	"""
	POST {"property_id", "user_id", "tokens"}: administrative issuance
	"""
	out = settlement_engine().mint_tokens(body["property_id"], body["user_id"], body["tokens"])
	return JsonResponse({"ok": True, **out})


@settlement_view
def deposit(body):
	out = settlement_engine().deposit(body["user_id"], body["amount"])
	return JsonResponse(out)


@settlement_view
def withdraw(body):
	out = settlement_engine().withdraw(body["user_id"], body["amount"])
	return JsonResponse(out)


@settlement_view
def verify_certificate(body):
	"""
	POST {"code", "content_hash"}: 200 {"valid", ...}; unknown codes are simply invalid
	"""
	return JsonResponse(settlement_engine().verify_certificate(body["code"], body["content_hash"]))


@settlement_view
def revoke_certificate(body):
	out = settlement_engine().revoke_certificate(body["code"], body["reason"])
	return JsonResponse({"ok": True, **out})
