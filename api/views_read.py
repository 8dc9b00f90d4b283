"""Read-only endpoints to inspect settlement state."""

from django.http import JsonResponse, HttpResponseBadRequest

from core.errors import EstateLedgerError
from .views_ops import settlement_engine, error_response


def wallet(request):
	"""
	GET ?user_id=: cash balance, holdings with value, recent transactions
	"""
	user_id = request.GET.get("user_id")
	if not user_id:
		return HttpResponseBadRequest("user_id required")
	try:
		return JsonResponse(settlement_engine().wallet_summary(user_id))
	except EstateLedgerError as e:
		return error_response(e)
