"""HTTP endpoint for the chain stub mirroring the ledger gateway's submit surface"""

import json
from django.http import JsonResponse, HttpResponseBadRequest
from django.views.decorators.csrf import csrf_exempt
from . import contract as stub_contract


@csrf_exempt
def submit(request):
	"""
	POST {"contract", "function", "args"}: 200 {"tx_id", "status"} or 409 {"error", "message", "tx_id"?}
	"""
	if request.method != "POST":
		return HttpResponseBadRequest("POST only")
	try:
		body = json.loads(request.body or b"{}")
	except ValueError:
		return HttpResponseBadRequest("Invalid JSON")
	function = body.get("function")
	if not function:
		return HttpResponseBadRequest("function required")
	args = body.get("args") or []
	try:
		tx_id = stub_contract.submit(body.get("contract", ""), function, *args)
	except stub_contract.ContractRejection as e:
		payload = {"error": e.code, "message": e.detail}
		if e.tx_id:
			payload["tx_id"] = e.tx_id
		return JsonResponse(payload, status=409)
	return JsonResponse({"tx_id": tx_id, "status": "VALID"})
