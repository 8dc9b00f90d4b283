"""HTTP surface: JSON in, JSON out, settlement errors mapped to status codes."""

import json
import uuid
from decimal import Decimal

import pytest

from core.models import Certificate, CertificateStatus, Holding, Order, OrderStatus

pytestmark = pytest.mark.django_db


def post(client, path, payload):
	return client.post(path, data=json.dumps(payload), content_type="application/json")


def test_health(client):
	assert client.get("/api/health").json() == {"ok": True}


def test_order_then_confirm(client, investor, approved_property):
	created = post(client, "/api/orders", {"user_id": str(investor.pk), "property_id": approved_property.pk, "tokens": 30})

	assert created.status_code == 201
	body = created.json()
	assert body["status"] == OrderStatus.PENDING
	assert Decimal(body["amount"]) == Decimal("30000")

	confirmed = post(client, "/api/payments/confirm", {"order_id": body["id"]})

	assert confirmed.status_code == 200
	assert confirmed.json()["ok"] is True
	assert confirmed.json()["status"] == OrderStatus.ISSUED
	assert Holding.objects.get(user=investor).tokens == 30

	repeat = post(client, "/api/payments/confirm", {"order_id": body["id"]})
	assert repeat.status_code == 200
	assert repeat.json()["already_issued"] is True


def test_order_over_supply_is_conflict(client, investor, approved_property):
	resp = post(client, "/api/orders", {"user_id": str(investor.pk), "property_id": approved_property.pk, "tokens": 500})
	assert resp.status_code == 409
	assert resp.json()["error"] == "insufficient_supply"
	assert not Order.objects.exists()


def test_order_for_unknown_user(client, approved_property):
	resp = post(client, "/api/orders", {"user_id": str(uuid.uuid4()), "property_id": approved_property.pk, "tokens": 1})
	assert resp.status_code == 404
	assert resp.json()["error"] == "user_not_found"


def test_order_with_malformed_user_id(client, approved_property):
	resp = post(client, "/api/orders", {"user_id": "not-a-uuid", "property_id": approved_property.pk, "tokens": 1})
	assert resp.status_code == 404


def test_order_validation(client, investor, approved_property):
	bad_tokens = post(client, "/api/orders", {"user_id": str(investor.pk), "property_id": approved_property.pk, "tokens": -2})
	assert bad_tokens.status_code == 400
	assert bad_tokens.json()["error"] == "invalid_tokens"

	missing = post(client, "/api/orders", {"user_id": str(investor.pk), "tokens": 1})
	assert missing.status_code == 400
	assert missing.json()["error"] == "invalid_input"

	not_json = client.post("/api/orders", data="tokens=1", content_type="application/json")
	assert not_json.status_code == 400


def test_order_below_minimum_investment(client, investor, approved_property, settings):
	settings.SETTLEMENT = {"MIN_INVESTMENT_AMOUNT": Decimal("5000.00"), "MAX_INVESTMENT_AMOUNT": None}
	resp = post(client, "/api/orders", {"user_id": str(investor.pk), "property_id": approved_property.pk, "tokens": 2})
	assert resp.status_code == 400
	assert resp.json()["error"] == "minimum_investment_not_met"


def test_post_only(client):
	assert client.get("/api/orders").status_code == 405


def test_confirm_unknown_order(client):
	resp = post(client, "/api/payments/confirm", {"order_id": 31337})
	assert resp.status_code == 404
	assert resp.json()["error"] == "order_not_found"


def test_mint(client, investor, approved_property):
	resp = post(client, "/api/tokens/mint", {"property_id": approved_property.pk, "user_id": str(investor.pk), "tokens": 10})
	assert resp.status_code == 200
	assert resp.json()["remaining_tokens"] == 90


def test_wallet_flow(client, investor):
	uid = str(investor.pk)

	deposited = post(client, "/api/wallet/deposit", {"user_id": uid, "amount": "200.00"})
	assert deposited.status_code == 200
	assert Decimal(deposited.json()["cash_balance"]) == Decimal("200")

	overdrawn = post(client, "/api/wallet/withdraw", {"user_id": uid, "amount": "500"})
	assert overdrawn.status_code == 409
	assert overdrawn.json()["error"] == "insufficient_funds"

	bad_amount = post(client, "/api/wallet/deposit", {"user_id": uid, "amount": "1.005"})
	assert bad_amount.status_code == 400

	summary = client.get("/api/wallet", {"user_id": uid})
	assert summary.status_code == 200
	assert Decimal(summary.json()["cash_balance"]) == Decimal("200")
	assert len(summary.json()["transactions"]) == 1


def test_wallet_requires_user(client):
	assert client.get("/api/wallet").status_code == 400
	assert client.get("/api/wallet", {"user_id": str(uuid.uuid4())}).status_code == 404


def test_pay_from_wallet_must_be_boolean(client, investor, approved_property):
	uid = str(investor.pk)
	created = post(client, "/api/orders", {"user_id": uid, "property_id": approved_property.pk, "tokens": 1}).json()

	resp = post(client, "/api/payments/confirm", {"order_id": created["id"], "pay_from_wallet": "false"})
	assert resp.status_code == 400
	assert resp.json()["error"] == "invalid_pay_from_wallet"
	assert Order.objects.get(pk=created["id"]).status == OrderStatus.PENDING

	post(client, "/api/wallet/deposit", {"user_id": uid, "amount": "1000.00"})
	paid = post(client, "/api/payments/confirm", {"order_id": created["id"], "pay_from_wallet": True})
	assert paid.status_code == 200
	assert Decimal(client.get("/api/wallet", {"user_id": uid}).json()["cash_balance"]) == Decimal("0")


def test_certificate_verify_and_revoke(client, investor, approved_property):
	created = post(client, "/api/orders", {"user_id": str(investor.pk), "property_id": approved_property.pk, "tokens": 3}).json()
	code = post(client, "/api/payments/confirm", {"order_id": created["id"]}).json()["certificate_code"]
	content_hash = Certificate.objects.get(code=code).content_hash

	verified = post(client, "/api/certificates/verify", {"code": code, "content_hash": content_hash})
	assert verified.status_code == 200
	assert verified.json()["valid"] is True
	assert verified.json()["certificate"]["tokens"] == 3

	tampered = post(client, "/api/certificates/verify", {"code": code, "content_hash": "0" * 64})
	assert tampered.json()["valid"] is False
	assert tampered.json()["hash_matches"] is False

	no_reason = post(client, "/api/certificates/revoke", {"code": code, "reason": "  "})
	assert no_reason.status_code == 400
	assert no_reason.json()["error"] == "revocation_reason_required"

	revoked = post(client, "/api/certificates/revoke", {"code": code, "reason": "issued in error"})
	assert revoked.status_code == 200
	assert revoked.json()["ok"] is True
	assert revoked.json()["status"] == CertificateStatus.REVOKED

	again = post(client, "/api/certificates/revoke", {"code": code, "reason": "issued in error"})
	assert again.status_code == 400
	assert again.json()["error"] == "certificate_already_revoked"

	after = post(client, "/api/certificates/verify", {"code": code, "content_hash": content_hash}).json()
	assert after["valid"] is False
	assert after["status"] == CertificateStatus.REVOKED


def test_certificate_unknown_code(client):
	verified = post(client, "/api/certificates/verify", {"code": "CERT-NOPE", "content_hash": "abc"})
	assert verified.status_code == 200
	assert verified.json() == {"valid": False, "error": "certificate_not_found", "certificate": None}

	revoked = post(client, "/api/certificates/revoke", {"code": "CERT-NOPE", "reason": "x"})
	assert revoked.status_code == 404
	assert revoked.json()["error"] == "certificate_not_found"
