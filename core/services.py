"""Settlement engine: order lifecycle, token issuance, certificates and wallet cash movements.

Every multi-field mutation runs inside store.atomic(), so a raised error leaves
nothing behind. Supply and balance guards are conditional updates; they are the
authoritative checks, the reads before them are only for early, specific errors.
Nothing here talks to the distributed ledger.
"""

import hmac
import logging
from decimal import Decimal

from django.utils import timezone

from .config import SettlementLimits
from .constants import parse_tokens, parse_cash, gen_certificate_code, certificate_content_hash
from .errors import InsufficientSupply, InvalidInput, NotFound
from .models import CertificateStatus, OrderStatus, TransactionType
from .store import LedgerStore

logger = logging.getLogger(__name__)

RECENT_TRANSACTIONS = 10


class SettlementEngine:

	def __init__(self, store: LedgerStore, limits: SettlementLimits | None = None):
		self.store = store
		self.limits = limits if limits is not None else SettlementLimits()

	# --- Orders --------------------------------------------------------------

	def create_order(self, user_id, property_id, tokens) -> dict:
		"""
		Record a purchase request. Supply is checked but not reserved;
		confirm_payment re-checks it.
		"""
		qty = parse_tokens(tokens)
		user = self.store.find_user_by_id(user_id)
		prop = self.store.find_property_by_id(property_id)
		if qty > prop.remaining_tokens:
			raise InsufficientSupply(prop.remaining_tokens, qty)

		amount = Decimal(qty) * prop.token_price
		self._check_limits(amount)

		order = self.store.create_order(user=user, prop=prop, tokens=qty, amount=amount)
		logger.info("order %s created: user=%s property=%s tokens=%s amount=%s", order.pk, user.pk, prop.pk, qty, amount)
		return {"id": order.pk, "status": order.status, "amount": order.amount, "tokens": order.tokens}

	def _check_limits(self, amount: Decimal) -> None:
		if self.limits.min_investment is not None and amount < self.limits.min_investment:
			raise InvalidInput(
				"minimum_investment_not_met",
				f"minimum investment is {self.limits.min_investment}, order amount is {amount}",
			)
		if self.limits.max_investment is not None and amount > self.limits.max_investment:
			raise InvalidInput(
				"maximum_investment_exceeded",
				f"maximum investment is {self.limits.max_investment}, order amount is {amount}",
			)

	def confirm_payment(self, order_id, *, pay_from_wallet: bool = False) -> dict:
		"""
		Settle an order: supply decrement, holding credit, certificate, ISSUED.

		Idempotent: an ISSUED order returns success without side effects. With
		pay_from_wallet the order amount is debited from the investor's wallet in
		the same atomic unit.
		"""
		with self.store.atomic():
			# Row lock serializes concurrent confirmations of the same order
			order = self.store.find_order_by_id(order_id, for_update=True)
			if order.status == OrderStatus.ISSUED:
				logger.info("order %s already issued; nothing to do", order.pk)
				return self._order_payload(order, already_issued=True)

			prop = self.store.find_property_by_id(order.property_id)
			if prop.remaining_tokens < order.tokens:
				raise InsufficientSupply(prop.remaining_tokens, order.tokens)

			if pay_from_wallet:
				wallet = self.store.upsert_wallet(order.user_id)
				self.store.update_wallet_balance(wallet, -order.amount)
				self.store.append_transaction(
					user_id=order.user_id,
					type=TransactionType.WITHDRAWAL,
					amount=order.amount,
					ref=str(order.pk),
					note=f"payment for order {order.pk}",
				)

			remaining = self.store.update_property_remaining_tokens(order.property_id, order.tokens)
			self.store.upsert_holding(order.user_id, order.property_id, order.tokens)

			issued_at = timezone.now()
			code = gen_certificate_code(issued_at)
			certificate = self.store.create_certificate(
				order=order,
				code=code,
				content_hash=certificate_content_hash(
					code=code, user_id=order.user_id, property_id=order.property_id, tokens=order.tokens, issued_at=issued_at,
				),
				issued_at=issued_at,
			)
			self.store.update_order_status(order, OrderStatus.ISSUED)

		logger.info(
			"order %s issued: %s tokens of property %s, certificate %s, %s remaining",
			order.pk, order.tokens, order.property_id, certificate.code, remaining,
		)
		return self._order_payload(order, certificate_code=certificate.code)

	def _order_payload(self, order, *, certificate_code: str | None = None, already_issued: bool = False) -> dict:
		if certificate_code is None and hasattr(order, "certificate"):
			certificate_code = order.certificate.code
		return {
			"id": order.pk,
			"status": order.status,
			"tokens": order.tokens,
			"amount": order.amount,
			"certificate_code": certificate_code,
			"already_issued": already_issued,
		}

	# --- Certificates --------------------------------------------------------

	def verify_certificate(self, code, content_hash) -> dict:
		"""
		Valid only if the certificate exists, is still ISSUED and the presented
		hash matches the stored one. Unknown codes are reported as invalid.
		"""
		if not code or not content_hash:
			raise InvalidInput("invalid_certificate_query", "code and content_hash are required")
		try:
			cert = self.store.find_certificate_by_code(code)
		except NotFound:
			return {"valid": False, "error": "certificate_not_found", "certificate": None}

		hash_matches = hmac.compare_digest(cert.content_hash.encode(), str(content_hash).encode())
		valid = hash_matches and cert.status == CertificateStatus.ISSUED
		out = {"valid": valid, "hash_matches": hash_matches, "status": cert.status, "certificate": None}
		if valid:
			out["certificate"] = {
				"code": cert.code,
				"user": cert.user.display_name or cert.user.email,
				"property_id": cert.property_id,
				"property_title": cert.property.title,
				"tokens": cert.tokens,
				"issued_at": cert.issued_at.isoformat(),
				"ledger_tx_id": cert.ledger_tx_id,
			}
		return out

	def revoke_certificate(self, code, reason) -> dict:
		"""
		Mark a certificate REVOKED. Holdings are left as they are.
		"""
		if not reason or not str(reason).strip():
			raise InvalidInput("revocation_reason_required", "reason is required")
		with self.store.atomic():
			cert = self.store.find_certificate_by_code(code, for_update=True)
			cert = self.store.revoke_certificate(cert, str(reason).strip(), timezone.now())
		logger.info("certificate %s revoked: %s", cert.code, cert.revocation_reason)
		return {
			"code": cert.code,
			"status": cert.status,
			"revoked_at": cert.revoked_at.isoformat(),
			"revocation_reason": cert.revocation_reason,
		}

	# --- Administrative issuance --------------------------------------------

	def mint_tokens(self, property_id, target_user_id, tokens) -> dict:
		"""
		Issue tokens directly to a user, bypassing the order flow
		"""
		qty = parse_tokens(tokens)
		user = self.store.find_user_by_id(target_user_id)
		with self.store.atomic():
			prop = self.store.find_property_by_id(property_id)
			if prop.remaining_tokens < qty:
				raise InsufficientSupply(prop.remaining_tokens, qty)
			remaining = self.store.update_property_remaining_tokens(prop.pk, qty)
			holding = self.store.upsert_holding(user.pk, prop.pk, qty)
			tx = self.store.append_transaction(
				user_id=user.pk,
				type=TransactionType.TOKEN_MINT,
				amount=Decimal(qty) * prop.token_price,
				note=f"admin mint of {qty} tokens for property {prop.pk}",
			)
		logger.info("minted %s tokens of property %s to user %s (ref %s)", qty, prop.pk, user.pk, tx.ref)
		return {
			"property_id": prop.pk,
			"user_id": user.pk,
			"tokens": qty,
			"holding_tokens": holding.tokens,
			"remaining_tokens": remaining,
			"ref": tx.ref,
		}

	# --- Wallet --------------------------------------------------------------

	def deposit(self, user_id, amount) -> dict:
		value = parse_cash(amount)
		user = self.store.find_user_by_id(user_id)
		with self.store.atomic():
			wallet = self.store.upsert_wallet(user.pk)
			wallet = self.store.update_wallet_balance(wallet, value)
			tx = self.store.append_transaction(user_id=user.pk, type=TransactionType.DEPOSIT, amount=value)
		logger.info("deposit %s for user %s (ref %s)", value, user.pk, tx.ref)
		return {"cash_balance": wallet.cash_balance, "ref": tx.ref}

	def withdraw(self, user_id, amount) -> dict:
		value = parse_cash(amount)
		user = self.store.find_user_by_id(user_id)
		with self.store.atomic():
			wallet = self.store.upsert_wallet(user.pk)
			wallet = self.store.update_wallet_balance(wallet, -value)
			tx = self.store.append_transaction(user_id=user.pk, type=TransactionType.WITHDRAWAL, amount=value)
		logger.info("withdrawal %s for user %s (ref %s)", value, user.pk, tx.ref)
		return {"cash_balance": wallet.cash_balance, "ref": tx.ref}

	def wallet_summary(self, user_id) -> dict:
		user = self.store.find_user_by_id(user_id)
		wallet = getattr(user, "wallet", None)
		cash = wallet.cash_balance if wallet else Decimal("0.00")
		holdings = [
			{
				"property_id": h.property_id,
				"title": h.property.title,
				"tokens": h.tokens,
				"token_price": h.property.token_price,
				"value": Decimal(h.tokens) * h.property.token_price,
			}
			for h in user.holdings.select_related("property").order_by("property_id")
		]
		invested = sum((h["value"] for h in holdings), Decimal("0.00"))
		transactions = [
			{
				"type": t.type,
				"amount": t.amount,
				"ref": t.ref,
				"ledger_tx_id": t.ledger_tx_id,
				"created_at": t.created_at.isoformat(),
			}
			for t in user.transactions.order_by("-created_at", "-id")[:RECENT_TRANSACTIONS]
		]
		return {
			"cash_balance": cash,
			"invested_value": invested,
			"total_value": cash + invested,
			"holdings": holdings,
			"transactions": transactions,
		}
