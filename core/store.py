"""Data-access layer over the Django ORM.

LedgerStore is the only place that issues queries. It is bound to one database
alias and handed to the engines explicitly. Conditional updates are expressed as
`UPDATE ... WHERE <guard>` so they stay correct under concurrent writers even on
backends without row locks.
"""

from decimal import Decimal

from django.core.exceptions import ValidationError
from django.db import transaction, IntegrityError
from django.db.models import CharField, F, Subquery
from django.db.models.functions import Cast

from .constants import CASH_MAX_BALANCE
from .errors import NotFound, InsufficientSupply, InsufficientFunds, InvalidInput
from .models import (
	User, Property, PropertyStatus, Order, OrderStatus, ORDER_STATUS_RANK, Holding, Certificate,
	CertificateStatus, Wallet, Transaction, TransactionType, OnChainEvent, ReconciliationRun,
)


class LedgerStore:

	def __init__(self, using: str = "default"):
		self.using = using

	def atomic(self):
		"""
		Run the enclosed statements as one all-or-nothing unit
		"""
		return transaction.atomic(using=self.using)

	# --- Lookups -------------------------------------------------------------

	def find_user_by_id(self, user_id) -> User:
		try:
			return User.objects.using(self.using).get(pk=user_id)
		except (User.DoesNotExist, ValidationError, ValueError, TypeError):
			raise NotFound("user_not_found", f"user {user_id}")

	def find_property_by_id(self, property_id, *, for_update: bool = False) -> Property:
		qs = Property.objects.using(self.using)
		if for_update:
			qs = qs.select_for_update()
		try:
			return qs.get(pk=property_id)
		except (Property.DoesNotExist, ValueError, TypeError):
			raise NotFound("property_not_found", f"property {property_id}")

	def find_order_by_id(self, order_id, *, for_update: bool = False) -> Order:
		qs = Order.objects.using(self.using).select_related("property", "user")
		if for_update:
			qs = qs.select_for_update()
		try:
			return qs.get(pk=order_id)
		except (Order.DoesNotExist, ValueError, TypeError):
			raise NotFound("order_not_found", f"order {order_id}")

	# --- Settlement writes ---------------------------------------------------

	def update_property_remaining_tokens(self, property_id, tokens: int) -> int:
		"""
		Decrement supply only if enough remains; returns the new remaining count.
		"""
		updated = (
			Property.objects.using(self.using)
			.filter(pk=property_id, remaining_tokens__gte=tokens)
			.update(remaining_tokens=F("remaining_tokens") - tokens)
		)
		prop = self.find_property_by_id(property_id)
		if not updated:
			raise InsufficientSupply(prop.remaining_tokens, tokens)
		return prop.remaining_tokens

	def upsert_holding(self, user_id, property_id, tokens: int) -> Holding:
		qs = Holding.objects.using(self.using)
		try:
			with transaction.atomic(using=self.using):
				holding, _ = qs.get_or_create(user_id=user_id, property_id=property_id, defaults={"tokens": 0})
		except IntegrityError:
			# Lost the insert race; the row exists now
			holding = qs.get(user_id=user_id, property_id=property_id)
		qs.filter(pk=holding.pk).update(tokens=F("tokens") + tokens)
		holding.refresh_from_db(using=self.using)
		return holding

	def create_order(self, *, user: User, prop: Property, tokens: int, amount: Decimal) -> Order:
		return Order.objects.using(self.using).create(
			user=user, property=prop, tokens=tokens, amount=amount, status=OrderStatus.PENDING,
		)

	def update_order_status(self, order: Order, status: str) -> Order:
		if ORDER_STATUS_RANK[str(status)] < ORDER_STATUS_RANK[str(order.status)]:
			raise InvalidInput("order_status_regression", f"order {order.pk}: {order.status} -> {status}")
		order.status = status
		order.save(using=self.using, update_fields=["status", "updated_at"])
		return order

	def create_certificate(self, *, order: Order, code: str, content_hash: str, issued_at) -> Certificate:
		return Certificate.objects.using(self.using).create(
			code=code,
			order=order,
			user_id=order.user_id,
			property_id=order.property_id,
			tokens=order.tokens,
			content_hash=content_hash,
			status=CertificateStatus.ISSUED,
			issued_at=issued_at,
		)

	def upsert_wallet(self, user_id) -> Wallet:
		"""
		Fetch-or-create the wallet and lock its row for the rest of the atomic block
		"""
		qs = Wallet.objects.using(self.using)
		try:
			with transaction.atomic(using=self.using):
				wallet, _ = qs.get_or_create(user_id=user_id, defaults={"cash_balance": Decimal("0.00")})
		except IntegrityError:
			wallet = qs.get(user_id=user_id)
		return qs.select_for_update().get(pk=wallet.pk)

	def update_wallet_balance(self, wallet: Wallet, delta: Decimal) -> Wallet:
		"""
		Apply a signed delta; a debit only lands if the balance covers it,
		a credit only if the result still fits the balance column.
		"""
		qs = Wallet.objects.using(self.using).filter(pk=wallet.pk)
		if delta < 0:
			qs = qs.filter(cash_balance__gte=-delta)
		else:
			qs = qs.filter(cash_balance__lte=CASH_MAX_BALANCE - delta)
		updated = qs.update(cash_balance=F("cash_balance") + delta)
		wallet.refresh_from_db(using=self.using)
		if not updated:
			if delta < 0:
				raise InsufficientFunds(wallet.cash_balance, -delta)
			raise InvalidInput("balance_limit_exceeded", f"balance {wallet.cash_balance} + {delta} exceeds {CASH_MAX_BALANCE}")
		return wallet

	def append_transaction(self, *, user_id, type: str, amount: Decimal, ref: str | None = None,
						   ledger_tx_id: str | None = None, note: str = "") -> Transaction:
		fields = dict(user_id=user_id, type=type, amount=amount, ledger_tx_id=ledger_tx_id, note=note)
		if ref is not None:
			fields["ref"] = ref
		return Transaction.objects.using(self.using).create(**fields)

	def find_certificate_by_code(self, code, *, for_update: bool = False) -> Certificate:
		qs = Certificate.objects.using(self.using).select_related("user", "property")
		if for_update:
			qs = qs.select_for_update()
		try:
			return qs.get(code=str(code))
		except Certificate.DoesNotExist:
			raise NotFound("certificate_not_found", f"certificate {code}")

	def revoke_certificate(self, certificate: Certificate, reason: str, revoked_at) -> Certificate:
		"""
		ISSUED -> REVOKED, guarded so only one caller wins
		"""
		updated = (
			Certificate.objects.using(self.using)
			.filter(pk=certificate.pk, status=CertificateStatus.ISSUED)
			.update(status=CertificateStatus.REVOKED, revoked_at=revoked_at, revocation_reason=reason)
		)
		if not updated:
			raise InvalidInput("certificate_already_revoked", f"certificate {certificate.code}")
		certificate.refresh_from_db(using=self.using)
		return certificate

	# --- Reconciliation reads ------------------------------------------------

	def list_approved_untokenized_properties(self):
		return list(
			Property.objects.using(self.using)
			.filter(status=PropertyStatus.APPROVED, ledger_tx_id__isnull=True)
			.order_by("id")
		)

	def list_issued_orders_missing_ledger_tx(self):
		# Order ids appear as the ref of their TOKEN_MINT sync marker
		synced_refs = (
			Transaction.objects.using(self.using)
			.filter(type=TransactionType.TOKEN_MINT, ledger_tx_id__isnull=False)
			.values("ref")
		)
		return list(
			Order.objects.using(self.using)
			.filter(status=OrderStatus.ISSUED)
			.annotate(ref_key=Cast("pk", output_field=CharField()))
			.exclude(ref_key__in=Subquery(synced_refs))
			.select_related("user", "property")
			.order_by("id")
		)

	def list_issued_certificates_missing_ledger_tx(self):
		"""
		Skips certificates whose deed the ledger already confirmed without a receipt
		"""
		unreported = (
			OnChainEvent.objects.using(self.using)
			.filter(action="IssueDeed", tx_id__isnull=True, certificate_id__isnull=False)
			.values("certificate_id")
		)
		return list(
			Certificate.objects.using(self.using)
			.filter(status=CertificateStatus.ISSUED, ledger_tx_id__isnull=True)
			.exclude(pk__in=Subquery(unreported))
			.order_by("id")
		)

	def find_onchain_event(self, *, action: str, property_id=None, order_id=None, certificate_id=None):
		qs = OnChainEvent.objects.using(self.using).filter(action=action)
		if property_id is not None:
			qs = qs.filter(property_id=property_id)
		if order_id is not None:
			qs = qs.filter(order_id=order_id)
		if certificate_id is not None:
			qs = qs.filter(certificate_id=certificate_id)
		return qs.order_by("id").first()

	# --- Reconciliation writes -----------------------------------------------

	def append_onchain_event(self, *, tx_id: str, action: str, payload: dict | None = None, **links) -> OnChainEvent:
		"""
		Idempotent per tx_id: re-recording the same receipt returns the existing row
		"""
		event, _ = OnChainEvent.objects.using(self.using).get_or_create(
			tx_id=tx_id,
			defaults=dict(action=action, payload=payload or {}, **links),
		)
		return event

	def append_unreported_onchain_event(self, *, action: str, payload: dict | None = None, **links) -> OnChainEvent:
		"""
		The ledger confirmed the record exists but gave no receipt; tx_id stays NULL
		"""
		qs = OnChainEvent.objects.using(self.using)
		event = qs.filter(action=action, tx_id__isnull=True, **links).first()
		if event is None:
			event = qs.create(tx_id=None, action=action, payload=payload or {}, **links)
		return event

	def set_property_ledger_tx(self, property_id, tx_id: str) -> None:
		Property.objects.using(self.using).filter(pk=property_id).update(ledger_tx_id=tx_id)

	def record_order_ledger_sync(self, order: Order, tx_id: str, note: str = "") -> Transaction:
		"""
		Write the sync marker for an order and propagate tx_id onto the order and its certificate
		"""
		with self.atomic():
			marker = self.append_transaction(
				user_id=order.user_id,
				type=TransactionType.TOKEN_MINT,
				amount=Decimal("0.00"),
				ref=str(order.pk),
				ledger_tx_id=tx_id,
				note=note,
			)
			Order.objects.using(self.using).filter(pk=order.pk).update(ledger_tx_id=tx_id)
			Certificate.objects.using(self.using).filter(order_id=order.pk).update(ledger_tx_id=tx_id)
			self.append_onchain_event(
				tx_id=tx_id,
				action="MintTokens",
				user_id=order.user_id,
				property_id=order.property_id,
				order_id=order.pk,
				payload={"tokens": order.tokens, "property_id": order.property_id, "user_id": str(order.user_id)},
			)
		return marker

	def set_certificate_ledger_tx(self, certificate_id, tx_id: str) -> None:
		Certificate.objects.using(self.using).filter(pk=certificate_id).update(ledger_tx_id=tx_id)

	def record_reconciliation_run(self, *, started_at, finished_at, categories, results, elapsed_seconds, ok) -> ReconciliationRun:
		return ReconciliationRun.objects.using(self.using).create(
			started_at=started_at,
			finished_at=finished_at,
			categories=list(categories),
			results=results,
			elapsed_seconds=elapsed_seconds,
			ok=ok,
		)
