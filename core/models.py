"""Database models for the settlement ledger.


Tables:
- User: investor / owner identity
- PropertyStatus, Property: tokenized asset with fixed total supply
- OrderStatus, Order: purchase request; PENDING until confirmed, then ISSUED
- Holding: cumulative tokens per (user, property)
- CertificateStatus, Certificate: ownership certificate, one per issued order
- Wallet: simulated cash balance per user
- TransactionType, Transaction: append-only cash/token movement log
- OnChainEvent: audit mirror of every successful ledger submission
- ReconciliationRun: one row per (non-dry) reconciliation batch
"""

import uuid
from django.db import models
from django.utils.timezone import now


class User(models.Model):
	"""
	Platform identity; email is what the ledger sees for investments
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	email = models.EmailField(unique=True)
	display_name = models.CharField(max_length=200, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)


class PropertyStatus(models.TextChoices):
	DRAFT = "DRAFT", "Draft"
	PENDING = "PENDING", "Pending"
	APPROVED = "APPROVED", "Approved"
	REJECTED = "REJECTED", "Rejected"


class Property(models.Model):
	"""
	remaining_tokens + sum(holdings.tokens) == total_tokens at all times.
	remaining_tokens defaults to total_tokens on first save.
	"""
	id = models.BigAutoField(primary_key=True)
	title = models.CharField(max_length=200)
	location = models.CharField(max_length=200, blank=True, default="")
	total_tokens = models.PositiveIntegerField()
	remaining_tokens = models.PositiveIntegerField()
	token_price = models.DecimalField(max_digits=18, decimal_places=2)
	status = models.CharField(max_length=16, choices=PropertyStatus.choices, default=PropertyStatus.DRAFT)
	ledger_tx_id = models.CharField(max_length=128, null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		verbose_name_plural = "properties"

	def save(self, *args, **kwargs):
		if self._state.adding and self.remaining_tokens is None:
			self.remaining_tokens = self.total_tokens
		super().save(*args, **kwargs)


class OrderStatus(models.TextChoices):
	PENDING = "PENDING", "Pending"
	PAID = "PAID", "Paid"
	ISSUED = "ISSUED", "Issued"


# Forward-only; ISSUED is terminal
ORDER_STATUS_RANK = {OrderStatus.PENDING.value: 0, OrderStatus.PAID.value: 1, OrderStatus.ISSUED.value: 2}


class Order(models.Model):
	"""
	amount is tokens * token_price at creation time and never recomputed
	"""
	id = models.BigAutoField(primary_key=True)
	user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="orders")
	property = models.ForeignKey(Property, on_delete=models.PROTECT, related_name="orders")
	tokens = models.PositiveIntegerField()
	amount = models.DecimalField(max_digits=20, decimal_places=2)
	status = models.CharField(max_length=16, choices=OrderStatus.choices, default=OrderStatus.PENDING)
	transaction_hash = models.CharField(max_length=128, null=True, blank=True)
	ledger_tx_id = models.CharField(max_length=128, null=True, blank=True)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)


class Holding(models.Model):
	id = models.BigAutoField(primary_key=True)
	user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="holdings")
	property = models.ForeignKey(Property, on_delete=models.PROTECT, related_name="holdings")
	tokens = models.PositiveIntegerField(default=0)
	created_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		constraints = [
			models.UniqueConstraint(fields=["user", "property"], name="uq_holding_user_property"),
		]


class CertificateStatus(models.TextChoices):
	ISSUED = "ISSUED", "Issued"
	REVOKED = "REVOKED", "Revoked"


class Certificate(models.Model):
	"""
	Ownership certificate; code is the human-readable identifier printed on the deed.
	content_hash is what the ledger anchors.
	"""
	id = models.BigAutoField(primary_key=True)
	code = models.CharField(max_length=40, unique=True)
	order = models.OneToOneField(Order, on_delete=models.PROTECT, related_name="certificate")
	user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="certificates")
	property = models.ForeignKey(Property, on_delete=models.PROTECT, related_name="certificates")
	tokens = models.PositiveIntegerField()
	content_hash = models.CharField(max_length=64)
	status = models.CharField(max_length=16, choices=CertificateStatus.choices, default=CertificateStatus.ISSUED)
	ledger_tx_id = models.CharField(max_length=128, null=True, blank=True)
	issued_at = models.DateTimeField(default=now)
	revoked_at = models.DateTimeField(null=True, blank=True)
	revocation_reason = models.TextField(blank=True, default="")


class Wallet(models.Model):
	"""
	Simulated cash wallet; cash_balance is never negative
	"""
	id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
	user = models.OneToOneField(User, on_delete=models.PROTECT, related_name="wallet")
	cash_balance = models.DecimalField(max_digits=20, decimal_places=2, default=0)
	created_at = models.DateTimeField(auto_now_add=True)
	updated_at = models.DateTimeField(auto_now=True)


class TransactionType(models.TextChoices):
	DEPOSIT = "DEPOSIT", "Deposit"
	WITHDRAWAL = "WITHDRAWAL", "Withdrawal"
	TOKEN_MINT = "TOKEN_MINT", "Token mint"


def gen_transaction_ref():
	# Named function = migration-friendly
	return f"TX-{uuid.uuid4().hex[:16]}"


class Transaction(models.Model):
	"""
	Append-only. ref is the order id for order-related rows, otherwise a fresh reference.
	TOKEN_MINT rows with ref=<order id> and a ledger_tx_id mark an order as synced.
	"""
	id = models.BigAutoField(primary_key=True)
	user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="transactions")
	type = models.CharField(max_length=16, choices=TransactionType.choices)
	amount = models.DecimalField(max_digits=20, decimal_places=2)
	ref = models.CharField(max_length=64, blank=True, default=gen_transaction_ref, db_index=True)
	ledger_tx_id = models.CharField(max_length=128, null=True, blank=True)
	note = models.TextField(blank=True, default="")
	created_at = models.DateTimeField(auto_now_add=True)


class OnChainEvent(models.Model):
	"""
	Idempotent record of successful ledger submissions. Uniqueness: tx_id.
	action is the contract function; reconciliation resumes from these rows.
	tx_id is NULL only when the ledger confirmed the record but reported no receipt.
	"""
	id = models.BigAutoField(primary_key=True)
	tx_id = models.CharField(max_length=128, unique=True, null=True, blank=True)
	action = models.CharField(max_length=64)
	user = models.ForeignKey(User, null=True, blank=True, on_delete=models.SET_NULL, related_name="onchain_events")
	property = models.ForeignKey(Property, null=True, blank=True, on_delete=models.SET_NULL, related_name="onchain_events")
	order = models.ForeignKey(Order, null=True, blank=True, on_delete=models.SET_NULL, related_name="onchain_events")
	certificate = models.ForeignKey(Certificate, null=True, blank=True, on_delete=models.SET_NULL, related_name="onchain_events")
	payload = models.JSONField(default=dict, blank=True)
	recorded_at = models.DateTimeField(auto_now_add=True)

	class Meta:
		indexes = [
			models.Index(fields=["property", "action"]),
		]


class ReconciliationRun(models.Model):
	"""
	Summary of one reconciliation batch (dry runs are not recorded).
	"""
	id = models.BigAutoField(primary_key=True)
	started_at = models.DateTimeField()
	finished_at = models.DateTimeField()
	categories = models.JSONField(default=list)
	results = models.JSONField(default=dict)
	elapsed_seconds = models.FloatField()
	ok = models.BooleanField(default=True)
	created_at = models.DateTimeField(auto_now_add=True)
