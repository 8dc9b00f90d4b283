"""In-process ledger state to simulate the permissioned chain's world state"""

import uuid
from django.db import models
from django.utils.timezone import now


def gen_stub_tx_id():
	# Fabric-style 64 hex chars
	return uuid.uuid4().hex + uuid.uuid4().hex


class ChainStubTx(models.Model):
	"""
	Append-only receipt log: one row per accepted submission
	"""
	id = models.BigAutoField(primary_key=True)
	tx_id = models.CharField(max_length=128, unique=True, default=gen_stub_tx_id)
	contract = models.CharField(max_length=64)
	function = models.CharField(max_length=64)
	args = models.JSONField(default=list)
	committed_at = models.DateTimeField(default=now)


class ChainStubProperty(models.Model):
	"""
	Property asset as the contract sees it: PENDING -> APPROVED -> TOKENIZED
	"""
	id = models.BigAutoField(primary_key=True)
	property_key = models.CharField(max_length=64, unique=True)
	title = models.CharField(max_length=200)
	location = models.CharField(max_length=200, blank=True, default="")
	total_tokens = models.BigIntegerField()
	remaining_tokens = models.BigIntegerField()
	status = models.CharField(max_length=16, default="PENDING")
	register_tx_id = models.CharField(max_length=128)
	approve_tx_id = models.CharField(max_length=128, blank=True, default="")
	tokenize_tx_id = models.CharField(max_length=128, blank=True, default="")


class ChainStubHolding(models.Model):
	id = models.BigAutoField(primary_key=True)
	property_key = models.CharField(max_length=64)
	holder_key = models.CharField(max_length=254)
	tokens = models.BigIntegerField(default=0)

	class Meta:
		unique_together = (("property_key", "holder_key"),)


class ChainStubMint(models.Model):
	"""
	One mint per order id
	"""
	id = models.BigAutoField(primary_key=True)
	order_key = models.CharField(max_length=64, unique=True)
	tx_id = models.CharField(max_length=128)


class ChainStubDeed(models.Model):
	id = models.BigAutoField(primary_key=True)
	deed_number = models.CharField(max_length=64, unique=True)
	holder_key = models.CharField(max_length=64)
	property_key = models.CharField(max_length=64)
	owned_tokens = models.BigIntegerField()
	deed_hash = models.CharField(max_length=64)
	order_key = models.CharField(max_length=64, blank=True, default="")
	tx_id = models.CharField(max_length=128)
