"""Reconciliation engine: replays settled off-chain state onto the distributed ledger.

Categories run in a fixed order (properties, payments, certificates) so a
property is tokenized on the ledger before its orders are minted.

Idempotence comes from the store, not from a job queue: every run recomputes
its candidates (`ledger_tx_id IS NULL` style selections), every receipt is
recorded as an OnChainEvent before the next dependent step, and "already
exists" rejections are read as success. There is no internal retry; operators
re-run the batch.
"""

import logging
import time
from dataclasses import dataclass, field

from django.utils import timezone

from .adapters.chain_adapter import LedgerClient, build_ledger_client
from .config import LedgerConfig
from .errors import LedgerDisabled, LedgerSubmissionFailed, LedgerAlreadyRecorded, InvalidInput
from .store import LedgerStore

logger = logging.getLogger(__name__)

CATEGORIES = ("properties", "payments", "certificates")
PROPERTY_STEPS = ("RegisterProperty", "ApproveProperty", "TokenizeProperty")
# Rejection a step gets when an earlier, unrecorded submission already applied it.
# Only meaningful in sequence: the preceding step has just been confirmed.
STEP_ALREADY_APPLIED = {
	"ApproveProperty": "property_not_pending",
	"TokenizeProperty": "property_not_approved",
}
SOURCE = "reconciliation"


@dataclass
class CategoryResult:
	processed: int = 0
	synced: int = 0
	failed: int = 0

	def to_dict(self) -> dict:
		return {"processed": self.processed, "synced": self.synced, "failed": self.failed}


@dataclass
class RunSummary:
	results: dict = field(default_factory=dict)
	elapsed_seconds: float = 0.0
	dry_run: bool = False

	@property
	def ok(self) -> bool:
		return all(r.failed == 0 for r in self.results.values())

	def to_dict(self) -> dict:
		return {
			"results": {name: r.to_dict() for name, r in self.results.items()},
			"elapsed_seconds": self.elapsed_seconds,
			"dry_run": self.dry_run,
			"ok": self.ok,
		}


class ReconciliationEngine:

	def __init__(self, store: LedgerStore, client: LedgerClient, config: LedgerConfig):
		if not config.enabled:
			raise LedgerDisabled(detail="ledger integration is disabled; set LEDGER_ENABLED=1")
		self.store = store
		self.client = client
		self.config = config

	def run(self, categories=None, *, dry_run: bool = False) -> RunSummary:
		selected = self._resolve_categories(categories)
		started_at = timezone.now()
		t0 = time.monotonic()
		if dry_run:
			logger.info("DRY RUN: no ledger submissions or store writes will be performed")

		summary = RunSummary(dry_run=dry_run)
		for name in CATEGORIES:
			if name in selected:
				summary.results[name] = getattr(self, f"sync_{name}")(dry_run=dry_run)
		summary.elapsed_seconds = round(time.monotonic() - t0, 3)

		for name, result in summary.results.items():
			logger.info("%s: %s synced, %s failed (of %s)", name, result.synced, result.failed, result.processed)
		logger.info("reconciliation complete in %.2fs", summary.elapsed_seconds)

		if not dry_run:
			self.store.record_reconciliation_run(
				started_at=started_at,
				finished_at=timezone.now(),
				categories=[n for n in CATEGORIES if n in selected],
				results={n: r.to_dict() for n, r in summary.results.items()},
				elapsed_seconds=summary.elapsed_seconds,
				ok=summary.ok,
			)
		return summary

	def _resolve_categories(self, categories) -> set:
		if not categories:
			return set(CATEGORIES)
		selected = set(categories)
		unknown = selected.difference(CATEGORIES)
		if unknown:
			raise InvalidInput("unknown_category", ", ".join(sorted(unknown)))
		return selected

	# --- Ledger calls --------------------------------------------------------

	def _submit(self, function: str, *args) -> str:
		receipt = self.client.submit(self.config.contract, function, *args)
		return receipt["tx_id"]

	def _submit_idempotent(self, function: str, *args) -> str | None:
		"""
		Submit; an already-exists rejection counts as success and yields the
		existing receipt if the ledger reported one (else None).
		"""
		try:
			return self._submit(function, *args)
		except LedgerAlreadyRecorded as e:
			logger.warning("  %s already recorded on ledger (%s)", function, e.code)
			return e.tx_id

	def _submit_step(self, step: str, *args) -> str | None:
		"""
		Property step submission; a step the ledger has already moved past counts
		as done, with the receipt the ledger reports for it (if any).
		"""
		try:
			return self._submit_idempotent(step, *args)
		except LedgerSubmissionFailed as e:
			if e.reason != LedgerSubmissionFailed.REJECTED or e.code != STEP_ALREADY_APPLIED.get(step):
				raise
			logger.warning("  %s already applied on ledger (%s)", step, e.code)
			return e.tx_id

	# --- Properties ----------------------------------------------------------

	def sync_properties(self, *, dry_run: bool = False) -> CategoryResult:
		result = CategoryResult()
		properties = self.store.list_approved_untokenized_properties()
		logger.info("found %s approved properties without a ledger tx id", len(properties))

		for prop in properties:
			result.processed += 1
			logger.info("property #%s: %s", prop.pk, prop.title)
			try:
				if dry_run:
					pending = [s for s in PROPERTY_STEPS if self.store.find_onchain_event(action=s, property_id=prop.pk) is None]
					logger.info("  [dry run] would submit: %s", ", ".join(pending) or "none (tokenize receipt on file)")
					result.synced += 1
					continue
				tx_id = self._sync_property(prop)
				logger.info("  tokenized: %s", tx_id)
				result.synced += 1
			except LedgerSubmissionFailed as e:
				logger.error("  failed: %s", e)
				result.failed += 1
			except Exception:
				logger.exception("  failed: unexpected error syncing property #%s", prop.pk)
				result.failed += 1
		return result

	def _sync_property(self, prop) -> str:
		"""
		register -> approve -> tokenize, skipping steps whose receipt is already on file
		"""
		step_args = {
			"RegisterProperty": (prop.pk, prop.title, prop.location, prop.total_tokens),
			"ApproveProperty": (prop.pk,),
			"TokenizeProperty": (prop.pk,),
		}
		receipts = {}
		for step in PROPERTY_STEPS:
			event = self.store.find_onchain_event(action=step, property_id=prop.pk)
			if event is not None:
				logger.info("  %s already on file: %s", step, event.tx_id)
				receipts[step] = event.tx_id
				continue

			tx_id = self._submit_step(step, *step_args[step])
			if tx_id is None:
				continue
			self.store.append_onchain_event(
				tx_id=tx_id,
				action=step,
				property_id=prop.pk,
				payload={"property_id": prop.pk, "title": prop.title, "total_tokens": prop.total_tokens, "source": SOURCE},
			)
			logger.info("  %s: %s", step, tx_id)
			receipts[step] = tx_id

		tokenize_tx = receipts.get("TokenizeProperty")
		if not tokenize_tx:
			raise LedgerSubmissionFailed(
				"tokenize_receipt_missing",
				f"property {prop.pk} is tokenized on the ledger but no receipt is on file",
				function="TokenizeProperty",
			)
		self.store.set_property_ledger_tx(prop.pk, tokenize_tx)
		return tokenize_tx

	# --- Payments ------------------------------------------------------------

	def sync_payments(self, *, dry_run: bool = False) -> CategoryResult:
		result = CategoryResult()
		orders = self.store.list_issued_orders_missing_ledger_tx()
		logger.info("found %s issued orders needing ledger sync", len(orders))

		for order in orders:
			result.processed += 1
			logger.info("order #%s: %s tokens of property #%s", order.pk, order.tokens, order.property_id)
			try:
				if dry_run:
					logger.info("  [dry run] would mint tokens and record the investment")
					result.synced += 1
					continue
				self._sync_order(order)
				result.synced += 1
			except LedgerSubmissionFailed as e:
				logger.error("  failed: %s", e)
				result.failed += 1
			except Exception:
				logger.exception("  failed: unexpected error syncing order #%s", order.pk)
				result.failed += 1
		return result

	def _sync_order(self, order) -> str:
		mint_tx = self._submit_idempotent("MintTokens", order.property_id, order.user_id, order.tokens, order.pk)
		if mint_tx is None:
			event = self.store.find_onchain_event(action="MintTokens", order_id=order.pk)
			if event is None:
				raise LedgerSubmissionFailed(
					"mint_receipt_missing",
					f"order {order.pk} is minted on the ledger but no receipt is on file",
					function="MintTokens",
				)
			mint_tx = event.tx_id
		self.store.record_order_ledger_sync(
			order, mint_tx, note=f"ledger sync: {order.tokens} tokens minted for property {order.property_id}",
		)
		logger.info("  tokens minted: %s", mint_tx)

		# Best effort: the mint is the record of ownership
		try:
			invest_tx = self._submit("InvestProperty", order.property_id, order.user.email, order.tokens)
		except LedgerSubmissionFailed as e:
			logger.warning("  investment record failed (tokens minted): %s", e)
		else:
			self.store.append_onchain_event(
				tx_id=invest_tx,
				action="InvestProperty",
				user_id=order.user_id,
				property_id=order.property_id,
				order_id=order.pk,
				payload={"investor": order.user.email, "tokens": order.tokens, "source": SOURCE},
			)
			logger.info("  investment recorded: %s", invest_tx)
		return mint_tx

	# --- Certificates --------------------------------------------------------

	def sync_certificates(self, *, dry_run: bool = False) -> CategoryResult:
		result = CategoryResult()
		certificates = self.store.list_issued_certificates_missing_ledger_tx()
		logger.info("found %s issued certificates without a ledger tx id", len(certificates))

		for cert in certificates:
			result.processed += 1
			logger.info("certificate %s: user %s, property #%s", cert.code, cert.user_id, cert.property_id)
			try:
				if dry_run:
					logger.info("  [dry run] would issue deed on ledger")
					result.synced += 1
					continue
				self._sync_certificate(cert)
				result.synced += 1
			except LedgerSubmissionFailed as e:
				logger.error("  failed: %s", e)
				result.failed += 1
			except Exception:
				logger.exception("  failed: unexpected error syncing certificate %s", cert.code)
				result.failed += 1
		return result

	def _sync_certificate(self, cert) -> str | None:
		tx_id = self._submit_idempotent(
			"IssueDeed", cert.code, cert.user_id, cert.property_id, cert.tokens, cert.content_hash, cert.order_id,
		)
		if tx_id is None:
			logger.warning("  deed %s exists on ledger; no receipt reported, leaving ledger_tx_id empty", cert.code)
			self.store.append_unreported_onchain_event(
				action="IssueDeed",
				user_id=cert.user_id,
				property_id=cert.property_id,
				order_id=cert.order_id,
				certificate_id=cert.pk,
				payload={"code": cert.code, "receipt": "unreported", "source": SOURCE},
			)
			return None
		self.store.set_certificate_ledger_tx(cert.pk, tx_id)
		self.store.append_onchain_event(
			tx_id=tx_id,
			action="IssueDeed",
			user_id=cert.user_id,
			property_id=cert.property_id,
			order_id=cert.order_id,
			certificate_id=cert.pk,
			payload={"code": cert.code, "tokens": cert.tokens, "content_hash": cert.content_hash, "source": SOURCE},
		)
		logger.info("  deed issued: %s", tx_id)
		return tx_id


def build_reconciliation_engine(using: str = "default", config: LedgerConfig | None = None) -> ReconciliationEngine:
	"""
	Wire an engine from settings; raises LedgerDisabled before touching the ledger client
	"""
	config = config or LedgerConfig.from_settings()
	if not config.enabled:
		raise LedgerDisabled(detail="ledger integration is disabled; set LEDGER_ENABLED=1")
	return ReconciliationEngine(LedgerStore(using), build_ledger_client(config), config)
