"""Value objects built once from Django settings and passed into the engines."""

from dataclasses import dataclass
from decimal import Decimal

from django.conf import settings


@dataclass(frozen=True)
class LedgerConfig:
	enabled: bool = True
	backend: str = "stub"
	contract: str = "estathub"
	gateway_url: str = ""
	timeout: float = 10.0

	@classmethod
	def from_settings(cls) -> "LedgerConfig":
		conf = getattr(settings, "LEDGER", {})
		return cls(
			enabled=bool(conf.get("ENABLED", True)),
			backend=conf.get("BACKEND", "stub"),
			contract=conf.get("CONTRACT", "estathub"),
			gateway_url=conf.get("GATEWAY_URL", ""),
			timeout=float(conf.get("TIMEOUT", 10)),
		)


@dataclass(frozen=True)
class SettlementLimits:
	min_investment: Decimal | None = None
	max_investment: Decimal | None = None

	@classmethod
	def from_settings(cls) -> "SettlementLimits":
		conf = getattr(settings, "SETTLEMENT", {})
		return cls(
			min_investment=conf.get("MIN_INVESTMENT_AMOUNT"),
			max_investment=conf.get("MAX_INVESTMENT_AMOUNT"),
		)
