"""Public API surface for settlement.

- /orders, /payments/confirm: purchase flow
- /tokens/mint: administrative issuance
- /certificates/verify, /certificates/revoke: ownership certificate checks
- /wallet, /wallet/deposit, /wallet/withdraw: simulated cash wallet
"""

from django.urls import path
from .views_ops import (
	health, create_order, confirm_payment, mint_tokens, deposit, withdraw, verify_certificate, revoke_certificate,
)
from .views_read import wallet


urlpatterns = [
	path("health", health),
	path("orders", create_order),
	path("payments/confirm", confirm_payment),
	path("tokens/mint", mint_tokens),
	path("certificates/verify", verify_certificate),
	path("certificates/revoke", revoke_certificate),
	path("wallet", wallet),
	path("wallet/deposit", deposit),
	path("wallet/withdraw", withdraw),
]
