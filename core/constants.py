"""Quantity parsing and identifier helpers shared across the settlement ledger.


- parse_tokens / parse_cash validate caller-supplied quantities.
- gen_certificate_code / certificate_content_hash build the certificate identity.
"""

import hashlib
import json
import uuid
from decimal import Decimal, InvalidOperation

from django.conf import settings

from .errors import InvalidInput

CASH_DECIMAL_PLACES = getattr(settings, "CASH_DECIMAL_PLACES", 2)
CASH_QUANTUM = Decimal(1).scaleb(-CASH_DECIMAL_PLACES)
# Ceiling for any cash amount or balance: well inside the DecimalField(max_digits=20)
# cash columns, and exact on sqlite, which reads decimals back at 15 significant digits
CASH_MAX_BALANCE = Decimal("999999999999999.99")
CERTIFICATE_CODE_PREFIX = getattr(settings, "CERTIFICATE_CODE_PREFIX", "CERT")


def parse_tokens(value) -> int:
    """
    Accept a positive whole token count (int, integral Decimal/float, or digit string)
    """
    if isinstance(value, bool) or value is None:
        raise InvalidInput("invalid_tokens", f"tokens must be a positive integer, got {value!r}")
    try:
        as_decimal = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidInput("invalid_tokens", f"tokens must be a positive integer, got {value!r}")
    if not as_decimal.is_finite() or as_decimal != as_decimal.to_integral_value() or as_decimal <= 0:
        raise InvalidInput("invalid_tokens", f"tokens must be a positive integer, got {value!r}")
    return int(as_decimal)


def parse_cash(value) -> Decimal:
    """
    Convert a caller amount (str/int/Decimal) into a positive, finite 2-decimal Decimal.
    Floats go through str() so 0.1 stays 0.1.
    """
    if isinstance(value, bool) or value is None:
        raise InvalidInput("invalid_amount", f"amount must be a positive number, got {value!r}")
    try:
        amount = Decimal(str(value).strip())
    except InvalidOperation:
        raise InvalidInput("invalid_amount", f"amount must be a positive number, got {value!r}")
    if not amount.is_finite() or amount <= 0:
        raise InvalidInput("invalid_amount", f"amount must be a positive number, got {value!r}")
    if amount > CASH_MAX_BALANCE:
        raise InvalidInput("invalid_amount", f"amount must not exceed {CASH_MAX_BALANCE}")
    try:
        quantized = amount.quantize(CASH_QUANTUM)
    except InvalidOperation:
        raise InvalidInput("invalid_amount", f"amount cannot be represented: {value!r}")
    if amount != quantized:
        raise InvalidInput("invalid_amount", f"amount supports at most {CASH_DECIMAL_PLACES} decimal places")
    return quantized


def gen_certificate_code(issued_at) -> str:
    """
    e.g. CERT-2026-5F3A9C1D2E
    """
    return f"{CERTIFICATE_CODE_PREFIX}-{issued_at.year}-{uuid.uuid4().hex[:10].upper()}"


def certificate_content_hash(*, code: str, user_id, property_id, tokens: int, issued_at) -> str:
    """
    SHA-256 over the canonical JSON of the certificate's identifying fields
    """
    data = json.dumps(
        {
            "code": code,
            "user_id": str(user_id),
            "property_id": str(property_id),
            "tokens": int(tokens),
            "issued_at": issued_at.isoformat(),
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return hashlib.sha256(data.encode("utf-8")).hexdigest()
