"""
Mock payment processor.

No gateway is contacted.  The three supported methods always succeed and
return a fake reference; anything else fails before a booking is created.
"""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime

logger = logging.getLogger(__name__)

# method → (reference prefix, display label)
PAYMENT_METHODS: dict[str, tuple[str, str]] = {
    "card": ("pmt_", "Credit/Debit Card"),
    "wallet": ("wl_", "Mobile Wallet"),
    "netbanking": ("nb_", "Net Banking"),
}


class PaymentError(Exception):
    """The mock processor rejected the payment."""


@dataclass(frozen=True)
class PaymentResult:
    reference: str
    method: str
    label: str
    amount: float
    processed_at: datetime = field(default_factory=datetime.utcnow)


def process_payment(method: str, amount: float) -> PaymentResult:
    """
    Raises:
        PaymentError: unsupported method or non-positive amount.
    """
    if method not in PAYMENT_METHODS:
        raise PaymentError(f"Invalid payment method {method!r}.")
    if amount <= 0:
        raise PaymentError(f"Payment amount must be positive, got {amount}.")
    prefix, label = PAYMENT_METHODS[method]
    result = PaymentResult(
        reference=prefix + secrets.token_hex(6),
        method=method,
        label=label,
        amount=amount,
    )
    logger.info("Mock payment %s: %.2f via %s.", result.reference, amount, label)
    return result
