# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Payment gateway abstraction.

The enrollment service talks to a PaymentGateway: it creates an order
before the student pays and verifies the signed callback afterwards.
StubPaymentGateway signs callbacks the way hosted gateways do, with
HMAC-SHA256 over ``order_id|payment_id`` keyed by the merchant secret, so
the verification path is exercised end to end without a real provider.

Example:
    >>> gateway = StubPaymentGateway(settings.payment)
    >>> order = await gateway.create_order(5000.0, "INR", receipt="enr_1")
    >>> signature = gateway.sign(order.order_id, "pay_1")
    >>> await gateway.verify(order.order_id, "pay_1", signature)
    True
"""

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol, runtime_checkable

from academy.core.config.settings import PaymentSettings
from academy.utils.datetime import utc_now

logger = logging.getLogger(__name__)


@dataclass
class PaymentOrder:
    """An order created with the gateway.

    Attributes:
        order_id: Gateway order identifier.
        amount: Amount in the smallest currency unit.
        currency: ISO currency code.
        receipt: Merchant reference.
        status: Gateway order status.
    """

    order_id: str
    amount: int
    currency: str
    receipt: str
    status: str = "created"
    created_at: datetime = field(default_factory=utc_now)


@runtime_checkable
class PaymentGateway(Protocol):
    async def create_order(self, amount: float, currency: str, receipt: str) -> PaymentOrder: ...

    async def verify(self, order_id: str, payment_id: str, signature: str) -> bool: ...


class StubPaymentGateway:
    """Offline gateway with real signature verification."""

    provider = "stub"

    def __init__(self, settings: PaymentSettings) -> None:
        self._secret = settings.key_secret.get_secret_value().encode()

    async def create_order(self, amount: float, currency: str, receipt: str) -> PaymentOrder:
        order = PaymentOrder(
            order_id=f"order_{secrets.token_hex(8)}",
            amount=round(amount * 100),
            currency=currency,
            receipt=receipt,
        )
        logger.info("Created payment order %s for %.2f %s", order.order_id, amount, currency)
        return order

    def sign(self, order_id: str, payment_id: str) -> str:
        """Signature the gateway attaches to a successful payment."""
        body = f"{order_id}|{payment_id}".encode()
        return hmac.new(self._secret, body, hashlib.sha256).hexdigest()

    async def verify(self, order_id: str, payment_id: str, signature: str) -> bool:
        return hmac.compare_digest(self.sign(order_id, payment_id), signature)
