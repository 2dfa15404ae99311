"""Deterministic card gateway for test and demo shops.

Outcomes are keyed off the card token so every branch of the payment flow can
be driven from the buyer side:

- ``3ds`` / ``challenge``: 3-D Secure challenge (redirect)
- ``fail`` / ``decline``: declined
- ``insufficient``: declined for insufficient funds
- ``pending``: left pending
- anything else: paid
"""
from __future__ import annotations

import hashlib
import logging
from typing import Dict
from urllib.parse import quote

from ..exceptions import ConnectorError
from .base import CardCharge, CardConnector, PaymentOutcome, ProcessorPayment

logger = logging.getLogger(__name__)


class MockCardConnector(CardConnector):
    processor = "mock"
    status_outcomes = {
        "succeeded": PaymentOutcome.SUCCEEDED,
        "pending": PaymentOutcome.PENDING,
        "requires_action": PaymentOutcome.PENDING,
        "declined": PaymentOutcome.FAILED,
        "insufficient_funds": PaymentOutcome.FAILED,
    }

    def __init__(self, base_url: str = "http://localhost:3000") -> None:
        self.base_url = base_url.rstrip("/")
        self._payments: Dict[str, ProcessorPayment] = {}

    @property
    def is_live(self) -> bool:
        return False

    @staticmethod
    def _status_for(token: str) -> str:
        lowered = token.lower()
        if "3ds" in lowered or "challenge" in lowered:
            return "requires_action"
        if "insufficient" in lowered:
            return "insufficient_funds"
        if "fail" in lowered or "decline" in lowered:
            return "declined"
        if "pending" in lowered:
            return "pending"
        return "succeeded"

    async def charge(self, charge: CardCharge) -> ProcessorPayment:
        seed = f"{charge.reference}|{charge.amount}|{charge.token}"
        payment_id = f"mock_{hashlib.sha256(seed.encode()).hexdigest()[:16]}"
        existing = self._payments.get(payment_id)
        if existing is not None:
            return existing

        status = self._status_for(charge.token)
        checkout_url = None
        if status == "requires_action":
            checkout_url = f"{self.base_url}/mock-3ds?payment={quote(payment_id)}"
        payment = ProcessorPayment(id=payment_id, status=status, checkout_url=checkout_url)
        self._payments[payment_id] = payment
        logger.info(f"Mock card payment created: payment_id={payment_id}, status={status}")
        return payment

    async def get_payment(self, payment_id: str) -> ProcessorPayment:
        payment = self._payments.get(payment_id)
        if payment is None:
            raise ConnectorError(f"mock payment {payment_id} not found", "mock", status_code=404)
        return ProcessorPayment(id=payment.id, status=payment.status)

    def complete_payment(self, payment_id: str, status: str = "succeeded") -> None:
        """Simulate the outcome of a 3-D Secure challenge or a settlement."""
        if payment_id not in self._payments:
            raise KeyError(payment_id)
        self._payments[payment_id] = ProcessorPayment(id=payment_id, status=status)


__all__ = ["MockCardConnector"]
