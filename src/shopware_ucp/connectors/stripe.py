"""Stripe PaymentIntents connector."""
from __future__ import annotations

from typing import Any, Dict, Optional

import httpx

from .base import (
    CardCharge,
    CardConnector,
    HttpConnector,
    PaymentOutcome,
    ProcessorPayment,
    require_field,
)

STRIPE_STATUS_OUTCOMES = {
    "succeeded": PaymentOutcome.SUCCEEDED,
    "processing": PaymentOutcome.PENDING,
    "requires_capture": PaymentOutcome.PENDING,
    "requires_confirmation": PaymentOutcome.PENDING,
    "requires_action": PaymentOutcome.PENDING,
    "requires_payment_method": PaymentOutcome.FAILED,
    "canceled": PaymentOutcome.FAILED,
}


class StripeConnector(HttpConnector, CardConnector):
    """Charges tokenized cards through Stripe PaymentIntents."""

    processor = "stripe"
    status_outcomes = STRIPE_STATUS_OUTCOMES

    def __init__(
        self,
        api_key: str,
        api_base: str = "https://api.stripe.com/v1",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(api_key=api_key, api_base=api_base, timeout=timeout, client=client)

    @staticmethod
    def _parse_intent(body: Dict[str, Any]) -> ProcessorPayment:
        next_action = body.get("next_action") or {}
        redirect = next_action.get("redirect_to_url") or {}
        return ProcessorPayment(
            id=require_field(body, "id", "stripe"),
            status=require_field(body, "status", "stripe"),
            checkout_url=redirect.get("url") or None,
            raw=body,
        )

    async def charge(self, charge: CardCharge) -> ProcessorPayment:
        """Create and confirm a PaymentIntent in one call."""
        # Stripe takes form-encoded bodies with bracketed keys
        data: Dict[str, Any] = {
            "amount": charge.amount,
            "currency": charge.currency.lower(),
            "confirm": "true",
            "description": charge.description,
            "return_url": charge.return_url,
            "payment_method_data[type]": "card",
            "payment_method_data[card][token]": charge.token,
        }
        for key, value in charge.metadata.items():
            data[f"metadata[{key}]"] = value

        body = await self._request("POST", "/payment_intents", data=data)
        return self._parse_intent(body)

    async def get_payment(self, payment_id: str) -> ProcessorPayment:
        body = await self._request("GET", f"/payment_intents/{payment_id}")
        return self._parse_intent(body)

    async def ping(self) -> bool:
        await self._request("GET", "/balance")
        return True


__all__ = ["STRIPE_STATUS_OUTCOMES", "StripeConnector"]
