"""Mollie Payments API connector and its deterministic test double."""
from __future__ import annotations

import hashlib
import logging
from typing import Any, Dict, Optional

import httpx

from ..exceptions import ConnectorError
from ..money import format_major
from .base import (
    CardCharge,
    CardConnector,
    HttpConnector,
    PaymentOutcome,
    ProcessorPayment,
    require_field,
)

logger = logging.getLogger(__name__)

MOLLIE_STATUS_OUTCOMES = {
    "paid": PaymentOutcome.SUCCEEDED,
    "authorized": PaymentOutcome.PENDING,  # captured later; only "paid" settles
    "open": PaymentOutcome.PENDING,
    "pending": PaymentOutcome.PENDING,
    "failed": PaymentOutcome.FAILED,
    "canceled": PaymentOutcome.FAILED,
    "expired": PaymentOutcome.FAILED,
}

# Methods that always send the customer to a hosted page
MOLLIE_REDIRECT_METHODS = frozenset({
    "ideal",
    "bancontact",
    "eps",
    "giropay",
    "sofort",
    "paypal",
    "klarnapaylater",
})


def build_payment_request(
    *,
    amount: int,
    currency: str,
    description: str,
    redirect_url: str,
    method: str,
    webhook_url: Optional[str] = None,
    metadata: Optional[Dict[str, str]] = None,
    card_token: Optional[str] = None,
    issuer: Optional[str] = None,
) -> Dict[str, Any]:
    """Body for ``POST /payments``; the amount goes out in major units."""
    payload: Dict[str, Any] = {
        "amount": {"currency": currency, "value": format_major(amount)},
        "description": description,
        "redirectUrl": redirect_url,
        "method": method,
        "metadata": dict(metadata or {}),
    }
    if webhook_url:
        payload["webhookUrl"] = webhook_url
    if card_token:
        payload["cardToken"] = card_token
    if issuer:
        payload["issuer"] = issuer
    return payload


def parse_payment(body: Dict[str, Any]) -> ProcessorPayment:
    links = body.get("_links") or {}
    checkout = links.get("checkout") or {}
    return ProcessorPayment(
        id=require_field(body, "id", "mollie"),
        status=require_field(body, "status", "mollie"),
        checkout_url=checkout.get("href") or None,
        raw=body,
    )


class MollieConnector(HttpConnector, CardConnector):
    """Live Mollie connector."""

    processor = "mollie"
    status_outcomes = MOLLIE_STATUS_OUTCOMES

    def __init__(
        self,
        api_key: str,
        api_base: str = "https://api.mollie.com/v2",
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        super().__init__(api_key=api_key, api_base=api_base, timeout=timeout, client=client)

    async def create_payment(self, payload: Dict[str, Any]) -> ProcessorPayment:
        body = await self._request("POST", "/payments", json=payload)
        return parse_payment(body)

    async def get_payment(self, payment_id: str) -> ProcessorPayment:
        body = await self._request("GET", f"/payments/{payment_id}")
        return parse_payment(body)

    async def charge(self, charge: CardCharge) -> ProcessorPayment:
        return await self.create_payment(
            build_payment_request(
                amount=charge.amount,
                currency=charge.currency,
                description=charge.description,
                redirect_url=charge.return_url,
                webhook_url=charge.webhook_url,
                method="creditcard",
                metadata=charge.metadata,
                card_token=charge.token,
            )
        )

    async def ping(self) -> bool:
        await self._request("GET", "/methods")
        return True


class MockMollieConnector(CardConnector):
    """In-memory Mollie double.

    Mirrors Mollie's behaviour per method: bank redirects and credit cards
    come back ``open`` with a checkout link, everything else is ``paid``
    immediately. Payment ids are derived from the request, so the same
    request always yields the same payment.
    """

    processor = "mollie"
    status_outcomes = MOLLIE_STATUS_OUTCOMES

    def __init__(self, base_url: str = "http://localhost:3000") -> None:
        self.base_url = base_url.rstrip("/")
        self._payments: Dict[str, ProcessorPayment] = {}

    @property
    def is_live(self) -> bool:
        return False

    @staticmethod
    def _payment_id(payload: Dict[str, Any]) -> str:
        metadata = payload.get("metadata") or {}
        seed = "|".join([
            str(metadata.get("ucp_session_id", "")),
            str(payload.get("method", "")),
            str(payload.get("amount", {}).get("value", "")),
            str(payload.get("cardToken", "")),
        ])
        return f"tr_mock_{hashlib.sha256(seed.encode()).hexdigest()[:12]}"

    async def create_payment(self, payload: Dict[str, Any]) -> ProcessorPayment:
        payment_id = self._payment_id(payload)
        existing = self._payments.get(payment_id)
        if existing is not None:
            return existing

        method = payload.get("method") or "creditcard"
        if method in MOLLIE_REDIRECT_METHODS:
            payment = ProcessorPayment(
                id=payment_id,
                status="open",
                checkout_url=f"{self.base_url}/mock-mollie/checkout/{payment_id}",
            )
        elif method == "creditcard":
            payment = ProcessorPayment(
                id=payment_id,
                status="open",
                checkout_url=f"{self.base_url}/mock-mollie/3ds/{payment_id}",
            )
        else:
            payment = ProcessorPayment(id=payment_id, status="paid")

        self._payments[payment_id] = payment
        logger.info(f"Mock Mollie payment created: payment_id={payment_id}, method={method}")
        return payment

    async def get_payment(self, payment_id: str) -> ProcessorPayment:
        payment = self._payments.get(payment_id)
        if payment is None:
            raise ConnectorError(f"mollie payment {payment_id} not found", "mollie", status_code=404)
        return ProcessorPayment(id=payment.id, status=payment.status)

    async def charge(self, charge: CardCharge) -> ProcessorPayment:
        return await self.create_payment(
            build_payment_request(
                amount=charge.amount,
                currency=charge.currency,
                description=charge.description,
                redirect_url=charge.return_url,
                method="creditcard",
                metadata=charge.metadata,
                card_token=charge.token,
            )
        )

    def complete_payment(self, payment_id: str, status: str = "paid") -> None:
        """Simulate the customer finishing (or abandoning) the hosted checkout."""
        payment = self._payments.get(payment_id)
        if payment is None:
            raise KeyError(payment_id)
        self._payments[payment_id] = ProcessorPayment(id=payment_id, status=status)


__all__ = [
    "MOLLIE_STATUS_OUTCOMES",
    "MOLLIE_REDIRECT_METHODS",
    "build_payment_request",
    "parse_payment",
    "MollieConnector",
    "MockMollieConnector",
]
