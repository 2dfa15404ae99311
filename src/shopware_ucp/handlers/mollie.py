"""Mollie payment handler.

Redirect-based processor: bank methods (iDEAL, Bancontact, ...) and card
payments needing 3-D Secure answer with a hosted checkout link the customer
must visit; wallet payments can be paid immediately.

Handler id: mollie
Handler name: com.mollie.payments
"""

from __future__ import annotations

from typing import Optional, Union

from ..config import UCPSettings
from ..connectors.mollie import (
    MOLLIE_REDIRECT_METHODS,
    MockMollieConnector,
    MollieConnector,
    build_payment_request,
)
from ..exceptions import ConnectorError
from ..models.session import SessionView
from ..models.ucp import HandlerDescriptor, PaymentData, PaymentResult, PaymentStatus
from .base import BasePaymentHandler

# UCP instrument type -> Mollie method
METHOD_MAP = {
    "card": "creditcard",
    "creditcard": "creditcard",
    "ideal": "ideal",
    "bancontact": "bancontact",
    "paypal": "paypal",
    "applepay": "applepay",
    "googlepay": "googlepay",
    "klarna": "klarnapaylater",
    "eps": "eps",
    "giropay": "giropay",
    "sofort": "sofort",
}
DEFAULT_METHOD = "creditcard"


def map_payment_method(payment_type: Optional[str]) -> str:
    """Mollie method for a UCP instrument type; unknown types pass through."""
    if not payment_type:
        return DEFAULT_METHOD
    normalized = payment_type.strip().lower()
    return METHOD_MAP.get(normalized, normalized or DEFAULT_METHOD)


class MollieHandler(BasePaymentHandler):
    """Payment handler for Mollie."""

    id = "mollie"
    name = "com.mollie.payments"
    error_prefix = "mollie"

    def __init__(
        self,
        connector: Union[MollieConnector, MockMollieConnector],
        settings: UCPSettings,
    ) -> None:
        super().__init__(connector, ucp_version=settings.ucp_version)
        self._settings = settings

    def is_configured(self) -> bool:
        if not self.connector.is_live:
            return True
        return bool(self._settings.mollie.api_key)

    def validate_payment_data(self, payment_data: Optional[PaymentData]) -> Optional[str]:
        if payment_data is None or not (payment_data.type or payment_data.token):
            return "Payment method or credential is required"
        return None

    async def _execute(self, session: SessionView, payment_data: PaymentData) -> PaymentResult:
        method = map_payment_method(payment_data.type)
        payload = build_payment_request(
            amount=session.amount,
            currency=session.currency,
            description=f"Order for session {session.session_id}",
            redirect_url=self._settings.return_url(session.session_id),
            webhook_url=self._settings.mollie.webhook_url or self._settings.webhook_url(self.id),
            method=method,
            metadata={"ucp_session_id": session.session_id, "shop_id": session.shop_id},
            card_token=payment_data.token if method == "creditcard" else None,
            issuer=payment_data.issuer,
        )
        payment = await self.connector.create_payment(payload)

        result = self.interpret_payment(payment)
        if (
            method in MOLLIE_REDIRECT_METHODS
            and result.status is not PaymentStatus.FAILED
            and not result.redirect_url
        ):
            raise ConnectorError(
                f"mollie returned no checkout link for redirect method {method}", "mollie"
            )
        return result

    def get_handler_config(self) -> HandlerDescriptor:
        mollie = self._settings.mollie
        return HandlerDescriptor(
            id=self.id,
            name=self.name,
            version=self.ucp_version,
            spec="https://ucp.dev/handlers/mollie",
            config_schema="https://ucp.dev/schemas/handlers/mollie/config.json",
            instrument_schemas=[
                "https://ucp.dev/schemas/handlers/mollie/ideal.json",
                "https://ucp.dev/schemas/handlers/mollie/bancontact.json",
                "https://ucp.dev/schemas/handlers/mollie/card.json",
            ],
            config={
                "profile_id": mollie.profile_id,
                "test_mode": mollie.test_mode,
                "supported_methods": list(mollie.supported_methods),
                "countries": list(mollie.countries),
            },
        )


__all__ = ["METHOD_MAP", "map_payment_method", "MollieHandler"]
