"""Business tokenizer payment handler.

The buyer's card is tokenized client-side with the shop's PSP SDK; the
handler charges the resulting token through the configured card connector.

Handler id: business-tokenizer
Handler name: dev.ucp.business_tokenizer
"""

from __future__ import annotations

from ..config import UCPSettings
from ..connectors.base import CardCharge, CardConnector
from ..models.session import SessionView
from ..models.ucp import HandlerDescriptor, PaymentData, PaymentResult
from .base import BasePaymentHandler

TOKENIZATION_URLS = {
    "mollie": "https://js.mollie.com/v1/",
    "stripe": "https://js.stripe.com/v3/",
}


class TokenizerHandler(BasePaymentHandler):
    """Charges PSP card tokens."""

    id = "business-tokenizer"
    name = "dev.ucp.business_tokenizer"
    # Faults are reported under the routed PSP: mock_error, mollie_error, stripe_error

    def __init__(self, connector: CardConnector, settings: UCPSettings) -> None:
        super().__init__(connector, ucp_version=settings.ucp_version)
        self._settings = settings

    @property
    def psp_type(self) -> str:
        return self._settings.tokenizer.psp_type

    def is_configured(self) -> bool:
        if not self.connector.is_live:
            return True
        if self.psp_type == "mollie":
            return bool(self._settings.mollie.api_key)
        if self.psp_type == "stripe":
            return bool(self._settings.stripe.api_key)
        return False

    async def _execute(self, session: SessionView, payment_data: PaymentData) -> PaymentResult:
        charge = CardCharge(
            reference=session.session_id,
            amount=session.amount,
            currency=session.currency,
            token=payment_data.token,
            description=f"Order for session {session.session_id}",
            return_url=self._settings.return_url(session.session_id),
            webhook_url=self._settings.webhook_url(self.id),
            metadata={"ucp_session_id": session.session_id, "shop_id": session.shop_id},
        )
        payment = await self.connector.charge(charge)
        return self.interpret_payment(payment)

    def _tokenization_url(self) -> str:
        return TOKENIZATION_URLS.get(
            self.psp_type, f"{self._settings.server_url}/mock-tokenizer/"
        )

    def get_handler_config(self) -> HandlerDescriptor:
        tokenizer = self._settings.tokenizer
        public_key = tokenizer.public_key
        if not public_key and self.psp_type == "stripe":
            public_key = self._settings.stripe.public_key
        return HandlerDescriptor(
            id=self.id,
            name=self.name,
            version=self.ucp_version,
            spec="https://ucp.dev/handlers/business-tokenizer",
            config_schema="https://ucp.dev/schemas/handlers/business-tokenizer/config.json",
            instrument_schemas=["https://ucp.dev/schemas/handlers/business-tokenizer/card.json"],
            config={
                "psp_type": self.psp_type,
                "public_key": public_key,
                "tokenization_url": self._tokenization_url(),
                "supported_brands": list(tokenizer.supported_brands),
                "supports_3ds": tokenizer.supports_3ds,
            },
        )


__all__ = ["TokenizerHandler"]
