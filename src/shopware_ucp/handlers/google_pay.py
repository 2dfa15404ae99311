"""Google Pay payment handler.

Accepts an encrypted Google Pay payment token, decrypts it into a gateway
token and charges that token through the configured card connector.

Handler id: google-pay
Handler name: com.google.pay
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Protocol

from ..config import UCPSettings
from ..connectors.base import CardCharge, CardConnector
from ..exceptions import ErrorCode, UCPValidationError
from ..models.session import SessionView
from ..models.ucp import HandlerDescriptor, PaymentData, PaymentResult
from .base import BasePaymentHandler

logger = logging.getLogger(__name__)

MIN_TEST_TOKEN_LENGTH = 11
MAX_HINT_TOKEN_LENGTH = 64


@dataclass(slots=True)
class DecryptedPaymentToken:
    """Payment method details recovered from a Google Pay token."""

    payment_method: str
    auth_method: str
    gateway_token: str
    card_network: Optional[str] = None


class TokenDecryptionError(UCPValidationError):
    """The Google Pay token could not be decrypted."""


class TokenDecryptor(Protocol):
    """Decrypts Google Pay payment tokens (ECv2 in production)."""

    async def decrypt(self, token: str) -> DecryptedPaymentToken:
        ...


class TestTokenDecryptor:
    """Deterministic decryptor for the Google Pay TEST environment.

    No cryptography: the gateway token is derived from the payment token so
    identical tokens always map to the same charge.
    """

    __test__ = False

    async def decrypt(self, token: str) -> DecryptedPaymentToken:
        gateway_token = f"gpay_{hashlib.sha256(token.encode()).hexdigest()[:16]}"
        # Short opaque test tokens carry their outcome hints (e.g. "decline") along
        if len(token) <= MAX_HINT_TOKEN_LENGTH and not token.startswith("{"):
            gateway_token = f"{gateway_token}_{token}"
        return DecryptedPaymentToken(
            payment_method="CARD",
            auth_method="CRYPTOGRAM_3DS",
            gateway_token=gateway_token,
        )


def is_valid_google_pay_token(token: Optional[str]) -> bool:
    """Structural check: signed JSON token, or an opaque test token."""
    if not token:
        return False
    try:
        parsed: Any = json.loads(token)
    except ValueError:
        return len(token) >= MIN_TEST_TOKEN_LENGTH
    return isinstance(parsed, dict) and bool(parsed.get("signature")) and bool(parsed.get("signedMessage"))


class GooglePayHandler(BasePaymentHandler):
    """Payment handler for Google Pay."""

    id = "google-pay"
    name = "com.google.pay"
    error_prefix = "google_pay"

    def __init__(
        self,
        connector: CardConnector,
        settings: UCPSettings,
        decryptor: Optional[TokenDecryptor] = None,
    ) -> None:
        super().__init__(connector, ucp_version=settings.ucp_version)
        self._settings = settings
        if decryptor is None and settings.google_pay.environment == "TEST":
            decryptor = TestTokenDecryptor()
        self._decryptor = decryptor

    def is_configured(self) -> bool:
        return bool(self._settings.google_pay.merchant_id) and self._decryptor is not None

    def validate_payment_data(self, payment_data: Optional[PaymentData]) -> Optional[str]:
        error = super().validate_payment_data(payment_data)
        if error:
            return error
        if not is_valid_google_pay_token(payment_data.token):
            return "Invalid Google Pay token format"
        return None

    async def _execute(self, session: SessionView, payment_data: PaymentData) -> PaymentResult:
        if self._decryptor is None:
            return self.failed_result(
                self.processor_error_code, "Google Pay token decryption is not configured"
            )
        try:
            decrypted = await self._decryptor.decrypt(payment_data.token)
        except TokenDecryptionError as e:
            return self.failed_result(ErrorCode.VALIDATION_ERROR.value, e.message)

        logger.debug(
            f"Google Pay token decrypted: session_id={session.session_id}, "
            f"payment_method={decrypted.payment_method}, auth_method={decrypted.auth_method}"
        )

        charge = CardCharge(
            reference=session.session_id,
            amount=session.amount,
            currency=session.currency,
            token=decrypted.gateway_token,
            description=f"Order for session {session.session_id}",
            return_url=self._settings.return_url(session.session_id),
            webhook_url=self._settings.webhook_url(self.id),
            metadata={"ucp_session_id": session.session_id, "shop_id": session.shop_id},
        )
        payment = await self.connector.charge(charge)
        return self.interpret_payment(payment)

    def get_handler_config(self) -> HandlerDescriptor:
        google_pay = self._settings.google_pay
        return HandlerDescriptor(
            id=self.id,
            name=self.name,
            version=self.ucp_version,
            spec="https://ucp.dev/handlers/google-pay",
            config_schema="https://ucp.dev/schemas/handlers/google-pay/config.json",
            instrument_schemas=["https://ucp.dev/schemas/handlers/google-pay/instrument.json"],
            config={
                "merchant_id": google_pay.merchant_id,
                "merchant_name": google_pay.merchant_name,
                "environment": google_pay.environment,
                "allowed_card_networks": list(google_pay.allowed_card_networks),
                "allowed_auth_methods": list(google_pay.allowed_auth_methods),
                "gateway": google_pay.gateway,
                "gateway_merchant_id": google_pay.gateway_merchant_id,
            },
        )


__all__ = [
    "DecryptedPaymentToken",
    "TokenDecryptionError",
    "TokenDecryptor",
    "TestTokenDecryptor",
    "is_valid_google_pay_token",
    "GooglePayHandler",
]
