"""Base payment handler protocol and shared adapter behaviour.

Every processor adapter goes through ``BasePaymentHandler.process_payment``:

1. validate the payment data; invalid input returns ``validation_error``
   before any connector is touched
2. run the adapter's ``_execute`` against its connector
3. downgrade any connector or internal fault to a ``<processor>_error``
   result, so no exception ever leaves ``process_payment``
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional, Protocol

from ..config import DEFAULT_UCP_VERSION
from ..connectors.base import PaymentOutcome, ProcessorConnector, ProcessorPayment
from ..exceptions import ConnectorError, ErrorCode
from ..models.session import SessionView
from ..models.ucp import (
    HandlerDescriptor,
    PaymentData,
    PaymentResult,
    PaymentStatus,
    WebhookStatus,
)

logger = logging.getLogger(__name__)


class PaymentHandler(Protocol):
    """Protocol for UCP payment handlers.

    A handler drives one payment processor through the uniform three-outcome
    contract: ``requires_action`` with a redirect URL, ``succeeded`` with a
    transaction id, or ``pending`` / ``failed``.
    """

    @property
    def id(self) -> str:
        """Unique identifier for this handler."""
        ...

    @property
    def name(self) -> str:
        """Reverse-domain handler name advertised to platforms."""
        ...

    @property
    def ucp_version(self) -> str:
        ...

    def can_handle(self, handler_id: str) -> bool:
        """Check if a requested handler id or name refers to this handler."""
        ...

    async def process_payment(self, session: SessionView, payment_data: PaymentData) -> PaymentResult:
        """Execute one payment attempt. Never raises."""
        ...

    def get_handler_config(self) -> HandlerDescriptor:
        """Static capability advertisement."""
        ...

    def is_configured(self) -> bool:
        """True iff the handler holds the credentials it needs."""
        ...

    async def handle_webhook(self, processor_payment_id: str) -> WebhookStatus:
        """Current processor-side status of a payment.

        Raises:
            ConnectorError: If the processor cannot be queried
        """
        ...

    async def test_connection(self) -> bool:
        ...


def is_retryable_failure(result: PaymentResult) -> bool:
    """Failures that leave the session open for another attempt."""
    return result.status is PaymentStatus.FAILED and result.error_code != ErrorCode.PAYMENT_FAILED.value


class BasePaymentHandler(ABC):
    """Shared behaviour for processor adapters.

    Subclasses implement ``_execute``, ``get_handler_config`` and
    ``is_configured``, and may extend ``validate_payment_data``. The
    ``process_payment`` template and the result builders are not meant to be
    overridden.
    """

    id: str = ""
    name: str = ""
    # Prefix of the processor fault code; empty means the connector's processor
    error_prefix: str = ""

    def __init__(
        self,
        connector: ProcessorConnector,
        ucp_version: str = DEFAULT_UCP_VERSION,
    ) -> None:
        self.connector = connector
        self._ucp_version = ucp_version

    @property
    def ucp_version(self) -> str:
        return self._ucp_version

    @property
    def processor_error_code(self) -> str:
        return f"{self.error_prefix or self.connector.processor}_error"

    def can_handle(self, handler_id: str) -> bool:
        return handler_id in (self.id, self.name)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_payment_data(self, payment_data: Optional[PaymentData]) -> Optional[str]:
        """Return an error message, or None when the data is usable."""
        if payment_data is None:
            return "Payment data is required"
        if not payment_data.token:
            return "Payment credential token is required"
        if not payment_data.handler_id:
            return "Payment handler_id is required"
        return None

    # ------------------------------------------------------------------
    # Template
    # ------------------------------------------------------------------

    async def process_payment(self, session: SessionView, payment_data: PaymentData) -> PaymentResult:
        error = self.validate_payment_data(payment_data)
        if error:
            result = self.failed_result(ErrorCode.VALIDATION_ERROR.value, error)
            self._log_result(session, result)
            return result

        self._log_attempt(session, payment_data)
        try:
            result = await self._execute(session, payment_data)
        except ConnectorError as e:
            result = self.failed_result(self.processor_error_code, e.message)
        except Exception as e:
            logger.exception(
                f"Unexpected handler fault: handler={self.id}, "
                f"session_id={session.session_id}, error={type(e).__name__}"
            )
            result = self.failed_result(self.processor_error_code, "Payment processing failed")

        self._log_result(session, result)
        return result

    @abstractmethod
    async def _execute(self, session: SessionView, payment_data: PaymentData) -> PaymentResult:
        """Shape the processor call, perform it and interpret the response."""
        pass

    @abstractmethod
    def get_handler_config(self) -> HandlerDescriptor:
        pass

    @abstractmethod
    def is_configured(self) -> bool:
        pass

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def handle_webhook(self, processor_payment_id: str) -> WebhookStatus:
        payment = await self.connector.get_payment(processor_payment_id)
        outcome = self.connector.outcome_for(payment.status)
        return WebhookStatus(
            status=payment.status,
            paid=outcome is PaymentOutcome.SUCCEEDED,
            failed=outcome is PaymentOutcome.FAILED,
        )

    async def test_connection(self) -> bool:
        if not self.is_configured():
            return False
        try:
            return await self.connector.ping()
        except ConnectorError as e:
            logger.warning(f"Connection test failed: handler={self.id}, error={e.message}")
            return False

    # ------------------------------------------------------------------
    # Results
    # ------------------------------------------------------------------

    def interpret_payment(self, payment: ProcessorPayment) -> PaymentResult:
        """Classify a processor payment into the three-outcome model."""
        outcome = self.connector.outcome_for(payment.status)
        if outcome is PaymentOutcome.FAILED:
            return self.failed_result(
                ErrorCode.PAYMENT_FAILED.value,
                f"Payment {payment.status}",
                transaction_id=payment.id,
            )
        if payment.checkout_url:
            return self.requires_action_result(payment.checkout_url, payment.id)
        if outcome is PaymentOutcome.SUCCEEDED:
            return self.success_result(payment.id)
        return self.pending_result(payment.id)

    @staticmethod
    def success_result(transaction_id: str) -> PaymentResult:
        return PaymentResult(
            success=True,
            status=PaymentStatus.SUCCEEDED,
            transaction_id=transaction_id,
        )

    @staticmethod
    def failed_result(
        error_code: str,
        error_message: str,
        transaction_id: Optional[str] = None,
    ) -> PaymentResult:
        return PaymentResult(
            success=False,
            status=PaymentStatus.FAILED,
            transaction_id=transaction_id,
            error_code=error_code,
            error_message=error_message,
        )

    @staticmethod
    def requires_action_result(redirect_url: str, transaction_id: Optional[str] = None) -> PaymentResult:
        return PaymentResult(
            success=False,
            status=PaymentStatus.REQUIRES_ACTION,
            transaction_id=transaction_id,
            redirect_url=redirect_url,
        )

    @staticmethod
    def pending_result(transaction_id: Optional[str] = None) -> PaymentResult:
        return PaymentResult(
            success=False,
            status=PaymentStatus.PENDING,
            transaction_id=transaction_id,
        )

    # ------------------------------------------------------------------
    # Logging; credentials are never logged
    # ------------------------------------------------------------------

    def _log_attempt(self, session: SessionView, payment_data: PaymentData) -> None:
        logger.info(
            f"Processing payment: handler={self.id}, session_id={session.session_id}, "
            f"amount={session.amount}, currency={session.currency}, "
            f"method={payment_data.type}, brand={payment_data.brand}"
        )

    def _log_result(self, session: SessionView, result: PaymentResult) -> None:
        message = (
            f"Payment {result.status.value}: handler={self.id}, "
            f"session_id={session.session_id}, transaction_id={result.transaction_id}"
        )
        if result.status is PaymentStatus.FAILED:
            logger.warning(f"{message}, error_code={result.error_code}, error={result.error_message}")
        else:
            logger.info(message)


__all__ = [
    "PaymentHandler",
    "BasePaymentHandler",
    "is_retryable_failure",
]
