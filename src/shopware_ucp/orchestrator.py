"""
Checkout session orchestrator.

Owns the session lifecycle:

    created --> requires_action | pending | succeeded | failed
    requires_action --> succeeded | failed
    pending --> succeeded | failed | (remains pending)
    succeeded, failed, canceled: terminal

Payment attempts start only from ``created``. Webhooks and reconciliation
move ``requires_action`` / ``pending`` sessions to a terminal status through
the store's compare-and-set, so late or duplicate notifications are no-ops.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from .config import UCPSettings
from .exceptions import (
    ConnectorError,
    ErrorCode,
    NoHandlerAvailableError,
    SessionNotFoundError,
    StateConflictError,
    UCPValidationError,
)
from .handlers.base import PaymentHandler, is_retryable_failure
from .logging import session_context
from .mapper import CartMapper
from .models.session import CheckoutSession, CheckoutStatus, SessionError
from .models.shopware import ShippingMethod, ShopwareCart
from .models.ucp import HandlerDescriptor, PaymentData, PaymentResult, PaymentStatus
from .registry import PaymentHandlerRegistry
from .store import SessionStore

logger = logging.getLogger(__name__)

OPEN_STATUSES = (CheckoutStatus.REQUIRES_ACTION, CheckoutStatus.PENDING)


class CartSource(Protocol):
    """Read access to the commerce platform's carts."""

    async def get_cart(self, shop_id: str, cart_token: str) -> ShopwareCart:
        ...

    async def get_shipping_methods(self, shop_id: str) -> List[ShippingMethod]:
        ...


@dataclass(slots=True)
class CreateCheckoutRequest:
    """Request to open a checkout session for an existing cart."""

    shop_id: str
    cart_token: str
    currency: Optional[str] = None
    selected_fulfillment_option_id: Optional[str] = None
    discount_codes: List[str] = field(default_factory=list)
    platform_capabilities: Optional[List[str]] = None
    payment_data: Optional[PaymentData] = None
    handler_id: Optional[str] = None


@dataclass(slots=True)
class CheckoutResult:
    """Session state after an orchestrator operation, plus the payment outcome if any."""

    session: CheckoutSession
    payment: Optional[PaymentResult] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    @property
    def success(self) -> bool:
        if self.error_code:
            return False
        return self.payment.success if self.payment else True

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "session": self.session.to_dict(),
        }
        if self.payment:
            data["payment"] = self.payment.to_dict()
        if self.error_code:
            data["error"] = {"code": self.error_code, "message": self.error_message}
        return data


def negotiate_capabilities(
    offered: Sequence[str],
    requested: Optional[Sequence[str]] = None,
) -> List[str]:
    """Capabilities both sides support; a parent name matches its children."""
    if requested is None:
        return list(offered)
    return [
        cap for cap in offered
        if any(
            req == cap or cap.startswith(req + ".") or req.startswith(cap + ".")
            for req in requested
        )
    ]


def validate_currency(currency: Optional[str]) -> str:
    if not currency or len(currency.strip()) != 3 or not currency.strip().isalpha():
        raise UCPValidationError(
            f"Invalid currency code: {currency!r}", field="currency"
        )
    return currency.strip().upper()


class CheckoutOrchestrator:
    """Coordinates carts, handlers and session state."""

    def __init__(
        self,
        registry: PaymentHandlerRegistry,
        store: SessionStore,
        cart_source: CartSource,
        settings: UCPSettings,
    ) -> None:
        self._registry = registry
        self._store = store
        self._cart_source = cart_source
        self._settings = settings
        self._attempt_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    async def create_session(self, request: CreateCheckoutRequest) -> CheckoutResult:
        """
        Open a checkout session; pays immediately when payment data is given.

        Raises:
            UCPValidationError: If the currency is not a three-letter code
        """
        currency = validate_currency(request.currency or self._settings.default_currency)

        cart = await self._cart_source.get_cart(request.shop_id, request.cart_token)
        shipping_methods = await self._cart_source.get_shipping_methods(request.shop_id)

        snapshot = CartMapper(currency).build_snapshot(
            cart,
            shipping_methods=shipping_methods,
            selected_shipping_id=request.selected_fulfillment_option_id,
            discount_codes=request.discount_codes,
        )
        session = await self._store.create(CheckoutSession(
            session_id=f"cs_{uuid.uuid4().hex}",
            shop_id=request.shop_id,
            currency=currency,
            cart=snapshot,
            capabilities=negotiate_capabilities(
                self._settings.capabilities, request.platform_capabilities
            ),
        ))

        with session_context(session.session_id):
            logger.info(
                f"Checkout session created: session_id={session.session_id}, "
                f"shop_id={session.shop_id}, amount={snapshot.amount}, currency={currency}"
            )

        if request.payment_data is None:
            return CheckoutResult(session=session)
        return await self.process_payment(
            session.session_id, request.payment_data, handler_id=request.handler_id
        )

    async def get_session(self, session_id: str) -> CheckoutSession:
        """
        Raises:
            SessionNotFoundError: If no session has this id
        """
        return await self._store.get(session_id)

    async def list_payment_handlers(self, shop_id: str) -> List[HandlerDescriptor]:
        return await self._registry.descriptors(shop_id)

    # ------------------------------------------------------------------
    # Payment
    # ------------------------------------------------------------------

    async def process_payment(
        self,
        session_id: str,
        payment_data: Optional[PaymentData],
        handler_id: Optional[str] = None,
    ) -> CheckoutResult:
        """
        Run one payment attempt for a ``created`` session.

        Raises:
            SessionNotFoundError: If no session has this id
        """
        try:
            async with self._attempt_locks[session_id]:
                result = await self._attempt_payment(session_id, payment_data, handler_id)
        except SessionNotFoundError:
            self._attempt_locks.pop(session_id, None)
            raise
        if result.session.status.is_terminal:
            self._attempt_locks.pop(session_id, None)
        return result

    async def _attempt_payment(
        self,
        session_id: str,
        payment_data: Optional[PaymentData],
        handler_id: Optional[str],
    ) -> CheckoutResult:
        session = await self._store.get(session_id)
        with session_context(session_id):
            if session.status is not CheckoutStatus.CREATED:
                logger.warning(
                    f"Payment attempt rejected: session_id={session_id}, "
                    f"status={session.status.value}, error_code={ErrorCode.STATE_CONFLICT.value}"
                )
                return CheckoutResult(
                    session=session,
                    error_code=ErrorCode.STATE_CONFLICT.value,
                    error_message=f"Session is {session.status.value}, not created",
                )

            requested = handler_id or (payment_data.handler_id if payment_data else None)
            try:
                handler = await self._registry.select(session.shop_id, requested)
            except NoHandlerAvailableError as e:
                logger.warning(
                    f"No payment handler: session_id={session_id}, "
                    f"shop_id={session.shop_id}, requested={requested}"
                )
                session = await self._store.compare_and_set(
                    session_id,
                    CheckoutStatus.CREATED,
                    CheckoutStatus.CREATED,
                    last_error=SessionError(e.error_code, e.message),
                )
                return CheckoutResult(
                    session=session, error_code=e.error_code, error_message=e.message
                )

            result = await handler.process_payment(session.view(), payment_data)
            return await self._apply_result(session, handler, result)

    async def _apply_result(
        self,
        session: CheckoutSession,
        handler: PaymentHandler,
        result: PaymentResult,
    ) -> CheckoutResult:
        fields: Dict[str, Any] = {"handler_id": handler.id, "last_error": None}
        if result.transaction_id:
            fields["transaction_id"] = result.transaction_id

        if result.status is PaymentStatus.SUCCEEDED:
            target = CheckoutStatus.SUCCEEDED
        elif result.status is PaymentStatus.REQUIRES_ACTION:
            target = CheckoutStatus.REQUIRES_ACTION
            fields["redirect_url"] = result.redirect_url
        elif result.status is PaymentStatus.PENDING:
            target = CheckoutStatus.PENDING
        else:
            fields["last_error"] = SessionError(result.error_code or "", result.error_message or "")
            # Retryable failures keep the session open for another attempt
            target = CheckoutStatus.CREATED if is_retryable_failure(result) else CheckoutStatus.FAILED

        try:
            updated = await self._store.compare_and_set(
                session.session_id, CheckoutStatus.CREATED, target, **fields
            )
        except StateConflictError as e:
            logger.warning(
                f"Payment result not applied: session_id={session.session_id}, "
                f"current={e.current}, target={e.target}"
            )
            return CheckoutResult(
                session=await self._store.get(session.session_id),
                payment=result,
                error_code=e.error_code,
                error_message=e.message,
            )

        logger.info(
            f"Checkout session updated: session_id={session.session_id}, "
            f"status={updated.status.value}, handler={handler.id}"
        )
        return CheckoutResult(session=updated, payment=result)

    # ------------------------------------------------------------------
    # Webhooks and reconciliation
    # ------------------------------------------------------------------

    async def handle_webhook(
        self,
        handler_id: str,
        processor_payment_id: str,
    ) -> Optional[CheckoutSession]:
        """
        Apply a processor notification to the session owning the payment.

        Returns the session after the notification, or None when no session
        holds this payment.

        Raises:
            UCPValidationError: If the handler is unknown
        """
        handler = self._registry.get(handler_id)
        if handler is None:
            raise UCPValidationError(f"Unknown payment handler: {handler_id}", field="handler_id")

        session = await self._store.find_by_transaction_id(processor_payment_id)
        if session is None:
            logger.warning(
                f"Webhook for unknown payment: handler={handler_id}, "
                f"payment_id={processor_payment_id}"
            )
            return None

        with session_context(session.session_id):
            if session.handler_id and session.handler_id != handler.id:
                logger.warning(
                    f"Webhook handler mismatch: session_id={session.session_id}, "
                    f"expected={session.handler_id}, got={handler.id}"
                )
                return session
            return await self._sync_with_processor(session, handler)

    async def handle_webhook_event(
        self,
        handler_id: str,
        payload: Mapping[str, Any],
    ) -> Optional[CheckoutSession]:
        """Processor webhook body; only the payment ``id`` is trusted."""
        payment_id = payload.get("id")
        if not payment_id:
            raise UCPValidationError("Webhook payload is missing the payment id", field="id")
        return await self.handle_webhook(handler_id, str(payment_id))

    async def reconcile(self, session_id: str) -> CheckoutSession:
        """
        Poll the processor for an open session.

        Raises:
            SessionNotFoundError: If no session has this id
        """
        session = await self._store.get(session_id)
        with session_context(session_id):
            if not session.transaction_id or not session.handler_id:
                logger.debug(f"Nothing to reconcile: session_id={session_id}")
                return session
            handler = self._registry.get(session.handler_id)
            if handler is None:
                logger.warning(
                    f"Cannot reconcile, handler gone: session_id={session_id}, "
                    f"handler={session.handler_id}"
                )
                return session
            return await self._sync_with_processor(session, handler)

    async def _sync_with_processor(
        self,
        session: CheckoutSession,
        handler: PaymentHandler,
    ) -> CheckoutSession:
        if session.status not in OPEN_STATUSES:
            logger.info(
                f"Notification ignored: session_id={session.session_id}, "
                f"status={session.status.value}, error_code={ErrorCode.STATE_CONFLICT.value}"
            )
            return session

        try:
            status = await handler.handle_webhook(session.transaction_id)
        except ConnectorError as e:
            logger.warning(
                f"Processor status unavailable: session_id={session.session_id}, "
                f"processor={e.processor}, error={e.message}"
            )
            return session

        if status.paid:
            target, last_error = CheckoutStatus.SUCCEEDED, None
        elif status.failed:
            target = CheckoutStatus.FAILED
            last_error = SessionError(ErrorCode.PAYMENT_FAILED.value, f"Payment {status.status}")
        else:
            logger.debug(
                f"Payment still open: session_id={session.session_id}, status={status.status}"
            )
            return session

        try:
            updated = await self._store.compare_and_set(
                session.session_id, OPEN_STATUSES, target, last_error=last_error
            )
        except StateConflictError as e:
            logger.info(
                f"Notification lost race: session_id={session.session_id}, "
                f"current={e.current}, target={e.target}, error_code={e.error_code}"
            )
            return await self._store.get(session.session_id)

        self._attempt_locks.pop(session.session_id, None)
        logger.info(
            f"Checkout session updated: session_id={session.session_id}, "
            f"status={updated.status.value}, processor_status={status.status}"
        )
        return updated


__all__ = [
    "CartSource",
    "CreateCheckoutRequest",
    "CheckoutResult",
    "CheckoutOrchestrator",
    "negotiate_capabilities",
    "validate_currency",
]
