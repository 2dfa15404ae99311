"""Checkout session state and per-shop handler configuration."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

from .ucp import CartTotal, Discounts, Fulfillment, LineItem, TotalType


class CheckoutStatus(str, Enum):
    """Status of a checkout session."""

    CREATED = "created"
    REQUIRES_ACTION = "requires_action"  # Customer must complete a redirect / 3DS
    PENDING = "pending"  # Processor has not confirmed yet
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES: FrozenSet[CheckoutStatus] = frozenset({
    CheckoutStatus.SUCCEEDED,
    CheckoutStatus.FAILED,
    CheckoutStatus.CANCELED,
})

# Self-transitions record a new attempt or a still-open processor status.
ALLOWED_TRANSITIONS: Mapping[CheckoutStatus, FrozenSet[CheckoutStatus]] = {
    CheckoutStatus.CREATED: frozenset({
        CheckoutStatus.CREATED,
        CheckoutStatus.REQUIRES_ACTION,
        CheckoutStatus.PENDING,
        CheckoutStatus.SUCCEEDED,
        CheckoutStatus.FAILED,
        CheckoutStatus.CANCELED,
    }),
    CheckoutStatus.REQUIRES_ACTION: frozenset({
        CheckoutStatus.SUCCEEDED,
        CheckoutStatus.FAILED,
        CheckoutStatus.CANCELED,
    }),
    CheckoutStatus.PENDING: frozenset({
        CheckoutStatus.PENDING,
        CheckoutStatus.SUCCEEDED,
        CheckoutStatus.FAILED,
        CheckoutStatus.CANCELED,
    }),
    CheckoutStatus.SUCCEEDED: frozenset(),
    CheckoutStatus.FAILED: frozenset(),
    CheckoutStatus.CANCELED: frozenset(),
}


def can_transition(current: CheckoutStatus, target: CheckoutStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


@dataclass(slots=True)
class CartSnapshot:
    """Cart as mapped at session creation."""

    currency: str
    line_items: List[LineItem] = field(default_factory=list)
    totals: List[CartTotal] = field(default_factory=list)
    fulfillment: Fulfillment = field(default_factory=Fulfillment)
    discounts: Discounts = field(default_factory=Discounts)

    def total_of(self, total_type: TotalType) -> int:
        return sum(t.amount for t in self.totals if t.type == total_type)

    @property
    def amount(self) -> int:
        """Amount to charge, taken from the ``total`` line."""
        return self.total_of(TotalType.TOTAL)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currency": self.currency,
            "line_items": [item.to_dict() for item in self.line_items],
            "totals": [t.to_dict() for t in self.totals],
            "fulfillment": self.fulfillment.to_dict(),
            "discounts": self.discounts.to_dict(),
        }


@dataclass(frozen=True, slots=True)
class SessionView:
    """Read-only view of a session handed to payment handlers."""

    session_id: str
    shop_id: str
    currency: str
    amount: int
    line_items: Tuple[LineItem, ...] = ()


@dataclass(slots=True)
class SessionError:
    code: str
    message: str


@dataclass(slots=True)
class CheckoutSession:
    """One purchase attempt, owned by the orchestrator.

    ``currency`` never changes after creation; ``transaction_id`` is only
    written from a processor response.
    """

    session_id: str
    shop_id: str
    currency: str
    cart: CartSnapshot
    status: CheckoutStatus = CheckoutStatus.CREATED
    handler_id: Optional[str] = None
    transaction_id: Optional[str] = None
    redirect_url: Optional[str] = None
    last_error: Optional[SessionError] = None
    capabilities: List[str] = field(default_factory=list)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def view(self) -> SessionView:
        return SessionView(
            session_id=self.session_id,
            shop_id=self.shop_id,
            currency=self.currency,
            amount=self.cart.amount,
            line_items=tuple(self.cart.line_items),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.session_id,
            "shop_id": self.shop_id,
            "status": self.status.value,
            "currency": self.currency,
            "line_items": [item.to_dict() for item in self.cart.line_items],
            "totals": [t.to_dict() for t in self.cart.totals],
            "fulfillment": self.cart.fulfillment.to_dict(),
            "discounts": self.cart.discounts.to_dict(),
            "payment": {
                "handler_id": self.handler_id,
                "transaction_id": self.transaction_id,
            },
            "continue_url": self.redirect_url,
            "messages": [
                {"type": "error", "code": self.last_error.code, "content": self.last_error.message}
            ] if self.last_error else [],
            "ucp": {"capabilities": list(self.capabilities)},
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass(slots=True)
class PaymentHandlerConfig:
    """Per-shop configuration row for one handler. Unique per (shop, handler)."""

    shop_id: str
    handler_id: str
    display_name: str = ""
    enabled: bool = True
    priority: int = 100
    config: Dict[str, Any] = field(default_factory=dict)


__all__ = [
    "CheckoutStatus",
    "TERMINAL_STATUSES",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "CartSnapshot",
    "SessionView",
    "SessionError",
    "CheckoutSession",
    "PaymentHandlerConfig",
]
