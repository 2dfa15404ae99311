"""Data models: Shopware input shapes, UCP wire types, session state."""

from .session import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    CartSnapshot,
    CheckoutSession,
    CheckoutStatus,
    PaymentHandlerConfig,
    SessionError,
    SessionView,
    can_transition,
)
from .ucp import (
    REQUIRED_TOTALS,
    Address,
    AppliedDiscount,
    CartTotal,
    DeliveryEstimate,
    Discounts,
    Fulfillment,
    FulfillmentOption,
    HandlerDescriptor,
    Item,
    LineItem,
    PaymentCredential,
    PaymentData,
    PaymentResult,
    PaymentStatus,
    TotalType,
    WebhookStatus,
)

__all__ = [
    "ALLOWED_TRANSITIONS",
    "TERMINAL_STATUSES",
    "CartSnapshot",
    "CheckoutSession",
    "CheckoutStatus",
    "PaymentHandlerConfig",
    "SessionError",
    "SessionView",
    "can_transition",
    "REQUIRED_TOTALS",
    "Address",
    "AppliedDiscount",
    "CartTotal",
    "DeliveryEstimate",
    "Discounts",
    "Fulfillment",
    "FulfillmentOption",
    "HandlerDescriptor",
    "Item",
    "LineItem",
    "PaymentCredential",
    "PaymentData",
    "PaymentResult",
    "PaymentStatus",
    "TotalType",
    "WebhookStatus",
]
