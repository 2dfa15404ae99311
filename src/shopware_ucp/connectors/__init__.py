"""Processor connectors: live HTTP clients and deterministic doubles."""

from .base import (
    CardCharge,
    CardConnector,
    HttpConnector,
    PaymentOutcome,
    ProcessorConnector,
    ProcessorPayment,
)
from .mock import MockCardConnector
from .mollie import MockMollieConnector, MollieConnector, build_payment_request
from .stripe import StripeConnector

__all__ = [
    "CardCharge",
    "CardConnector",
    "HttpConnector",
    "PaymentOutcome",
    "ProcessorConnector",
    "ProcessorPayment",
    "MockCardConnector",
    "MockMollieConnector",
    "MollieConnector",
    "build_payment_request",
    "StripeConnector",
]
