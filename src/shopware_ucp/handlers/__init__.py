"""UCP payment handlers."""

from .base import BasePaymentHandler, PaymentHandler, is_retryable_failure
from .google_pay import GooglePayHandler, TestTokenDecryptor, TokenDecryptor
from .mollie import MollieHandler, map_payment_method
from .tokenizer import TokenizerHandler

__all__ = [
    "BasePaymentHandler",
    "PaymentHandler",
    "is_retryable_failure",
    "GooglePayHandler",
    "TestTokenDecryptor",
    "TokenDecryptor",
    "MollieHandler",
    "map_payment_method",
    "TokenizerHandler",
]
