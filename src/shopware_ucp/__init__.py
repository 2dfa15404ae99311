"""Universal Commerce Protocol (UCP) checkout broker for Shopware.

Sits between an agentic-commerce platform and payment processors:
- Maps Shopware carts into UCP line items, totals, fulfillment and discounts
- Advertises the payment handlers enabled for each shop
- Drives payments through Mollie, Google Pay and PSP card tokens
- Reconciles processor webhooks into the checkout session state machine
"""

from .config import DEFAULT_UCP_VERSION, UCPSettings, load_settings
from .logging import configure_logging
from .exceptions import (
    AddressMappingError,
    ConfigurationError,
    ConnectorError,
    ErrorCode,
    InvalidAmountError,
    NoHandlerAvailableError,
    SessionNotFoundError,
    StateConflictError,
    UCPError,
    UCPValidationError,
)
from .money import format_major, from_minor_units, sum_taxes, to_minor_units
from .mapper import CartMapper
from .address import AddressResolver, PlatformLookup, validate_address
from .models import (
    CartSnapshot,
    CartTotal,
    CheckoutSession,
    CheckoutStatus,
    HandlerDescriptor,
    PaymentData,
    PaymentHandlerConfig,
    PaymentResult,
    PaymentStatus,
    SessionView,
    TotalType,
    WebhookStatus,
)
from .handlers import (
    BasePaymentHandler,
    GooglePayHandler,
    MollieHandler,
    PaymentHandler,
    TokenizerHandler,
)
from .registry import (
    HandlerConfigStore,
    InMemoryHandlerConfigStore,
    PaymentHandlerRegistry,
    build_registry,
)
from .store import InMemorySessionStore, SessionStore
from .orchestrator import (
    CartSource,
    CheckoutOrchestrator,
    CheckoutResult,
    CreateCheckoutRequest,
    negotiate_capabilities,
)

__version__ = "0.1.0"

# UCP protocol version advertised to platforms
UCP_PROTOCOL_VERSION = DEFAULT_UCP_VERSION

__all__ = [
    # Config
    "UCPSettings",
    "load_settings",
    "configure_logging",
    # Errors
    "AddressMappingError",
    "ConfigurationError",
    "ConnectorError",
    "ErrorCode",
    "InvalidAmountError",
    "NoHandlerAvailableError",
    "SessionNotFoundError",
    "StateConflictError",
    "UCPError",
    "UCPValidationError",
    # Money
    "format_major",
    "from_minor_units",
    "sum_taxes",
    "to_minor_units",
    # Mapping
    "CartMapper",
    "AddressResolver",
    "PlatformLookup",
    "validate_address",
    # Models
    "CartSnapshot",
    "CartTotal",
    "CheckoutSession",
    "CheckoutStatus",
    "HandlerDescriptor",
    "PaymentData",
    "PaymentHandlerConfig",
    "PaymentResult",
    "PaymentStatus",
    "SessionView",
    "TotalType",
    "WebhookStatus",
    # Handlers
    "BasePaymentHandler",
    "GooglePayHandler",
    "MollieHandler",
    "PaymentHandler",
    "TokenizerHandler",
    # Registry
    "HandlerConfigStore",
    "InMemoryHandlerConfigStore",
    "PaymentHandlerRegistry",
    "build_registry",
    # Sessions
    "InMemorySessionStore",
    "SessionStore",
    "CartSource",
    "CheckoutOrchestrator",
    "CheckoutResult",
    "CreateCheckoutRequest",
    "negotiate_capabilities",
    # Version
    "UCP_PROTOCOL_VERSION",
    "__version__",
]
