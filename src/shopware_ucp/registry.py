"""
Payment handler registry.

Holds the handler instances of one service instance and the per-shop
handler configuration used to select among them. The registry is built
once at startup by ``build_registry`` and passed to the orchestrator.
"""
from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .config import UCPSettings
from .connectors.base import CardConnector
from .connectors.mock import MockCardConnector
from .connectors.mollie import MockMollieConnector, MollieConnector
from .connectors.stripe import StripeConnector
from .exceptions import ConfigurationError, NoHandlerAvailableError, UCPValidationError
from .handlers.base import PaymentHandler
from .handlers.google_pay import GooglePayHandler, TokenDecryptor
from .handlers.mollie import MollieHandler
from .handlers.tokenizer import TokenizerHandler
from .models.session import PaymentHandlerConfig
from .models.ucp import HandlerDescriptor

logger = logging.getLogger(__name__)

HANDLER_DESCRIPTIONS = {
    "google-pay": "Accept payments via Google Pay wallet",
    "business-tokenizer": "Process pre-tokenized card payments via PSP",
    "mollie": "Accept payments via Mollie (iDEAL, Cards, Bancontact, etc.)",
}


class HandlerConfigStore(ABC):
    """Abstract storage for per-shop handler configuration."""

    @abstractmethod
    async def list_for_shop(self, shop_id: str) -> List[PaymentHandlerConfig]:
        pass

    @abstractmethod
    async def get(self, shop_id: str, handler_id: str) -> Optional[PaymentHandlerConfig]:
        pass

    @abstractmethod
    async def upsert(self, config: PaymentHandlerConfig) -> None:
        pass


class InMemoryHandlerConfigStore(HandlerConfigStore):
    """In-memory handler configuration, keyed by (shop, handler)."""

    def __init__(self, configs: Iterable[PaymentHandlerConfig] = ()) -> None:
        self._configs: Dict[Tuple[str, str], PaymentHandlerConfig] = {
            (c.shop_id, c.handler_id): c for c in configs
        }
        self._lock = asyncio.Lock()

    async def list_for_shop(self, shop_id: str) -> List[PaymentHandlerConfig]:
        return [c for (shop, _), c in self._configs.items() if shop == shop_id]

    async def get(self, shop_id: str, handler_id: str) -> Optional[PaymentHandlerConfig]:
        return self._configs.get((shop_id, handler_id))

    async def upsert(self, config: PaymentHandlerConfig) -> None:
        async with self._lock:
            self._configs[(config.shop_id, config.handler_id)] = config


class PaymentHandlerRegistry:
    """Registry of payment handlers indexed by handler id."""

    def __init__(self, config_store: Optional[HandlerConfigStore] = None) -> None:
        self._handlers: Dict[str, PaymentHandler] = {}
        self._config_store = config_store or InMemoryHandlerConfigStore()

    @property
    def config_store(self) -> HandlerConfigStore:
        return self._config_store

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def register(self, handler: PaymentHandler) -> None:
        self._handlers[handler.id] = handler
        logger.info(f"Registered payment handler: id={handler.id}, name={handler.name}")

    def unregister(self, handler_id: str) -> bool:
        if self._handlers.pop(handler_id, None) is None:
            return False
        logger.info(f"Unregistered payment handler: id={handler_id}")
        return True

    def get(self, handler_id: str) -> Optional[PaymentHandler]:
        """Look up by id first, then by advertised name."""
        handler = self._handlers.get(handler_id)
        if handler is not None:
            return handler
        for candidate in self._handlers.values():
            if candidate.can_handle(handler_id):
                return candidate
        return None

    def handler_ids(self) -> List[str]:
        return list(self._handlers)

    # ------------------------------------------------------------------
    # Shop configuration
    # ------------------------------------------------------------------

    async def configure_shop(self, shop_id: str, configs: Iterable[PaymentHandlerConfig]) -> None:
        for config in configs:
            if config.handler_id not in self._handlers:
                raise UCPValidationError(
                    f"Unknown payment handler: {config.handler_id}", field="handler_id"
                )
            config.shop_id = shop_id
            if not config.display_name:
                config.display_name = self._handlers[config.handler_id].name
            await self._config_store.upsert(config)
        logger.info(f"Configured payment handlers: shop_id={shop_id}")

    async def _set_enabled(self, shop_id: str, handler_id: str, enabled: bool) -> None:
        if handler_id not in self._handlers:
            raise UCPValidationError(f"Unknown payment handler: {handler_id}", field="handler_id")
        config = await self._config_store.get(shop_id, handler_id)
        if config is None:
            config = PaymentHandlerConfig(
                shop_id=shop_id,
                handler_id=handler_id,
                display_name=self._handlers[handler_id].name,
            )
        config.enabled = enabled
        await self._config_store.upsert(config)
        logger.info(f"Payment handler {'enabled' if enabled else 'disabled'}: shop_id={shop_id}, handler={handler_id}")

    async def enable_for_shop(self, shop_id: str, handler_id: str) -> None:
        await self._set_enabled(shop_id, handler_id, True)

    async def disable_for_shop(self, shop_id: str, handler_id: str) -> None:
        await self._set_enabled(shop_id, handler_id, False)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    async def candidates(self, shop_id: str) -> List[PaymentHandler]:
        """Enabled, configured handlers of a shop in ascending priority."""
        configs = sorted(
            await self._config_store.list_for_shop(shop_id),
            key=lambda c: (c.priority, c.handler_id),
        )
        result: List[PaymentHandler] = []
        for config in configs:
            if not config.enabled:
                continue
            handler = self._handlers.get(config.handler_id)
            if handler is None or not handler.is_configured():
                continue
            result.append(handler)
        return result

    async def select(self, shop_id: str, requested: Optional[str] = None) -> PaymentHandler:
        """
        Pick the handler for a payment attempt.

        Raises:
            NoHandlerAvailableError: If no candidate matches
        """
        candidates = await self.candidates(shop_id)
        if requested:
            for handler in candidates:
                if handler.can_handle(requested):
                    return handler
        elif candidates:
            return candidates[0]
        raise NoHandlerAvailableError(shop_id, requested)

    # ------------------------------------------------------------------
    # Discovery and administration
    # ------------------------------------------------------------------

    async def descriptors(self, shop_id: str) -> List[HandlerDescriptor]:
        return [handler.get_handler_config() for handler in await self.candidates(shop_id)]

    def available_handler_types(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": handler_id,
                "name": handler.name,
                "configured": handler.is_configured(),
                "description": HANDLER_DESCRIPTIONS.get(handler_id, "Payment handler"),
            }
            for handler_id, handler in self._handlers.items()
        ]

    async def test_connection(self, handler_id: str) -> Dict[str, Any]:
        handler = self._handlers.get(handler_id)
        if handler is None:
            return {"success": False, "message": f'Handler "{handler_id}" not found'}
        if not handler.is_configured():
            return {"success": False, "message": f'Handler "{handler_id}" is not properly configured'}
        if not await handler.test_connection():
            return {"success": False, "message": f'Handler "{handler_id}" could not reach its processor'}
        return {"success": True, "message": f'Handler "{handler_id}" is ready'}

    async def close(self) -> None:
        """Close every distinct connector held by the registered handlers."""
        seen = set()
        for handler in self._handlers.values():
            connector = getattr(handler, "connector", None)
            if connector is None or id(connector) in seen:
                continue
            seen.add(id(connector))
            await connector.close()


# =============================================================================
# Composition
# =============================================================================

def _require(value: str, setting: str) -> str:
    if not value:
        raise ConfigurationError(f"Missing required setting: {setting}")
    return value


class _ConnectorFactory:
    """Builds connectors once so handlers on the same processor share a client."""

    def __init__(self, settings: UCPSettings) -> None:
        self._settings = settings
        self._mollie: Optional[MollieConnector] = None
        self._stripe: Optional[StripeConnector] = None

    def mollie(self) -> MollieConnector:
        if self._mollie is None:
            mollie = self._settings.mollie
            self._mollie = MollieConnector(
                api_key=_require(mollie.api_key, "UCP_MOLLIE__API_KEY"),
                api_base=mollie.api_base,
                timeout=self._settings.http_timeout_seconds,
            )
        return self._mollie

    def stripe(self) -> StripeConnector:
        if self._stripe is None:
            stripe = self._settings.stripe
            self._stripe = StripeConnector(
                api_key=_require(stripe.api_key, "UCP_STRIPE__API_KEY"),
                api_base=stripe.api_base,
                timeout=self._settings.http_timeout_seconds,
            )
        return self._stripe

    def card(self, psp: str) -> CardConnector:
        if psp == "mollie":
            return self.mollie()
        if psp == "stripe":
            return self.stripe()
        return MockCardConnector(base_url=self._settings.server_url)


def build_registry(
    settings: UCPSettings,
    config_store: Optional[HandlerConfigStore] = None,
    google_pay_decryptor: Optional[TokenDecryptor] = None,
) -> PaymentHandlerRegistry:
    """
    Construct the registry with the three processor adapters.

    Raises:
        ConfigurationError: If a live connector is selected without credentials
    """
    factory = _ConnectorFactory(settings)
    registry = PaymentHandlerRegistry(config_store)

    if settings.mollie.mode == "live":
        mollie_connector = factory.mollie()
    else:
        mollie_connector = MockMollieConnector(base_url=settings.server_url)
    registry.register(MollieHandler(mollie_connector, settings))

    registry.register(TokenizerHandler(factory.card(settings.tokenizer.psp_type), settings))

    google_pay = settings.google_pay
    gateway = google_pay.gateway if google_pay.environment == "PRODUCTION" else "mock"
    if gateway not in ("mollie", "stripe", "mock"):
        raise ConfigurationError(f"Unsupported Google Pay gateway: {google_pay.gateway}")
    registry.register(
        GooglePayHandler(factory.card(gateway), settings, decryptor=google_pay_decryptor)
    )
    return registry


__all__ = [
    "HANDLER_DESCRIPTIONS",
    "HandlerConfigStore",
    "InMemoryHandlerConfigStore",
    "PaymentHandlerRegistry",
    "build_registry",
]
