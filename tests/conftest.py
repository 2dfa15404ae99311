"""Shared fixtures: settings, Shopware carts and an in-memory cart source."""
from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from shopware_ucp.config import UCPSettings  # noqa: E402
from shopware_ucp.models.session import PaymentHandlerConfig  # noqa: E402
from shopware_ucp.models.shopware import ShippingMethod, ShopwareCart  # noqa: E402
from shopware_ucp.models.ucp import PaymentCredential, PaymentData  # noqa: E402
from shopware_ucp.registry import InMemoryHandlerConfigStore, build_registry  # noqa: E402

SHOP_ID = "shop-1"


def cart_payload(with_promotion: bool = False) -> Dict[str, Any]:
    """Store API cart: 2 x 50.00 widget, 19% tax, 5.95 standard shipping (net prices)."""
    line_items: List[Dict[str, Any]] = [
        {
            "id": "li-widget",
            "referencedId": "prod-widget",
            "label": "Widget",
            "quantity": 2,
            "type": "product",
            "good": True,
            "cover": {"url": "https://shop.test/media/widget.png"},
            "price": {
                "unitPrice": 50.0,
                "quantity": 2,
                "totalPrice": 100.0,
                "calculatedTaxes": [{"tax": 19.0, "taxRate": 19.0, "price": 100.0}],
            },
            "payload": {"productNumber": "SW-1"},
        }
    ]
    position_price, tax, total = "100.00", "19.00", "124.95"
    if with_promotion:
        line_items.append({
            "id": "li-promo",
            "referencedId": "promo-save10",
            "label": "Save 10",
            "quantity": 1,
            "type": "promotion",
            "good": False,
            "price": {
                "unitPrice": -10.0,
                "quantity": 1,
                "totalPrice": -10.0,
                "calculatedTaxes": [{"tax": -1.9, "taxRate": 19.0, "price": -10.0}],
            },
            "payload": {"code": "SAVE10"},
        })
        position_price, tax, total = "90.00", "17.10", "113.05"

    return {
        "token": "cart-token-1",
        "price": {
            "netPrice": "95.95" if with_promotion else "105.95",
            "totalPrice": total,
            "positionPrice": position_price,
            "calculatedTaxes": [{"tax": tax, "taxRate": "19", "price": position_price}],
            "taxStatus": "net",
        },
        "lineItems": line_items,
        "deliveries": [
            {
                "shippingMethod": {"id": "sm-standard", "name": "Standard"},
                "shippingCosts": {
                    "unitPrice": 5.95,
                    "quantity": 1,
                    "totalPrice": 5.95,
                    "calculatedTaxes": [],
                },
            }
        ],
    }


def make_shipping_methods() -> List[ShippingMethod]:
    return [
        ShippingMethod.model_validate({
            "id": "sm-standard",
            "name": "Standard",
            "deliveryTime": {"name": "2-4 days", "min": 2, "max": 4, "unit": "day"},
        }),
        ShippingMethod.model_validate({
            "id": "sm-express",
            "name": "Express",
            "translated": {"name": "Express Delivery"},
            "deliveryTime": {"name": "1 day", "min": 1, "max": 1, "unit": "day"},
        }),
    ]


def card_payment(handler_id: str, token: str = "tok_visa", payment_type: str = "card") -> PaymentData:
    return PaymentData(
        handler_id=handler_id,
        type=payment_type,
        brand="visa",
        last_digits="4242",
        credential=PaymentCredential(type="token", token=token),
    )


class FakeCartSource:
    """Cart source backed by dictionaries; counts calls."""

    def __init__(
        self,
        carts: Optional[Dict[str, ShopwareCart]] = None,
        shipping_methods: Optional[List[ShippingMethod]] = None,
    ) -> None:
        self.carts = carts or {}
        self.shipping_methods = shipping_methods or []
        self.calls: List[str] = []

    async def get_cart(self, shop_id: str, cart_token: str) -> ShopwareCart:
        self.calls.append(f"get_cart:{shop_id}:{cart_token}")
        return self.carts[cart_token]

    async def get_shipping_methods(self, shop_id: str) -> List[ShippingMethod]:
        self.calls.append(f"get_shipping_methods:{shop_id}")
        return list(self.shipping_methods)


@pytest.fixture
def settings() -> UCPSettings:
    return UCPSettings(
        _env_file=None,
        server_url="https://broker.test/",
        google_pay={"merchant_id": "BCR2DN4T", "merchant_name": "Test Shop"},
    )


@pytest.fixture
def cart() -> ShopwareCart:
    return ShopwareCart.model_validate(cart_payload())


@pytest.fixture
def promo_cart() -> ShopwareCart:
    return ShopwareCart.model_validate(cart_payload(with_promotion=True))


@pytest.fixture
def shipping_methods() -> List[ShippingMethod]:
    return make_shipping_methods()


@pytest.fixture
def cart_source(cart, shipping_methods) -> FakeCartSource:
    return FakeCartSource({cart.token: cart}, shipping_methods)


@pytest.fixture
def config_store() -> InMemoryHandlerConfigStore:
    """All three handlers enabled for SHOP_ID, Mollie first."""
    return InMemoryHandlerConfigStore([
        PaymentHandlerConfig(shop_id=SHOP_ID, handler_id="mollie", priority=1),
        PaymentHandlerConfig(shop_id=SHOP_ID, handler_id="business-tokenizer", priority=2),
        PaymentHandlerConfig(shop_id=SHOP_ID, handler_id="google-pay", priority=3),
    ])


@pytest.fixture
def registry(settings, config_store):
    return build_registry(settings, config_store)
