"""Shopware Store API shapes consumed by the cart mapper.

Parsed from the platform's camelCase JSON; only the fields the broker reads
are declared, everything else is ignored.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ShopwareModel(BaseModel):
    """Base for platform payloads: camelCase aliases, unknown keys ignored."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class CalculatedTax(ShopwareModel):
    tax: Decimal = Decimal(0)
    tax_rate: Decimal = Decimal(0)
    price: Decimal = Decimal(0)


class CalculatedPrice(ShopwareModel):
    """Price of a line item or a delivery's shipping costs."""
    unit_price: Decimal = Decimal(0)
    quantity: int = 1
    total_price: Decimal = Decimal(0)
    calculated_taxes: List[CalculatedTax] = Field(default_factory=list)


class CartPrice(ShopwareModel):
    net_price: Decimal = Decimal(0)
    total_price: Decimal = Decimal(0)
    position_price: Optional[Decimal] = None
    calculated_taxes: List[CalculatedTax] = Field(default_factory=list)
    tax_status: Literal["gross", "net", "tax-free"] = "gross"


class Media(ShopwareModel):
    url: Optional[str] = None


class LineItem(ShopwareModel):
    id: str
    referenced_id: Optional[str] = None
    label: str = ""
    quantity: int = 1
    type: str = "product"
    good: bool = True
    description: Optional[str] = None
    cover: Optional[Media] = None
    price: Optional[CalculatedPrice] = None
    payload: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_promotion(self) -> bool:
        return self.type == "promotion"


class Translated(ShopwareModel):
    name: Optional[str] = None
    description: Optional[str] = None


class DeliveryTime(ShopwareModel):
    name: str = ""
    min: int = 0
    max: int = 0
    unit: Literal["day", "week", "month", "year"] = "day"


class ShippingMethod(ShopwareModel):
    id: str
    name: str = ""
    active: bool = True
    description: Optional[str] = None
    delivery_time: Optional[DeliveryTime] = None
    translated: Optional[Translated] = None


class DeliveryDate(ShopwareModel):
    earliest: Optional[str] = None
    latest: Optional[str] = None


class Delivery(ShopwareModel):
    shipping_method: Optional[ShippingMethod] = None
    shipping_costs: CalculatedPrice = Field(default_factory=CalculatedPrice)
    delivery_date: Optional[DeliveryDate] = None


class ShopwareCart(ShopwareModel):
    token: str = ""
    name: str = ""
    price: CartPrice = Field(default_factory=CartPrice)
    line_items: List[LineItem] = Field(default_factory=list)
    deliveries: List[Delivery] = Field(default_factory=list)


class ShopwareAddress(ShopwareModel):
    """Customer address record as the Store API expects it."""
    country_id: str
    salutation_id: str
    first_name: str
    last_name: str
    street: str
    zipcode: str
    city: str
    country_state_id: Optional[str] = None
    additional_address_line1: Optional[str] = None
    phone_number: Optional[str] = None


__all__ = [
    "CalculatedTax",
    "CalculatedPrice",
    "CartPrice",
    "Media",
    "LineItem",
    "Translated",
    "DeliveryTime",
    "ShippingMethod",
    "DeliveryDate",
    "Delivery",
    "ShopwareCart",
    "ShopwareAddress",
]
