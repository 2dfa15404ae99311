"""UCP wire types produced and consumed by the broker.

All monetary fields are integers in minor units, always in the session
currency.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional


class TotalType(str, Enum):
    """Named component of the order summary."""

    SUBTOTAL = "subtotal"
    DISCOUNT = "discount"
    FULFILLMENT = "fulfillment"
    TAX = "tax"
    TOTAL = "total"
    FEE = "fee"


REQUIRED_TOTALS = (TotalType.SUBTOTAL, TotalType.FULFILLMENT, TotalType.TAX, TotalType.TOTAL)


@dataclass(slots=True)
class CartTotal:
    type: TotalType
    label: str
    amount: int
    currency: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "label": self.label,
            "amount": self.amount,
            "currency": self.currency,
        }


@dataclass(slots=True)
class Item:
    """The purchasable thing a line item refers to."""

    id: str
    title: str
    unit_price: int
    currency: str
    description: Optional[str] = None
    image_url: Optional[str] = None
    variant_id: Optional[str] = None
    variant_title: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "unit_price": self.unit_price,
            "currency": self.currency,
        }
        for key in ("description", "image_url", "variant_id", "variant_title"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data


@dataclass(slots=True)
class LineItem:
    """A UCP line item. ``total`` is always ``unit_price * quantity``."""

    id: str
    item: Item
    quantity: int
    totals: List[CartTotal] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.item.unit_price * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "item": self.item.to_dict(),
            "quantity": self.quantity,
            "total": self.total,
            "totals": [t.to_dict() for t in self.totals],
        }


@dataclass(slots=True)
class DeliveryEstimate:
    min_days: int
    max_days: int

    def earliest_date(self, today: Optional[date] = None) -> date:
        return (today or date.today()) + timedelta(days=self.min_days)

    def latest_date(self, today: Optional[date] = None) -> date:
        return (today or date.today()) + timedelta(days=self.max_days)

    def to_dict(self, today: Optional[date] = None) -> Dict[str, Any]:
        return {
            "min_days": self.min_days,
            "max_days": self.max_days,
            "estimated_date_min": self.earliest_date(today).isoformat(),
            "estimated_date_max": self.latest_date(today).isoformat(),
        }


@dataclass(slots=True)
class FulfillmentOption:
    id: str
    label: str
    price: int
    currency: str
    description: Optional[str] = None
    carrier: Optional[str] = None
    delivery_estimate: Optional[DeliveryEstimate] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "description": self.description,
            "carrier": self.carrier,
            "delivery_estimate": self.delivery_estimate.to_dict() if self.delivery_estimate else None,
            "price": self.price,
            "currency": self.currency,
        }


@dataclass(slots=True)
class Fulfillment:
    """One fulfillment group; at most one option is selected."""

    options: List[FulfillmentOption] = field(default_factory=list)
    selected_option_id: Optional[str] = None
    type: str = "shipping"

    def selected_option(self) -> Optional[FulfillmentOption]:
        for option in self.options:
            if option.id == self.selected_option_id:
                return option
        return None

    def cheapest_option(self) -> Optional[FulfillmentOption]:
        if not self.options:
            return None
        return min(self.options, key=lambda o: o.price)

    def fastest_option(self) -> Optional[FulfillmentOption]:
        """Option with the lowest maximum delivery time; unknown estimates sort last."""
        timed = [o for o in self.options if o.delivery_estimate is not None]
        if not timed:
            return None
        return min(timed, key=lambda o: o.delivery_estimate.max_days)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "options": [o.to_dict() for o in self.options],
            "selected_option_id": self.selected_option_id,
        }


@dataclass(slots=True)
class AppliedDiscount:
    label: str
    amount: int
    currency: str
    code: Optional[str] = None
    type: str = "coupon"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "type": self.type,
            "label": self.label,
            "amount": self.amount,
            "currency": self.currency,
        }


@dataclass(slots=True)
class Discounts:
    codes: List[str] = field(default_factory=list)
    applied: List[AppliedDiscount] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "codes": list(self.codes),
            "applied": [d.to_dict() for d in self.applied],
        }


@dataclass(slots=True)
class Address:
    """Postal address in UCP (schema.org) naming."""

    first_name: Optional[str] = None
    last_name: Optional[str] = None
    street_address: Optional[str] = None
    extended_address: Optional[str] = None
    address_locality: Optional[str] = None
    address_region: Optional[str] = None
    postal_code: Optional[str] = None
    address_country: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Address":
        return cls(**{f.name: data.get(f.name) for f in fields(cls)})

    def to_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(slots=True)
class PaymentCredential:
    type: str
    token: str


@dataclass(slots=True)
class PaymentData:
    """Payment instrument submitted by the buyer's platform."""

    handler_id: Optional[str] = None
    type: Optional[str] = None
    id: Optional[str] = None
    brand: Optional[str] = None
    last_digits: Optional[str] = None
    issuer: Optional[str] = None
    credential: Optional[PaymentCredential] = None
    billing_address: Optional[Address] = None

    @property
    def token(self) -> Optional[str]:
        return self.credential.token if self.credential else None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PaymentData":
        credential = data.get("credential")
        billing = data.get("billing_address")
        return cls(
            handler_id=data.get("handler_id"),
            type=data.get("type"),
            id=data.get("id"),
            brand=data.get("brand"),
            last_digits=data.get("last_digits"),
            issuer=data.get("issuer"),
            credential=PaymentCredential(
                type=credential.get("type", "token"),
                token=credential.get("token", ""),
            ) if credential else None,
            billing_address=Address.from_dict(billing) if billing else None,
        )


class PaymentStatus(str, Enum):
    """Outcome of a single processor invocation."""

    SUCCEEDED = "succeeded"
    PENDING = "pending"
    REQUIRES_ACTION = "requires_action"
    FAILED = "failed"


@dataclass(slots=True)
class PaymentResult:
    """Outcome of one processor call.

    ``redirect_url`` is only set for ``requires_action``; ``error_code`` and
    ``error_message`` only for ``failed``.
    """

    success: bool
    status: PaymentStatus
    transaction_id: Optional[str] = None
    redirect_url: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "success": self.success,
            "status": self.status.value,
            "transaction_id": self.transaction_id,
        }
        if self.redirect_url:
            data["redirect_url"] = self.redirect_url
        if self.error_code:
            data["error"] = {"code": self.error_code, "message": self.error_message}
        return data


@dataclass(slots=True)
class WebhookStatus:
    """Processor-side status of a payment, as reported for reconciliation."""

    status: str
    paid: bool
    failed: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "paid": self.paid}


@dataclass(slots=True)
class HandlerDescriptor:
    """Static capability advertisement of a payment handler."""

    id: str
    name: str
    version: str
    spec: str
    config_schema: str
    instrument_schemas: List[str] = field(default_factory=list)
    config: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "spec": self.spec,
            "config_schema": self.config_schema,
            "instrument_schemas": list(self.instrument_schemas),
            "config": dict(self.config),
        }


__all__ = [
    "TotalType",
    "REQUIRED_TOTALS",
    "CartTotal",
    "Item",
    "LineItem",
    "DeliveryEstimate",
    "FulfillmentOption",
    "Fulfillment",
    "AppliedDiscount",
    "Discounts",
    "Address",
    "PaymentCredential",
    "PaymentData",
    "PaymentStatus",
    "PaymentResult",
    "WebhookStatus",
    "HandlerDescriptor",
]
