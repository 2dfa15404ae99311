"""
Cart mapper: Shopware cart, price and shipping data to UCP structures.

Prices are converted to minor units exactly once, here. Every structure the
mapper emits carries the session currency; the platform's own currency
fields are never consulted and no conversion is performed.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Sequence

from .models.session import CartSnapshot
from .models.shopware import (
    Delivery,
    DeliveryTime,
    LineItem as ShopwareLineItem,
    ShippingMethod,
    ShopwareAddress,
    ShopwareCart,
)
from .models.ucp import (
    Address,
    AppliedDiscount,
    CartTotal,
    DeliveryEstimate,
    Discounts,
    Fulfillment,
    FulfillmentOption,
    Item,
    LineItem,
    TotalType,
)
from .money import sum_taxes, to_minor_units

logger = logging.getLogger(__name__)

_DAYS_PER_UNIT = {"day": 1, "week": 7, "month": 30, "year": 365}


class CartMapper:
    """Maps a Shopware cart into the UCP checkout representation."""

    def __init__(self, currency: str = "EUR") -> None:
        self.currency = currency.upper()

    # ------------------------------------------------------------------
    # Line items
    # ------------------------------------------------------------------

    def map_line_items(self, cart: ShopwareCart) -> List[LineItem]:
        """Goods line items in cart order; promotions are left to the totals."""
        return [
            self.map_line_item(item)
            for item in cart.line_items
            if item.type == "product" and item.good
        ]

    def map_line_item(self, item: ShopwareLineItem) -> LineItem:
        unit_price = to_minor_units(item.price.unit_price) if item.price else 0
        return LineItem(
            id=item.id,
            item=Item(
                id=item.referenced_id or item.id,
                title=item.label,
                unit_price=unit_price,
                currency=self.currency,
                description=item.description,
                image_url=item.cover.url if item.cover else None,
                variant_id=self._variant_id(item),
                variant_title=self._variant_title(item),
            ),
            quantity=item.quantity,
            totals=self._line_item_totals(item),
        )

    def _line_item_totals(self, item: ShopwareLineItem) -> List[CartTotal]:
        if item.price is None:
            return []
        totals = [
            CartTotal(
                type=TotalType.SUBTOTAL,
                label="Subtotal",
                amount=to_minor_units(item.price.total_price),
                currency=self.currency,
            )
        ]
        for tax in item.price.calculated_taxes:
            totals.append(
                CartTotal(
                    type=TotalType.TAX,
                    label=f"Tax ({tax.tax_rate.normalize():f}%)",
                    amount=to_minor_units(tax.tax),
                    currency=self.currency,
                )
            )
        return totals

    @staticmethod
    def _variant_id(item: ShopwareLineItem) -> Optional[str]:
        if item.payload.get("parentId"):
            return item.referenced_id
        return None

    @staticmethod
    def _variant_title(item: ShopwareLineItem) -> Optional[str]:
        options = item.payload.get("options") or []
        names = [opt.get("name") for opt in options if isinstance(opt, dict) and opt.get("name")]
        return " / ".join(names) if names else None

    # ------------------------------------------------------------------
    # Totals
    # ------------------------------------------------------------------

    def map_cart_totals(self, cart: ShopwareCart) -> List[CartTotal]:
        """Order summary. subtotal, fulfillment, tax and total are always present."""
        price = cart.price
        subtotal_source = price.position_price if price.position_price is not None else price.net_price

        totals = [self._total(TotalType.SUBTOTAL, "Subtotal", to_minor_units(subtotal_source))]

        for promotion in self._promotions(cart):
            totals.append(
                self._total(TotalType.DISCOUNT, promotion.label, self._promotion_amount(promotion))
            )

        fulfillment = sum(
            (delivery.shipping_costs.total_price for delivery in cart.deliveries),
            start=0,
        )
        totals.append(self._total(TotalType.FULFILLMENT, "Shipping", to_minor_units(fulfillment)))

        tax = sum_taxes(
            price.calculated_taxes,
            *(delivery.shipping_costs.calculated_taxes for delivery in cart.deliveries),
        )
        totals.append(self._total(TotalType.TAX, "Tax", tax))

        totals.append(self._total(TotalType.TOTAL, "Total", to_minor_units(price.total_price)))
        return totals

    def _total(self, total_type: TotalType, label: str, amount: int) -> CartTotal:
        return CartTotal(type=total_type, label=label, amount=amount, currency=self.currency)

    @staticmethod
    def _promotions(cart: ShopwareCart) -> Iterable[ShopwareLineItem]:
        return (item for item in cart.line_items if item.is_promotion and item.price is not None)

    @staticmethod
    def _promotion_amount(item: ShopwareLineItem) -> int:
        return abs(to_minor_units(item.price.total_price)) if item.price else 0

    # ------------------------------------------------------------------
    # Fulfillment
    # ------------------------------------------------------------------

    def map_fulfillment(
        self,
        shipping_methods: Sequence[ShippingMethod],
        deliveries: Sequence[Delivery],
        selected_id: Optional[str] = None,
    ) -> Fulfillment:
        """One option per shipping method, priced from the matching delivery.

        An unknown ``selected_id`` leaves the group without a selection.
        """
        options = [self._fulfillment_option(method, deliveries) for method in shipping_methods]
        option_ids = {option.id for option in options}
        if selected_id is not None and selected_id not in option_ids:
            logger.debug(f"Selected shipping method not offered: selected_id={selected_id}")
            selected_id = None
        return Fulfillment(options=options, selected_option_id=selected_id)

    def _fulfillment_option(
        self,
        method: ShippingMethod,
        deliveries: Sequence[Delivery],
    ) -> FulfillmentOption:
        delivery = next(
            (d for d in deliveries if d.shipping_method is not None and d.shipping_method.id == method.id),
            None,
        )
        price = to_minor_units(delivery.shipping_costs.total_price) if delivery else 0
        translated = method.translated
        return FulfillmentOption(
            id=method.id,
            label=(translated.name if translated and translated.name else method.name),
            description=(
                translated.description if translated and translated.description else method.description
            ),
            carrier=method.name,
            delivery_estimate=self._delivery_estimate(method.delivery_time),
            price=price,
            currency=self.currency,
        )

    @staticmethod
    def _delivery_estimate(delivery_time: Optional[DeliveryTime]) -> Optional[DeliveryEstimate]:
        if delivery_time is None:
            return None
        days = _DAYS_PER_UNIT.get(delivery_time.unit, 1)
        return DeliveryEstimate(
            min_days=delivery_time.min * days,
            max_days=delivery_time.max * days,
        )

    # ------------------------------------------------------------------
    # Discounts
    # ------------------------------------------------------------------

    def map_discounts(self, cart: ShopwareCart, codes: Optional[Sequence[str]] = None) -> Discounts:
        applied = [
            AppliedDiscount(
                code=promotion.payload.get("code"),
                label=promotion.label,
                amount=self._promotion_amount(promotion),
                currency=self.currency,
            )
            for promotion in self._promotions(cart)
        ]
        return Discounts(codes=list(codes or []), applied=applied)

    # ------------------------------------------------------------------
    # Addresses
    # ------------------------------------------------------------------

    @staticmethod
    def map_to_shopware_address(
        address: Address,
        country_id: str,
        salutation_id: str,
        state_id: Optional[str] = None,
    ) -> ShopwareAddress:
        """Rename UCP address fields and inject the resolved platform ids."""
        return ShopwareAddress(
            country_id=country_id,
            country_state_id=state_id,
            salutation_id=salutation_id,
            first_name=address.first_name or "",
            last_name=address.last_name or "",
            street=address.street_address or "",
            additional_address_line1=address.extended_address,
            zipcode=address.postal_code or "",
            city=address.address_locality or "",
            phone_number=address.phone,
        )

    @staticmethod
    def map_from_shopware_address(record: ShopwareAddress, country_iso: str) -> Address:
        return Address(
            first_name=record.first_name,
            last_name=record.last_name,
            street_address=record.street,
            extended_address=record.additional_address_line1,
            address_locality=record.city,
            address_region=record.country_state_id,
            postal_code=record.zipcode,
            address_country=country_iso,
            phone=record.phone_number,
        )

    # ------------------------------------------------------------------
    # Snapshot
    # ------------------------------------------------------------------

    def build_snapshot(
        self,
        cart: ShopwareCart,
        shipping_methods: Sequence[ShippingMethod] = (),
        selected_shipping_id: Optional[str] = None,
        discount_codes: Optional[Sequence[str]] = None,
    ) -> CartSnapshot:
        return CartSnapshot(
            currency=self.currency,
            line_items=self.map_line_items(cart),
            totals=self.map_cart_totals(cart),
            fulfillment=self.map_fulfillment(shipping_methods, cart.deliveries, selected_shipping_id),
            discounts=self.map_discounts(cart, discount_codes),
        )


__all__ = ["CartMapper"]
