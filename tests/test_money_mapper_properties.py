"""Property-based tests for monetary conversion and cart mapping."""
from __future__ import annotations

from decimal import Decimal

import pytest

hypothesis = pytest.importorskip("hypothesis")
st = hypothesis.strategies
given = hypothesis.given
settings = hypothesis.settings

from shopware_ucp.mapper import CartMapper  # noqa: E402
from shopware_ucp.models.shopware import ShopwareCart  # noqa: E402
from shopware_ucp.models.ucp import TotalType  # noqa: E402
from shopware_ucp.money import format_major, from_minor_units, to_minor_units  # noqa: E402

cents = st.integers(min_value=0, max_value=10**7)


@given(st.integers(min_value=-10**9, max_value=10**9))
def test_minor_units_round_trip(minor: int) -> None:
    assert to_minor_units(from_minor_units(minor)) == minor
    assert to_minor_units(format_major(minor)) == minor


@given(st.decimals(min_value=-10**6, max_value=10**6, places=2, allow_nan=False, allow_infinity=False))
def test_two_decimal_values_convert_exactly(value: Decimal) -> None:
    assert to_minor_units(value) == int(value * 100)


line_item = st.fixed_dictionaries({
    "unit": cents,
    "quantity": st.integers(min_value=1, max_value=20),
    "promotion": st.booleans(),
})


@given(st.lists(line_item, max_size=12))
@settings(max_examples=100, deadline=None)
def test_line_items_exclude_promotions_in_order(items) -> None:
    cart = ShopwareCart.model_validate({
        "lineItems": [
            {
                "id": f"li-{i}",
                "type": "promotion" if item["promotion"] else "product",
                "good": not item["promotion"],
                "quantity": item["quantity"],
                "price": {
                    "unitPrice": str(from_minor_units(item["unit"])),
                    "totalPrice": str(from_minor_units(item["unit"] * item["quantity"])),
                },
            }
            for i, item in enumerate(items)
        ],
    })
    mapped = CartMapper().map_line_items(cart)

    expected = [f"li-{i}" for i, item in enumerate(items) if not item["promotion"]]
    assert [m.id for m in mapped] == expected
    for m in mapped:
        source = items[int(m.id.split("-")[1])]
        assert m.total == source["unit"] * source["quantity"]


@given(subtotal=cents, shipping=cents, tax=cents)
@settings(max_examples=100, deadline=None)
def test_total_is_sum_of_components_without_discounts(subtotal: int, shipping: int, tax: int) -> None:
    cart = ShopwareCart.model_validate({
        "price": {
            "netPrice": str(from_minor_units(subtotal + shipping)),
            "positionPrice": str(from_minor_units(subtotal)),
            "totalPrice": str(from_minor_units(subtotal + shipping + tax)),
            "calculatedTaxes": [{"tax": str(from_minor_units(tax)), "taxRate": "19"}],
            "taxStatus": "net",
        },
        "deliveries": [{"shippingCosts": {"totalPrice": str(from_minor_units(shipping))}}],
    })
    amounts = {t.type: t.amount for t in CartMapper().map_cart_totals(cart)}

    assert amounts[TotalType.TOTAL] == (
        amounts[TotalType.SUBTOTAL] + amounts[TotalType.FULFILLMENT] + amounts[TotalType.TAX]
    )
