"""
Cart pricing: subtotal -> per-item discount -> VAT -> total.

Pure functions over Decimal amounts. Nothing here validates input: negative
prices, out-of-range custom percents and unknown discount tags are the input
layer's business. Unknown tags price as "no discount"; a custom percent above
100 is applied as-is and can drive the total negative.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Tuple

from pharmapos.constants import (
    DISCOUNT_CUSTOM,
    DISCOUNT_EMPLOYEE,
    DISCOUNT_NONE,
    DISCOUNT_PWD,
    DISCOUNT_SENIOR,
    TIER_RATES,
    VAT_RATE,
)

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(v: Any) -> Decimal:
    if isinstance(v, Decimal):
        return v
    if v is None:
        return ZERO
    # str() first so 0.1 stays 0.1 and not its binary expansion
    return Decimal(str(v))


@dataclass(frozen=True)
class CartItem:
    product_id: Any
    price: Decimal
    quantity: int
    name: str = ""
    meta: Dict[str, Any] = field(default_factory=dict, compare=False)
    discount: Optional[Decimal] = None

    @property
    def line_total(self) -> Decimal:
        return to_decimal(self.price) * self.quantity


@dataclass(frozen=True)
class DiscountSelection:
    kind: str = DISCOUNT_NONE
    custom_value: Optional[Decimal] = None

    @classmethod
    def none(cls) -> "DiscountSelection":
        return cls(DISCOUNT_NONE)

    @classmethod
    def senior(cls) -> "DiscountSelection":
        return cls(DISCOUNT_SENIOR)

    @classmethod
    def pwd(cls) -> "DiscountSelection":
        return cls(DISCOUNT_PWD)

    @classmethod
    def employee(cls) -> "DiscountSelection":
        return cls(DISCOUNT_EMPLOYEE)

    @classmethod
    def custom(cls, percent: Any) -> "DiscountSelection":
        return cls(DISCOUNT_CUSTOM, None if percent is None else to_decimal(percent))


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount_amount: Decimal
    discounted_subtotal: Decimal
    vat: Decimal
    total: Decimal
    items: Tuple[CartItem, ...] = ()

    def as_dict(self) -> Dict[str, Any]:
        return {
            "subtotal": self.subtotal,
            "discountAmount": self.discount_amount,
            "discountedSubtotal": self.discounted_subtotal,
            "vat": self.vat,
            "total": self.total,
            "items": [
                {
                    "productId": it.product_id,
                    "name": it.name,
                    "price": it.price,
                    "quantity": it.quantity,
                    "discount": it.discount,
                }
                for it in self.items
            ],
        }


def discount_rate(selection: DiscountSelection) -> Decimal:
    if selection.kind == DISCOUNT_CUSTOM:
        value = to_decimal(selection.custom_value)
        if value <= 0:
            return ZERO
        return value / HUNDRED
    return TIER_RATES.get(selection.kind, ZERO)


def item_discount(price: Any, quantity: int, selection: DiscountSelection) -> Decimal:
    if selection.kind == DISCOUNT_NONE:
        return ZERO
    return to_decimal(price) * quantity * discount_rate(selection)


def subtotal(items: Iterable[CartItem]) -> Decimal:
    return sum((it.line_total for it in items), ZERO)


def total_discount(items: Iterable[CartItem], selection: DiscountSelection) -> Decimal:
    return sum((item_discount(it.price, it.quantity, selection) for it in items), ZERO)


def vat(discounted_subtotal: Any) -> Decimal:
    return to_decimal(discounted_subtotal) * VAT_RATE


def compute_totals(items: Iterable[CartItem], selection: DiscountSelection) -> Totals:
    priced: List[CartItem] = [
        replace(it, discount=item_discount(it.price, it.quantity, selection)) for it in items
    ]

    sub = subtotal(priced)
    discount_amount = sum((it.discount for it in priced), ZERO)
    discounted = sub - discount_amount
    tax = vat(discounted)

    return Totals(
        subtotal=sub,
        discount_amount=discount_amount,
        discounted_subtotal=discounted,
        vat=tax,
        total=discounted + tax,
        items=tuple(priced),
    )
