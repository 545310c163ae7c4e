from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Optional

from pydantic import BaseModel, Field, field_validator

from pharmapos.constants import DISCOUNT_CUSTOM, DISCOUNT_NONE, PAYMENT_METHODS
from pharmapos.services.pricing import CartItem, DiscountSelection
from pharmapos.utils.validators import (
    require_non_negative,
    require_percent,
    require_positive_number,
)


# ---------------- auth ----------------

class PmsLoginIn(BaseModel):
    employee_id: str
    password: str


class PosLoginIn(BaseModel):
    pin_code: str


class ForgotPasswordIn(BaseModel):
    employee_id: str
    email: str


class VerifyResetTokenIn(BaseModel):
    employee_id: str
    token: str


class ResetPasswordIn(BaseModel):
    employee_id: str
    token: str
    new_password: str = Field(min_length=6)


# ---------------- pos ----------------

class DiscountIn(BaseModel):
    type: str = DISCOUNT_NONE
    custom_value: Optional[Decimal] = None

    @field_validator("custom_value")
    @classmethod
    def _custom_in_range(cls, v: Optional[Decimal]) -> Optional[Decimal]:
        if v is not None:
            require_percent(v, "custom_value")
        return v

    def to_selection(self) -> DiscountSelection:
        if self.type == DISCOUNT_CUSTOM:
            return DiscountSelection.custom(self.custom_value)
        # неизвестный тип уходит как есть, pricing даст 0
        return DiscountSelection(self.type)


class CartItemIn(BaseModel):
    product_id: Any
    name: str = ""
    price: Decimal
    quantity: int

    @field_validator("price")
    @classmethod
    def _price_ok(cls, v: Decimal) -> Decimal:
        require_non_negative(v, "price")
        return v

    @field_validator("quantity")
    @classmethod
    def _qty_ok(cls, v: int) -> int:
        require_positive_number(v, "quantity")
        return v

    def to_item(self) -> CartItem:
        return CartItem(product_id=self.product_id, price=self.price, quantity=self.quantity, name=self.name)


class TotalsIn(BaseModel):
    items: List[CartItemIn] = []
    discount: DiscountIn = DiscountIn()


class PricedItemOut(BaseModel):
    productId: Any
    name: str
    price: Decimal
    quantity: int
    discount: Decimal


class TotalsOut(BaseModel):
    subtotal: Decimal
    discountAmount: Decimal
    discountedSubtotal: Decimal
    vat: Decimal
    total: Decimal
    items: List[PricedItemOut]


class CheckoutLineIn(BaseModel):
    product_id: int
    quantity: int

    @field_validator("quantity")
    @classmethod
    def _qty_ok(cls, v: int) -> int:
        require_positive_number(v, "quantity")
        return v


class CheckoutIn(BaseModel):
    items: List[CheckoutLineIn]
    discount: DiscountIn = DiscountIn()
    payment_method: str = "cash"
    customer_id: Optional[int] = None

    @field_validator("payment_method")
    @classmethod
    def _payment_ok(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in PAYMENT_METHODS:
            raise ValueError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
        return v
