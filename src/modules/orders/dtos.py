"""Order DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
These are the contracts between the API layer (DRF Serializers)
and the Service layer.  DTOs are immutable (``frozen=True``).

- ``ShippingAddressDTO``: delivery address snapshot.
- ``PlaceOrderItemDTO``: a single line of a checkout.
- ``PlaceOrderDTO``: input for order placement (nested items/address).
"""

from __future__ import annotations

from decimal import Decimal
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator, model_validator


class ShippingAddressDTO(BaseModel):
    """Immutable shipping address; every field is required and non-blank."""

    model_config = ConfigDict(frozen=True, str_strip_whitespace=True)

    first_name: str
    last_name: str
    address: str
    city: str
    postal_code: str
    country: str
    phone: str

    @field_validator("*")
    @classmethod
    def must_not_be_blank(cls, v: str) -> str:
        if not v:
            raise ValueError("Field must not be blank.")
        return v


class PlaceOrderItemDTO(BaseModel):
    """Immutable DTO for a single checkout line.

    The storefront sends ``product_id`` and ``quantity`` only; name and
    price are resolved by the Service Layer from the catalog.
    """

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class PlaceOrderDTO(BaseModel):
    """Immutable DTO for order placement requests.

    Validates:
    - ``items`` must contain at least one line, each product at most once.
    - ``payment`` must not be blank.
    - ``delivery_price`` must not be negative.
    """

    model_config = ConfigDict(frozen=True)

    user_id: int
    items: List[PlaceOrderItemDTO]
    shipping_address: ShippingAddressDTO
    payment: str
    delivery_price: Decimal = Decimal("0.00")
    reservation_ref: Optional[str] = None

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(
        cls, v: List[PlaceOrderItemDTO]
    ) -> List[PlaceOrderItemDTO]:
        if not v:
            raise ValueError("Order must have at least one item.")
        return v

    @field_validator("payment")
    @classmethod
    def payment_must_not_be_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Payment method is required.")
        return v.strip()

    @field_validator("delivery_price")
    @classmethod
    def delivery_price_must_not_be_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Delivery price cannot be negative.")
        return v

    @model_validator(mode="after")
    def no_duplicate_products(self):
        """Prevent duplicate product IDs in the same order."""
        product_ids = [item.product_id for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("Duplicate product IDs are not allowed in the same order.")
        return self
