"""Inventory DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
DTOs are immutable (``frozen=True``).

- ``StockItemDTO``: one ``{product_id, quantity}`` line for a ledger call.
- ``StockCheckItemDTO``: a line as submitted for an availability check;
  the quantity is deliberately unvalidated so the validator can report it.
- ``StockShortfallDTO``: one itemized availability failure.
- ``ReserveStockDTO``: input for holding stock during checkout.
- ``LedgerEntryDTO`` / ``StockHistoryDTO``: stock-history query output.
- ``StockAuditDTO``: result of reconstructing a product's counters.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from modules.inventory.constants import RESERVATION_REF_PREFIX

if TYPE_CHECKING:
    from modules.inventory.models import StockLedgerEntry


def generate_reservation_ref() -> str:
    return f"{RESERVATION_REF_PREFIX}{uuid4().hex[:16].upper()}"


# ---------------------------------------------------------------------------
# Input DTOs
# ---------------------------------------------------------------------------


class StockItemDTO(BaseModel):
    """Immutable ledger line."""

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: int

    @field_validator("quantity")
    @classmethod
    def quantity_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Quantity must be at least 1.")
        return v


class StockCheckItemDTO(BaseModel):
    """Immutable availability-check line."""

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    quantity: Optional[int] = None


class ReserveStockDTO(BaseModel):
    """Immutable DTO for a checkout hold.

    Validates:
    - ``items`` must contain at least one line.
    - A product may appear only once.
    """

    model_config = ConfigDict(frozen=True)

    reservation_ref: str = Field(default_factory=generate_reservation_ref)
    items: List[StockItemDTO]

    @field_validator("reservation_ref")
    @classmethod
    def ref_must_not_be_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Reservation reference must not be blank.")
        return v.strip()

    @field_validator("items")
    @classmethod
    def items_must_not_be_empty(cls, v: List[StockItemDTO]) -> List[StockItemDTO]:
        if not v:
            raise ValueError("At least one item is required.")
        return v

    @model_validator(mode="after")
    def no_duplicate_products(self):
        product_ids = [item.product_id for item in self.items]
        if len(product_ids) != len(set(product_ids)):
            raise ValueError("Duplicate product IDs are not allowed in one reservation.")
        return self


# ---------------------------------------------------------------------------
# Output DTOs
# ---------------------------------------------------------------------------


class StockShortfallDTO(BaseModel):
    """Immutable itemized availability error."""

    model_config = ConfigDict(frozen=True)

    product_id: str
    product_name: Optional[str] = None
    requested: Optional[int] = None
    available: int = 0
    remaining: Optional[int] = None
    error: str


class LedgerEntryDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: UUID
    action: str
    quantity: int
    order_ref: str
    reason: str
    stock_remaining_after: int
    stock_reserved_after: int
    timestamp: datetime

    @classmethod
    def from_entity(cls, entry: StockLedgerEntry) -> LedgerEntryDTO:
        return cls(
            id=entry.id,
            action=entry.action,
            quantity=entry.quantity,
            order_ref=entry.order_ref,
            reason=entry.reason,
            stock_remaining_after=entry.stock_remaining_after,
            stock_reserved_after=entry.stock_reserved_after,
            timestamp=entry.created_at,
        )


class StockHistoryDTO(BaseModel):
    """Current counters plus the full ledger, newest entry first."""

    model_config = ConfigDict(frozen=True)

    product_id: UUID
    product_name: str
    current_stock: int
    reserved_stock: int
    available_stock: int
    history: List[LedgerEntryDTO]


class StockAuditDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    product_id: UUID
    expected_remaining: int
    actual_remaining: int
    expected_reserved: int
    actual_reserved: int

    @property
    def is_consistent(self) -> bool:
        return (
            self.expected_remaining == self.actual_remaining
            and self.expected_reserved == self.actual_reserved
        )
