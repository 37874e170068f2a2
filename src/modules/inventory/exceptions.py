"""Inventory domain exceptions.

Raised by the ledger service when a guarded stock mutation cannot be
applied.  A raised exception always means the whole operation was rolled
back: no item of the call changed stock.
"""

from __future__ import annotations

from typing import Optional


class InsufficientStock(Exception):
    """A reserve or deduct would take a product below what is available."""

    def __init__(
        self,
        product_id: str,
        requested: int,
        available: int,
        message: Optional[str] = None,
    ) -> None:
        self.product_id = product_id
        self.requested = requested
        self.available = available
        super().__init__(
            message
            or f"Insufficient stock for product {product_id}: "
            f"requested {requested}, available {available}."
        )


class InvalidStockOperation(Exception):
    """A restore or refund exceeds what is outstanding for the reference."""


class LedgerEntryImmutable(Exception):
    """Ledger entries are append-only and cannot be changed or removed."""


class ReservationNotFound(Exception):
    """No hold is registered under the reference for this user."""


class ReservationRefTaken(Exception):
    """A client-chosen reservation reference already belongs to another user."""
