"""Domain events for the Orders bounded context.

Every event carries the public ``order_id`` besides the aggregate's
primary key, so consumers can correlate it with ledger entries.
"""

from __future__ import annotations

from dataclasses import dataclass

from shared.domain.events import DomainEvent


@dataclass(frozen=True)
class OrderPlaced(DomainEvent):
    """Raised when an order is committed (stock deducted)."""

    order_id: str = ""
    total_price: str = "0.00"
    item_count: int = 0


@dataclass(frozen=True)
class OrderCancelled(DomainEvent):
    """Raised when a customer cancellation refunded the order's stock."""

    order_id: str = ""
    previous_status: str = ""


@dataclass(frozen=True)
class OrderStatusChanged(DomainEvent):
    """Raised when an admin moves an order through the delivery states."""

    order_id: str = ""
    old_status: str = ""
    new_status: str = ""


@dataclass(frozen=True)
class OrderDeleted(DomainEvent):
    """Raised when an admin removes an order."""

    order_id: str = ""
    stock_refunded: bool = False
