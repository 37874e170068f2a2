"""Order domain constants.

Status choices and valid status transitions for the delivery state
machine, plus the commit states of order placement.
"""

from django.db import models


class OrderStatus(models.TextChoices):
    IN_TRANSIT = "In Transit", "In Transit"
    SHIPPED = "Shipped", "Shipped"
    DELIVERED = "Delivered", "Delivered"
    CANCELLED = "Cancelled", "Cancelled"
    RETURNED = "Returned", "Returned"


VALID_TRANSITIONS: dict[str, set[str]] = {
    OrderStatus.IN_TRANSIT: {
        OrderStatus.SHIPPED,
        OrderStatus.DELIVERED,
        OrderStatus.RETURNED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED, OrderStatus.RETURNED},
    OrderStatus.DELIVERED: {OrderStatus.RETURNED},
    OrderStatus.CANCELLED: set(),
    OrderStatus.RETURNED: set(),
}

TERMINAL_STATES: set[str] = {OrderStatus.CANCELLED, OrderStatus.RETURNED}

# Customers can no longer cancel once the parcel left the warehouse.
NOT_CANCELLABLE_STATES: set[str] = {
    OrderStatus.SHIPPED,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
    OrderStatus.RETURNED,
}


class CommitState(models.TextChoices):
    """Progress of order placement.

    ``pending``: order row written, stock not yet deducted.
    ``committed``: stock deducted; the order is visible to everyone.
    ``rolled_back``: placement failed after the row was written; the row
    is deleted by the compensation step or, failing that, by the sweeper.
    """

    PENDING = "pending", "Pending"
    COMMITTED = "committed", "Committed"
    ROLLED_BACK = "rolled_back", "Rolled back"


ORDER_ID_PREFIX = "ORD-"
TRACKING_CODE_PREFIX = "TRK"

REASON_CANCELLED_BY_CUSTOMER = "Order cancelled by customer"
REASON_ORDER_DELETED = "Order deleted/cancelled"
