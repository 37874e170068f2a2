"""Order, OrderItem, and OrderStatusHistory models.

Business rules implemented:
- ``order_id`` (``ORD-<epoch ms>``) and ``tracking_code`` (``TRK<epoch ms>``)
  are unique at the database level; a collision surfaces as an
  ``IntegrityError`` on insert.
- ``commit_state`` records how far placement got (pending, committed,
  rolled back); only committed orders are visible through the API.
- Status transitions are validated against ``VALID_TRANSITIONS``
  (enforced at service layer) and each change writes a history record.
- OrderItem snapshots product name and discounted price at purchase time;
  ``subtotal`` is always ``quantity * price`` (calculated on save).
- Orders are hard-deleted by admins; items and history cascade, the
  stock ledger keeps its entries since it references ``order_id`` by value.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel
from modules.orders.constants import (
    NOT_CANCELLABLE_STATES,
    ORDER_ID_PREFIX,
    TERMINAL_STATES,
    TRACKING_CODE_PREFIX,
    VALID_TRANSITIONS,
    CommitState,
    OrderStatus,
)
from shared.domain.events import DomainEventMixin


class Order(DomainEventMixin, BaseModel):
    """Order aggregate root.

    ``order_id`` is the human-readable identifier shared with the customer
    and written on every ledger entry; the UUIDv7 ``id`` stays internal.
    """

    order_id: models.CharField = models.CharField(
        max_length=32, unique=True, editable=False
    )
    tracking_code: models.CharField = models.CharField(
        max_length=32, unique=True, editable=False
    )
    user: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
    )
    status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
        default=OrderStatus.IN_TRANSIT,
    )
    commit_state: models.CharField = models.CharField(
        max_length=20,
        choices=CommitState.choices,
        default=CommitState.PENDING,
    )
    payment: models.CharField = models.CharField(max_length=50)
    delivery_price: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    total_price: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    shipping_address: models.JSONField = models.JSONField()
    reservation_ref: models.CharField = models.CharField(
        max_length=64, blank=True, default=""
    )
    est_delivery: models.DateTimeField = models.DateTimeField()
    origin: models.CharField = models.CharField(max_length=100)
    destination: models.CharField = models.CharField(max_length=100)
    last_location: models.CharField = models.CharField(max_length=100)
    carrier: models.CharField = models.CharField(max_length=50)

    class Meta:
        db_table = "orders"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="orders_status_idx"),
            models.Index(fields=["-created_at"], name="orders_created_idx"),
            models.Index(
                fields=["commit_state", "created_at"],
                name="orders_commit_state_idx",
            ),
            models.Index(fields=["user", "-created_at"], name="orders_user_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(total_price__gte=0),
                name="orders_total_price_non_negative",
            ),
            models.CheckConstraint(
                check=models.Q(delivery_price__gte=0),
                name="orders_delivery_price_non_negative",
            ),
        ]

    # ------------------------------------------------------------------
    # State Machine helpers
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        """Return ``True`` if the order is in a terminal state."""
        return self.status in TERMINAL_STATES

    @property
    def is_cancellable(self) -> bool:
        return self.status not in NOT_CANCELLABLE_STATES

    @property
    def holds_stock(self) -> bool:
        """Whether units deducted for this order have not been given back."""
        return (
            self.commit_state == CommitState.COMMITTED
            and self.status != OrderStatus.CANCELLED
        )

    def can_transition_to(self, new_status: str) -> bool:
        """Check whether transitioning to *new_status* is valid."""
        allowed = VALID_TRANSITIONS.get(self.status, set())
        return new_status in allowed

    # ------------------------------------------------------------------
    # Identifier generation
    # ------------------------------------------------------------------

    @staticmethod
    def generate_identifiers(now: datetime) -> tuple[str, str]:
        """``(order_id, tracking_code)`` derived from *now* in epoch milliseconds."""
        millis = int(now.timestamp() * 1000)
        return f"{ORDER_ID_PREFIX}{millis}", f"{TRACKING_CODE_PREFIX}{millis}"

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.order_id} ({self.status})"


class OrderItem(BaseModel):
    """Line item linking an Order to a Product.

    ``name`` and ``price`` are a **snapshot** of the product at the time
    of purchase (price after discount) and never change afterwards.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="items",
    )
    product: models.ForeignKey = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="order_items",
    )
    name: models.CharField = models.CharField(max_length=255)
    quantity: models.PositiveIntegerField = models.PositiveIntegerField(
        default=1,
        validators=[MinValueValidator(1)],
    )
    price: models.DecimalField = models.DecimalField(
        max_digits=10,
        decimal_places=2,
    )
    subtotal: models.DecimalField = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        editable=False,
    )

    class Meta:
        db_table = "order_items"
        ordering = ["created_at"]
        constraints = [
            models.CheckConstraint(
                check=models.Q(quantity__gte=1),
                name="order_items_quantity_positive",
            ),
            models.UniqueConstraint(
                fields=["order", "product"],
                name="order_items_unique_product_per_order",
            ),
        ]

    def clean(self) -> None:
        super().clean()
        if self.quantity is not None and self.quantity < 1:
            raise ValidationError({"quantity": "Quantity must be at least 1."})

    def save(self, *args: Any, **kwargs: Any) -> None:
        if self.price is None:
            raise ValidationError({"price": "Price at purchase is required."})
        self.subtotal = self.quantity * self.price
        super().save(*args, **kwargs)

    def __str__(self) -> str:
        return f"{self.name} x{self.quantity} (${self.subtotal})"


class OrderStatusHistory(BaseModel):
    """Append-only audit trail for order status transitions.

    ``user`` is nullable: ``None`` means the change was performed by the
    system.
    """

    order: models.ForeignKey = models.ForeignKey(
        "orders.Order",
        on_delete=models.CASCADE,
        related_name="status_history",
    )
    old_status: models.CharField = models.CharField(  # noqa: DJ01
        max_length=20,
        choices=OrderStatus.choices,
        null=True,
        blank=True,
    )
    new_status: models.CharField = models.CharField(
        max_length=20,
        choices=OrderStatus.choices,
    )
    user: models.ForeignKey = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
    )
    notes: models.TextField = models.TextField(blank=True, default="")

    class Meta:
        db_table = "order_status_history"
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["order", "-created_at"],
                name="osh_order_created_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.order} : {self.old_status} -> {self.new_status}"
