"""Append-only stock ledger.

Every mutation of ``Product.stock_remaining`` / ``Product.stock_reserved``
writes exactly one ``StockLedgerEntry`` per product, carrying the balances
right after the change.  Summing a product's entries reconstructs its
counters:

    initial_stock - (deducted - refunded) == stock_remaining
    reserved - unreserved                  == stock_reserved
"""

from __future__ import annotations

from typing import Dict, Optional, Set

from django.conf import settings
from django.db import models
from django.db.models import Max, Q, Sum

from modules.core.models import BaseModel
from modules.inventory.constants import StockAction
from modules.inventory.exceptions import LedgerEntryImmutable


class StockLedgerQuerySet(models.QuerySet):
    def for_ref(self, order_ref: str) -> StockLedgerQuerySet:
        return self.filter(order_ref=order_ref)

    def net_by_product(self, credit: str, debit: str) -> Dict[str, int]:
        """Per product: quantity under ``credit`` minus quantity under ``debit``."""
        rows = (
            self.filter(action__in=[credit, debit])
            .order_by()
            .values("product_id")
            .annotate(
                credited=Sum("quantity", filter=Q(action=credit), default=0),
                debited=Sum("quantity", filter=Q(action=debit), default=0),
            )
        )
        return {str(row["product_id"]): row["credited"] - row["debited"] for row in rows}

    def totals_by_action(self) -> Dict[str, int]:
        totals = self.order_by().aggregate(
            **{
                action: Sum("quantity", filter=Q(action=action), default=0)
                for action in StockAction.values
            }
        )
        return {action: totals[action] for action in StockAction.values}

    def reservation_owners(self, order_ref: str) -> Set[Optional[int]]:
        """User IDs that took holds under *order_ref*."""
        return set(
            self.for_ref(order_ref)
            .filter(action=StockAction.RESERVED)
            .order_by()
            .values_list("owner_id", flat=True)
            .distinct()
        )

    def reservation_refs_idle_since(self, cutoff) -> list[str]:
        """References whose last ``reserved`` entry is older than *cutoff*
        and which still hold units."""
        rows = (
            self.filter(action__in=[StockAction.RESERVED, StockAction.UNRESERVED])
            .order_by()
            .values("order_ref")
            .annotate(
                reserved=Sum(
                    "quantity", filter=Q(action=StockAction.RESERVED), default=0
                ),
                unreserved=Sum(
                    "quantity", filter=Q(action=StockAction.UNRESERVED), default=0
                ),
                last_reserved_at=Max(
                    "created_at", filter=Q(action=StockAction.RESERVED)
                ),
            )
            .filter(last_reserved_at__lt=cutoff)
        )
        return [row["order_ref"] for row in rows if row["reserved"] > row["unreserved"]]


class StockLedgerEntry(BaseModel):
    """Immutable audit record of one stock mutation on one product.

    ``order_ref`` is the order id (``ORD-...``) for deductions and refunds,
    or the reservation reference for holds taken during checkout.
    ``owner`` is the user who took a hold; it is set on ``reserved`` entries
    only.
    """

    product = models.ForeignKey(
        "products.Product",
        on_delete=models.PROTECT,
        related_name="stock_history",
    )
    action = models.CharField(max_length=20, choices=StockAction.choices)
    quantity = models.PositiveIntegerField()
    order_ref = models.CharField(max_length=64)
    reason = models.CharField(max_length=255, blank=True, default="")
    stock_remaining_after = models.PositiveIntegerField()
    stock_reserved_after = models.PositiveIntegerField()
    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="stock_reservations",
    )

    objects = StockLedgerQuerySet.as_manager()

    class Meta:
        db_table = "stock_ledger_entries"
        ordering = ["-created_at", "-id"]
        indexes = [
            models.Index(
                fields=["product", "-created_at"],
                name="ledger_product_created_idx",
            ),
            models.Index(
                fields=["order_ref", "action"],
                name="ledger_ref_action_idx",
            ),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(quantity__gte=1),
                name="ledger_quantity_positive",
            ),
        ]

    def save(self, *args, **kwargs) -> None:
        if not self._state.adding:
            raise LedgerEntryImmutable("Stock ledger entries cannot be modified.")
        super().save(*args, **kwargs)

    def delete(self, using=None, keep_parents=False):
        raise LedgerEntryImmutable("Stock ledger entries cannot be deleted.")

    def __str__(self) -> str:
        return f"{self.action} x{self.quantity} ({self.order_ref})"
