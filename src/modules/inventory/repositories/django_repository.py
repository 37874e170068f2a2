"""Django ORM implementation of the stock ledger repository."""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional, Set

from django.db import models

from modules.inventory.constants import StockAction
from modules.inventory.models import StockLedgerEntry
from modules.inventory.repositories.interfaces import IStockLedgerRepository
from modules.products.models import Product


class StockLedgerDjangoRepository(IStockLedgerRepository):
    """Concrete ledger repository backed by Django ORM."""

    def append(
        self,
        product: Product,
        action: str,
        quantity: int,
        order_ref: str,
        reason: str,
        owner_id: Optional[int] = None,
    ) -> StockLedgerEntry:
        return StockLedgerEntry.objects.create(
            product=product,
            action=action,
            quantity=quantity,
            order_ref=order_ref,
            reason=reason,
            stock_remaining_after=product.stock_remaining,
            stock_reserved_after=product.stock_reserved,
            owner_id=owner_id,
        )

    def history(self, product_id: str) -> "models.QuerySet[StockLedgerEntry]":
        return StockLedgerEntry.objects.filter(product_id=product_id).order_by(
            "-created_at", "-id"
        )

    def outstanding_reservations(self, order_ref: str) -> Dict[str, int]:
        balances = StockLedgerEntry.objects.for_ref(order_ref).net_by_product(
            StockAction.RESERVED, StockAction.UNRESERVED
        )
        return {pid: qty for pid, qty in balances.items() if qty > 0}

    def reservation_owners(self, order_ref: str) -> Set[Optional[int]]:
        return StockLedgerEntry.objects.reservation_owners(order_ref)

    def refundable_quantities(self, order_ref: str) -> Dict[str, int]:
        balances = StockLedgerEntry.objects.for_ref(order_ref).net_by_product(
            StockAction.DEDUCTED, StockAction.REFUNDED
        )
        return {pid: qty for pid, qty in balances.items() if qty > 0}

    def totals_by_action(self, product_id: str) -> Dict[str, int]:
        return StockLedgerEntry.objects.filter(product_id=product_id).totals_by_action()

    def idle_reservation_refs(self, cutoff: datetime) -> List[str]:
        return StockLedgerEntry.objects.reservation_refs_idle_since(cutoff)
