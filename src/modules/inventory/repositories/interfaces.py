"""Stock ledger repository interface.

The ledger is append-only, so unlike the aggregate repositories it does
not extend ``IRepository``: there is no update or delete.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Dict, List, Optional, Set

if TYPE_CHECKING:
    from django.db import models

    from modules.inventory.models import StockLedgerEntry
    from modules.products.models import Product


class IStockLedgerRepository(ABC):
    """Repository contract for ``StockLedgerEntry``."""

    @abstractmethod
    def append(
        self,
        product: Product,
        action: str,
        quantity: int,
        order_ref: str,
        reason: str,
        owner_id: Optional[int] = None,
    ) -> StockLedgerEntry:
        """Record a mutation using the product's post-update balances."""

    @abstractmethod
    def history(self, product_id: str) -> "models.QuerySet[StockLedgerEntry]":
        """All entries for a product, newest first."""

    @abstractmethod
    def outstanding_reservations(self, order_ref: str) -> Dict[str, int]:
        """Units still held under *order_ref*, keyed by product ID."""

    @abstractmethod
    def reservation_owners(self, order_ref: str) -> Set[Optional[int]]:
        """IDs of the users that took holds under *order_ref*."""

    @abstractmethod
    def refundable_quantities(self, order_ref: str) -> Dict[str, int]:
        """Units deducted for *order_ref* and not yet refunded, per product."""

    @abstractmethod
    def totals_by_action(self, product_id: str) -> Dict[str, int]:
        """Summed quantity per action for one product."""

    @abstractmethod
    def idle_reservation_refs(self, cutoff: datetime) -> List[str]:
        """References still holding units whose last hold predates *cutoff*."""
