"""Product repository interface.

Extends ``IRepository[Product]`` with the row-locking and conditional
update primitives the inventory ledger is built on.
"""

from __future__ import annotations

from abc import abstractmethod
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional

from django.db import models

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from modules.products.models import Product


class IProductRepository(IRepository["Product"]):
    """Repository contract for the Product aggregate."""

    @abstractmethod
    def list(
        self, filters: Optional[Dict[str, Any]] = None
    ) -> "models.QuerySet[Product]":
        """List live (not soft-deleted) products with optional filters."""

    @abstractmethod
    def list_by_ids(self, ids: Iterable[str]) -> Dict[str, "Product"]:
        """Return live products keyed by their string ID; unknown IDs are absent."""

    @abstractmethod
    def get_with_deleted(self, id: str) -> Optional["Product"]:
        """Retrieve a product by primary key, soft-deleted or not."""

    @abstractmethod
    def get_for_update(self, id: str) -> Optional["Product"]:
        """Retrieve a product with a row-level lock (SELECT FOR UPDATE).

        Must be called inside a transaction.  Returns ``None`` if the
        product does not exist.
        """

    @abstractmethod
    def lock_many(self, ids: Iterable[str]) -> List["Product"]:
        """Lock several product rows in primary-key order."""

    @abstractmethod
    def apply_stock_delta(
        self,
        id: str,
        remaining_delta: int = 0,
        reserved_delta: int = 0,
        min_remaining: Optional[int] = None,
        min_available: Optional[int] = None,
        require_active: bool = False,
    ) -> Optional["Product"]:
        """Apply a guarded increment to the stock counters in one UPDATE.

        The guard is evaluated by the database against the current row:
        ``stock_remaining >= min_remaining`` and
        ``stock_remaining - stock_reserved >= min_available`` (each only
        when given).  Returns the refreshed product, or ``None`` when no
        row matched.
        """
