"""Order repository interface.

Extends ``IRepository[Order]`` with the commit-state transitions of order
placement, status history tracking and the public ``order_id`` look-ups.

The Service Layer depends exclusively on this contract (DIP).
"""

from __future__ import annotations

from abc import abstractmethod
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from modules.core.repositories.interfaces import IRepository

if TYPE_CHECKING:
    from django.contrib.auth.models import AbstractBaseUser
    from django.db import models

    from modules.orders.models import Order, OrderStatusHistory


class IOrderRepository(IRepository["Order"]):
    """Repository contract for the Order aggregate root.

    The Order aggregate includes OrderItem children and
    OrderStatusHistory records.  Mutations must be atomic.
    """

    @abstractmethod
    def create_pending(self, data: Dict[str, Any]) -> Order:
        """Insert an order in the ``pending`` commit state with its items.

        Raises ``OrderIdCollision`` when ``order_id`` or ``tracking_code``
        is already taken.
        """

    @abstractmethod
    def mark_committed(self, order: Order) -> Order:
        """Move a pending order to ``committed``."""

    @abstractmethod
    def mark_rolled_back(self, order: Order) -> Order:
        """Move an order to ``rolled_back`` ahead of its removal."""

    @abstractmethod
    def get_by_order_id(self, order_id: str) -> Optional[Order]:
        """Retrieve a committed order by its public ``order_id``."""

    @abstractmethod
    def get_for_update(self, order_id: str) -> Optional[Order]:
        """Retrieve a committed order with a row-level lock."""

    @abstractmethod
    def list(self, filters: Optional[Dict[str, Any]] = None) -> "models.QuerySet[Order]":
        """List committed orders with optional filters."""

    @abstractmethod
    def list_stale_uncommitted(self, cutoff: datetime) -> List[Order]:
        """Orders pending since before *cutoff*, plus any rolled back."""

    @abstractmethod
    def remove(self, order: Order) -> None:
        """Hard-delete an order after flushing its pending domain events."""

    @abstractmethod
    def add_history(
        self,
        order: Order,
        new_status: str,
        old_status: Optional[str] = None,
        notes: str = "",
        user: Optional[AbstractBaseUser] = None,
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""

    @abstractmethod
    def get_user(self, user_id: Any) -> Optional[AbstractBaseUser]:
        """Retrieve the active user placing an order."""
