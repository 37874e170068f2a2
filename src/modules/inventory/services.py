"""Stock ledger service.

The only code path allowed to change ``Product.stock_remaining`` and
``Product.stock_reserved``.  Four mutations:

- ``reserve``: hold units during checkout (``stock_reserved += qty``).
- ``restore``: release a hold (``stock_reserved -= qty``).
- ``deduct``: remove units for a paid order (``stock_remaining -= qty``,
  consuming the order's hold if it had one).
- ``refund``: give back a deduction (``stock_remaining += qty``).

Each call is one database transaction over all of its items: product rows
are locked in primary-key order, every item is applied as a guarded
``UPDATE`` and audited with one ledger entry.  A failing item raises and
rolls back the items already applied in the same call.

Operations are not idempotent per reference: deducting twice for the same
order removes the units twice.  Callers run each at most once per
lifecycle event.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Tuple

import structlog
from django.db import transaction

from modules.inventory.constants import (
    REASON_CHECKOUT_ABANDONED,
    REASON_DEDUCTED,
    REASON_REFUNDED,
    REASON_RESERVATION_CONSUMED,
    REASON_RESERVATION_EXPIRED,
    REASON_RESERVED,
    REASON_RESTORED,
    StockAction,
)
from modules.inventory.dtos import (
    LedgerEntryDTO,
    StockAuditDTO,
    StockHistoryDTO,
    StockItemDTO,
)
from modules.inventory.exceptions import (
    InsufficientStock,
    InvalidStockOperation,
    ReservationRefTaken,
)
from modules.products.exceptions import ProductNotFound
from modules.products.models import ProductStatus

if TYPE_CHECKING:
    from modules.inventory.models import StockLedgerEntry
    from modules.inventory.repositories.interfaces import IStockLedgerRepository
    from modules.products.models import Product
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)

Line = Tuple[str, int]


class StockLedgerService:
    """Application service for stock mutations and ledger queries.

    Receives the product and ledger repositories via constructor
    injection (DIP).
    """

    def __init__(
        self,
        product_repository: IProductRepository,
        ledger_repository: IStockLedgerRepository,
    ) -> None:
        self._product_repo = product_repository
        self._ledger_repo = ledger_repository

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    @transaction.atomic
    def reserve(
        self,
        items: Iterable[Any],
        order_ref: str,
        owner_id: Optional[int] = None,
    ) -> List[StockLedgerEntry]:
        """Hold units for a checkout in progress on behalf of *owner_id*.

        A reference can be topped up only by the user who opened it.

        Raises:
            ReservationRefTaken: *order_ref* holds stock for another user.
            ProductNotFound: a product does not exist or was deleted.
            InsufficientStock: fewer free units than requested, or the
                product is not for sale.
        """
        owners = self._ledger_repo.reservation_owners(order_ref)
        if owners and owners != {owner_id}:
            raise ReservationRefTaken(
                f"Reservation reference {order_ref} is already in use."
            )
        lines = self._lock(items, live_only=True)
        entries = []
        for product_id, quantity in lines:
            product = self._product_repo.apply_stock_delta(
                product_id,
                reserved_delta=quantity,
                min_available=quantity,
                require_active=True,
            )
            if product is None:
                raise self._shortfall(product_id, quantity, free_only=True)
            entries.append(
                self._ledger_repo.append(
                    product,
                    StockAction.RESERVED,
                    quantity,
                    order_ref,
                    REASON_RESERVED,
                    owner_id=owner_id,
                )
            )

        logger.info("stock.reserved", order_ref=order_ref, items=len(entries))
        return entries

    @transaction.atomic
    def restore(
        self,
        items: Iterable[Any],
        order_ref: str,
        reason: str = REASON_RESTORED,
    ) -> List[StockLedgerEntry]:
        """Release units held under *order_ref*.

        Raises:
            ProductNotFound: a product does not exist.
            InvalidStockOperation: more units than *order_ref* holds.
        """
        lines = self._lock(items)
        held = self._ledger_repo.outstanding_reservations(order_ref)
        entries = []
        for product_id, quantity in lines:
            if quantity > held.get(product_id, 0):
                raise InvalidStockOperation(
                    f"Cannot release {quantity} units of product {product_id}: "
                    f"only {held.get(product_id, 0)} held under {order_ref}."
                )
            product = self._product_repo.apply_stock_delta(
                product_id, reserved_delta=-quantity
            )
            if product is None:
                raise InvalidStockOperation(
                    f"Reserved counter of product {product_id} is below {quantity}."
                )
            held[product_id] -= quantity
            entries.append(
                self._ledger_repo.append(
                    product, StockAction.UNRESERVED, quantity, order_ref, reason
                )
            )

        logger.info(
            "stock.restored", order_ref=order_ref, items=len(entries), reason=reason
        )
        return entries

    @transaction.atomic
    def deduct(
        self,
        items: Iterable[Any],
        order_id: str,
        reservation_ref: Optional[str] = None,
    ) -> List[StockLedgerEntry]:
        """Remove units for a confirmed order.

        Units held under ``reservation_ref`` are consumed first: the
        reserved counter drops by ``min(quantity, held)`` and an
        ``unreserved`` entry is written under the reservation reference.

        Raises:
            ProductNotFound: a product does not exist or was deleted.
            InsufficientStock: ``stock_remaining`` is below the quantity,
                or the product is not for sale.
        """
        lines = self._lock(items, live_only=True)
        held = (
            self._ledger_repo.outstanding_reservations(reservation_ref)
            if reservation_ref
            else {}
        )
        entries = []
        for product_id, quantity in lines:
            consumed = min(quantity, held.get(product_id, 0))
            product = self._product_repo.apply_stock_delta(
                product_id,
                remaining_delta=-quantity,
                reserved_delta=-consumed,
                min_remaining=quantity,
                require_active=True,
            )
            if product is None:
                raise self._shortfall(product_id, quantity, free_only=False)
            entries.append(
                self._ledger_repo.append(
                    product, StockAction.DEDUCTED, quantity, order_id, REASON_DEDUCTED
                )
            )
            if consumed:
                held[product_id] -= consumed
                entries.append(
                    self._ledger_repo.append(
                        product,
                        StockAction.UNRESERVED,
                        consumed,
                        reservation_ref,
                        REASON_RESERVATION_CONSUMED,
                    )
                )

        logger.info(
            "stock.deducted",
            order_id=order_id,
            reservation_ref=reservation_ref,
            items=len(lines),
        )
        return entries

    @transaction.atomic
    def refund(
        self,
        items: Iterable[Any],
        order_id: str,
        reason: str = REASON_REFUNDED,
    ) -> List[StockLedgerEntry]:
        """Give back units previously deducted for *order_id*.

        Works on soft-deleted products too, so removing a product from the
        catalog never strands stock of orders cancelled afterwards.

        Raises:
            ProductNotFound: a product does not exist.
            InvalidStockOperation: more units than were deducted and not
                yet refunded for *order_id*.
        """
        lines = self._lock(items)
        refundable = self._ledger_repo.refundable_quantities(order_id)
        entries = []
        for product_id, quantity in lines:
            if quantity > refundable.get(product_id, 0):
                raise InvalidStockOperation(
                    f"Cannot refund {quantity} units of product {product_id}: "
                    f"only {refundable.get(product_id, 0)} deducted for {order_id}."
                )
            product = self._product_repo.apply_stock_delta(
                product_id, remaining_delta=quantity
            )
            if product is None:
                raise ProductNotFound(
                    f"Product {product_id} not found.", product_id=product_id
                )
            refundable[product_id] -= quantity
            entries.append(
                self._ledger_repo.append(
                    product, StockAction.REFUNDED, quantity, order_id, reason
                )
            )

        logger.info("stock.refunded", order_id=order_id, items=len(entries), reason=reason)
        return entries

    def release_reservation(
        self,
        order_ref: str,
        reason: str = REASON_CHECKOUT_ABANDONED,
        owner_id: Optional[int] = None,
    ) -> List[StockLedgerEntry]:
        """Restore everything still held under *order_ref*.

        With *owner_id*, only a hold taken by that user is released;
        anything else is treated as unknown.
        """
        if owner_id is not None and not self.owns_reservation(order_ref, owner_id):
            return []
        held = self._ledger_repo.outstanding_reservations(order_ref)
        if not held:
            return []
        items = [
            StockItemDTO(product_id=product_id, quantity=quantity)
            for product_id, quantity in held.items()
        ]
        return self.restore(items, order_ref, reason=reason)

    def expire_reservations(self, older_than: datetime) -> int:
        """Release holds whose last ``reserved`` entry predates *older_than*.

        Returns the number of references released.  A reference that
        cannot be released is logged and left for the next run.
        """
        released = 0
        for order_ref in self._ledger_repo.idle_reservation_refs(older_than):
            try:
                self.release_reservation(order_ref, reason=REASON_RESERVATION_EXPIRED)
            except (InvalidStockOperation, ProductNotFound):
                logger.warning(
                    "stock.reservation_expiry_failed",
                    order_ref=order_ref,
                    exc_info=True,
                )
                continue
            released += 1
        if released:
            logger.info("stock.reservations_expired", count=released)
        return released

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_stock_history(self, product_id: str) -> StockHistoryDTO:
        """Current counters plus the full ledger, newest first.

        Soft-deleted products keep their history, since refunds still
        post to them.

        Raises:
            ProductNotFound: if the product does not exist.
        """
        product = self._product_repo.get_with_deleted(product_id)
        if not product:
            raise ProductNotFound(
                f"Product {product_id} not found.", product_id=product_id
            )
        return StockHistoryDTO(
            product_id=product.id,
            product_name=product.name,
            current_stock=product.stock_remaining,
            reserved_stock=product.stock_reserved,
            available_stock=product.available_stock,
            history=[
                LedgerEntryDTO.from_entity(entry)
                for entry in self._ledger_repo.history(str(product.id))
            ],
        )

    def get_stock_levels(self, product_ids: Iterable[Any]) -> Dict[str, int]:
        """``stock_remaining`` per live product; unknown IDs are left out."""
        products = self._product_repo.list_by_ids(str(pid) for pid in product_ids)
        return {pid: product.stock_remaining for pid, product in products.items()}

    def outstanding_reservations(self, order_ref: str) -> Dict[str, int]:
        return self._ledger_repo.outstanding_reservations(order_ref)

    def owns_reservation(self, order_ref: str, owner_id: Optional[int]) -> bool:
        return self._ledger_repo.reservation_owners(order_ref) == {owner_id}

    def audit_product(self, product: Product) -> StockAuditDTO:
        """Rebuild the counters of *product* from its ledger."""
        totals = self._ledger_repo.totals_by_action(str(product.id))
        return StockAuditDTO(
            product_id=product.id,
            expected_remaining=product.initial_stock
            - (totals[StockAction.DEDUCTED] - totals[StockAction.REFUNDED]),
            actual_remaining=product.stock_remaining,
            expected_reserved=totals[StockAction.RESERVED]
            - totals[StockAction.UNRESERVED],
            actual_reserved=product.stock_reserved,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _lock(self, items: Iterable[Any], live_only: bool = False) -> List[Line]:
        """Normalise lines, lock their products in PK order, check existence."""
        lines: List[Line] = []
        for item in items:
            quantity = int(item.quantity)
            if quantity < 1:
                raise InvalidStockOperation("Quantity must be at least 1.")
            lines.append((str(item.product_id), quantity))
        lines.sort()

        locked = {
            str(product.id): product
            for product in self._product_repo.lock_many(pid for pid, _ in lines)
        }
        for product_id, _ in lines:
            product = locked.get(product_id)
            if product is None or (live_only and product.is_deleted):
                raise ProductNotFound(
                    f"Product {product_id} not found.", product_id=product_id
                )
        return lines

    def _shortfall(self, product_id: str, quantity: int, free_only: bool) -> InsufficientStock:
        product = self._product_repo.get_for_update(product_id)
        if product.status != ProductStatus.ACTIVE:
            return InsufficientStock(
                product_id,
                quantity,
                0,
                message=f"Product {product.name} is not available for sale.",
            )
        available = product.available_stock if free_only else product.stock_remaining
        logger.warning(
            "stock.guard_failed",
            product_id=product_id,
            requested=quantity,
            available=available,
        )
        return InsufficientStock(product_id, quantity, available)
