"""Order service layer (Use Cases).

Orchestrates the order lifecycle around the inventory ledger:

- ``place_order``: loose stock check, authoritative pricing, identifier
  generation, tight check, pending insert, then a single locked
  transaction that re-checks, deducts and commits.  A failure after the
  insert is compensated: the order is marked ``rolled_back`` and deleted.
- ``cancel_order``: customer cancellation; refund and status change are
  one transaction, so a failed refund leaves the order untouched.
- ``delete_order``: admin removal; the refund is best effort and never
  blocks the removal.
- ``update_status``: admin delivery-state edits.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Dict, List, Optional

import structlog
from django.conf import settings
from django.db import DatabaseError, transaction
from django.utils import timezone

from modules.inventory.dtos import StockShortfallDTO
from modules.inventory.exceptions import (
    InsufficientStock,
    InvalidStockOperation,
    ReservationNotFound,
)
from modules.orders.constants import (
    REASON_CANCELLED_BY_CUSTOMER,
    REASON_ORDER_DELETED,
    OrderStatus,
)
from modules.orders.events import (
    OrderCancelled,
    OrderDeleted,
    OrderPlaced,
    OrderStatusChanged,
)
from modules.orders.exceptions import (
    InvalidOrderStatus,
    OrderCommitFailed,
    OrderNotFound,
    StockRefundFailed,
    StockUnavailable,
    UserNotFound,
)
from modules.orders.models import Order
from modules.products.exceptions import ProductNotFound

if TYPE_CHECKING:
    from django.db import models

    from modules.inventory.services import StockLedgerService
    from modules.inventory.validators import StockAvailabilityValidator
    from modules.orders.dtos import PlaceOrderDTO
    from modules.orders.repositories.interfaces import IOrderRepository
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")


class OrderService:
    """Application service for Order use-cases.

    Receives repositories, the availability validator and the ledger
    service via constructor injection (DIP).
    """

    def __init__(
        self,
        order_repository: IOrderRepository,
        product_repository: IProductRepository,
        validator: StockAvailabilityValidator,
        ledger: StockLedgerService,
    ) -> None:
        self._order_repo = order_repository
        self._product_repo = product_repository
        self._validator = validator
        self._ledger = ledger

    # ------------------------------------------------------------------
    # Place
    # ------------------------------------------------------------------

    def place_order(self, dto: PlaceOrderDTO) -> Order:
        """Create an order and deduct its stock.

        Steps:
        1. Check the user exists and owns ``reservation_ref``, if given.
        2. Loose availability check (nothing written yet).
        3. Price every line from the catalog; client prices are ignored.
        4. Generate ``order_id`` / ``tracking_code``.
        5. Tight availability check.
        6. Insert the order as ``pending``.
        7. Locked transaction: tight check again, deduct, mark
           ``committed``, record the event and the first history row.
        8. On failure in 7, compensate (``rolled_back`` then delete).

        Raises:
            UserNotFound: the user does not exist or is inactive.
            ReservationNotFound: ``reservation_ref`` is not a hold of this user.
            StockUnavailable: a line cannot be fulfilled (``stage`` tells
                which checkpoint caught it).
            OrderIdCollision: the generated id is taken; retryable.
            OrderCommitFailed: the ledger failed; the order was rolled back.
        """
        log = logger.bind(user_id=dto.user_id, item_count=len(dto.items))
        log.info("order.placement_started")

        # 1. User and reservation
        if not self._order_repo.get_user(dto.user_id):
            raise UserNotFound(f"User {dto.user_id} not found.")
        if dto.reservation_ref and not self._ledger.owns_reservation(
            dto.reservation_ref, dto.user_id
        ):
            raise ReservationNotFound(f"Reservation {dto.reservation_ref} not found.")

        # 2. Loose check
        errors = self._validator.check_availability(
            dto.items, reservation_ref=dto.reservation_ref
        )
        if errors:
            log.info("order.rejected", stage="checkout", failed_items=len(errors))
            raise StockUnavailable(errors, stage="checkout")

        # 3. Authoritative pricing
        lines, items_total = self._price_lines(dto)
        total_price = (items_total + dto.delivery_price).quantize(CENTS)

        # 4. Identifiers
        now = timezone.now()
        order_id, tracking_code = Order.generate_identifiers(now)
        log = log.bind(order_id=order_id)

        # 5. Tight check
        errors = self._validator.verify_before_deduction(dto.items)
        if errors:
            log.info("order.rejected", stage="verification", failed_items=len(errors))
            raise StockUnavailable(errors, stage="verification")

        # 6. Pending insert
        order = self._order_repo.create_pending(
            {
                "order_id": order_id,
                "tracking_code": tracking_code,
                "user_id": dto.user_id,
                "payment": dto.payment,
                "delivery_price": dto.delivery_price,
                "total_price": total_price,
                "shipping_address": dto.shipping_address.model_dump(),
                "reservation_ref": dto.reservation_ref or "",
                "est_delivery": now + timedelta(days=settings.ORDER_DELIVERY_DAYS),
                "origin": settings.ORDER_DEFAULT_ORIGIN,
                "destination": dto.shipping_address.country,
                "last_location": settings.ORDER_DEFAULT_ORIGIN,
                "carrier": settings.ORDER_DEFAULT_CARRIER,
                "items": lines,
            }
        )

        # 7. Commit, 8. compensate
        try:
            self._commit(order, dto)
        except StockUnavailable as exc:
            self._compensate(order, reason=f"stock_unavailable:{exc.stage}")
            raise
        except (InsufficientStock, ProductNotFound) as exc:
            self._compensate(order, reason="deduction_rejected")
            raise StockUnavailable(
                [_shortfall_from_exception(exc)], stage="commit"
            ) from exc
        except (InvalidStockOperation, DatabaseError) as exc:
            self._compensate(order, reason="ledger_failure")
            log.error("order.commit_failed", exc_info=True)
            raise OrderCommitFailed(
                "Error processing inventory. Order cancelled."
            ) from exc

        log.info("order.placed", total_price=str(total_price))
        return self._order_repo.get_by_order_id(order.order_id) or order

    @transaction.atomic
    def _commit(self, order: Order, dto: PlaceOrderDTO) -> Order:
        self._product_repo.lock_many(str(item.product_id) for item in dto.items)

        errors = self._validator.verify_before_deduction(dto.items)
        if errors:
            raise StockUnavailable(errors, stage="commit")

        self._ledger.deduct(
            dto.items, order.order_id, reservation_ref=dto.reservation_ref
        )

        self._order_repo.mark_committed(order)
        order.add_domain_event(
            OrderPlaced(
                aggregate_id=order.id,
                order_id=order.order_id,
                total_price=str(order.total_price),
                item_count=len(dto.items),
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order,
            new_status=order.status,
            notes="Order placed",
            user=None,
        )
        return order

    def _compensate(self, order: Order, reason: str) -> None:
        """Undo a pending insert; failures are left for the purge task."""
        log = logger.bind(order_id=order.order_id, reason=reason)
        try:
            self._order_repo.mark_rolled_back(order)
            self._order_repo.remove(order)
        except DatabaseError:
            log.error("order.compensation_failed", exc_info=True)
            return
        log.warning("order.compensated")

    def _price_lines(self, dto: PlaceOrderDTO) -> tuple[List[Dict[str, Any]], Decimal]:
        products = self._product_repo.list_by_ids(
            str(item.product_id) for item in dto.items
        )
        lines = []
        items_total = Decimal("0.00")
        for item in dto.items:
            product = products.get(str(item.product_id))
            if product is None:
                raise StockUnavailable(
                    [
                        StockShortfallDTO(
                            product_id=str(item.product_id),
                            requested=item.quantity,
                            error="Product not found",
                        )
                    ],
                    stage="checkout",
                )
            unit_price = product.purchase_price
            items_total += unit_price * item.quantity
            lines.append(
                {
                    "product_id": product.id,
                    "name": product.name,
                    "quantity": item.quantity,
                    "price": unit_price,
                }
            )
        return lines, items_total

    # ------------------------------------------------------------------
    # Cancel / Delete
    # ------------------------------------------------------------------

    @transaction.atomic
    def cancel_order(self, order_id: str, notes: str = "", user: Any = None) -> Order:
        """Customer cancellation: refund the stock, then mark ``Cancelled``.

        The order row is locked first so two cancellations cannot refund
        twice.  When ``user`` is given and is not staff, only the owner may
        cancel.

        Raises:
            OrderNotFound: order does not exist or belongs to someone else.
            InvalidOrderStatus: the order was shipped, delivered, cancelled
                or returned.
            StockRefundFailed: the refund failed; nothing was changed.
        """
        order = self._order_repo.get_for_update(order_id)
        if not order or not _can_access(order, user):
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=order_id, current_status=order.status)

        if not order.is_cancellable:
            log.warning("order.cancel_not_allowed")
            raise InvalidOrderStatus(f"Cannot cancel order with status: {order.status}")

        try:
            self._ledger.refund(
                order.items.all(), order.order_id, reason=REASON_CANCELLED_BY_CUSTOMER
            )
        except (InvalidStockOperation, ProductNotFound, DatabaseError) as exc:
            log.error("order.cancel_refund_failed", exc_info=True)
            raise StockRefundFailed("Error processing stock refund") from exc

        old_status = order.status
        order.status = OrderStatus.CANCELLED
        order.add_domain_event(
            OrderCancelled(
                aggregate_id=order.id,
                order_id=order.order_id,
                previous_status=old_status,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order,
            new_status=OrderStatus.CANCELLED,
            old_status=old_status,
            notes=notes or REASON_CANCELLED_BY_CUSTOMER,
            user=user,
        )

        log.info("order.cancelled")
        return self._order_repo.get_by_order_id(order.order_id) or order

    @transaction.atomic
    def delete_order(self, order_id: str) -> bool:
        """Admin removal.  Returns whether stock was refunded.

        Stock is refunded only while the order still holds it (committed
        and not cancelled).  A refund failure is logged and the order is
        removed anyway, leaving the counters as they were.

        Raises:
            OrderNotFound: order does not exist.
        """
        order = self._order_repo.get_for_update(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(order_id=order_id, status=order.status)

        stock_refunded = False
        if order.holds_stock:
            try:
                self._ledger.refund(
                    order.items.all(), order.order_id, reason=REASON_ORDER_DELETED
                )
                stock_refunded = True
            except (InvalidStockOperation, ProductNotFound, DatabaseError):
                log.error("order.delete_refund_failed", exc_info=True)

        order.add_domain_event(
            OrderDeleted(
                aggregate_id=order.id,
                order_id=order.order_id,
                stock_refunded=stock_refunded,
            )
        )
        self._order_repo.remove(order)

        log.info("order.deleted", stock_refunded=stock_refunded)
        return stock_refunded

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @transaction.atomic
    def update_status(
        self,
        order_id: str,
        new_status: str,
        notes: str = "",
        user: Any = None,
    ) -> Order:
        """Transition an order to a new delivery status.

        Cancellation is refused here: it must go through ``cancel_order``
        so the stock is refunded.

        Raises:
            OrderNotFound: order does not exist.
            InvalidOrderStatus: unknown status, cancellation, or a
                transition the state machine does not allow.
        """
        if new_status == OrderStatus.CANCELLED:
            raise InvalidOrderStatus("Use the cancel operation to cancel an order.")
        if new_status not in OrderStatus.values:
            raise InvalidOrderStatus(f"Unknown status: {new_status}")

        order = self._order_repo.get_for_update(order_id)
        if not order:
            raise OrderNotFound(f"Order {order_id} not found.")

        log = logger.bind(
            order_id=order_id,
            current_status=order.status,
            new_status=new_status,
        )

        if not order.can_transition_to(new_status):
            log.warning("order.invalid_transition")
            raise InvalidOrderStatus(
                f"Cannot transition from {order.status} to {new_status}."
            )

        old_status = order.status
        order.status = new_status
        if new_status == OrderStatus.DELIVERED:
            order.last_location = order.destination
        order.add_domain_event(
            OrderStatusChanged(
                aggregate_id=order.id,
                order_id=order.order_id,
                old_status=old_status,
                new_status=new_status,
            )
        )
        self._order_repo.save(order)
        self._order_repo.add_history(
            order,
            new_status=new_status,
            old_status=old_status,
            notes=notes,
            user=user,
        )

        log.info("order.status_updated")
        return self._order_repo.get_by_order_id(order.order_id) or order

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def purge_abandoned_orders(self, cutoff: datetime) -> int:
        """Remove orders whose placement never committed.

        Deduction and commit share one transaction, so an uncommitted order
        never holds stock and can be dropped without touching the ledger.
        """
        purged = 0
        for order in self._order_repo.list_stale_uncommitted(cutoff):
            self._compensate(order, reason="abandoned")
            purged += 1
        if purged:
            logger.info("order.abandoned_purged", count=purged)
        return purged

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: str, user: Any = None) -> Order:
        """Retrieve a committed order by its public id.

        Raises:
            OrderNotFound: the order does not exist or is not the caller's.
        """
        order = self._order_repo.get_by_order_id(order_id)
        if not order or not _can_access(order, user):
            raise OrderNotFound(f"Order {order_id} not found.")
        return order

    def list_orders(
        self, filters: Optional[Dict[str, Any]] = None
    ) -> "models.QuerySet[Order]":
        """Return committed orders, optionally filtered."""
        return self._order_repo.list(filters)

    def list_user_orders(self, user_id: Any) -> "models.QuerySet[Order]":
        return self._order_repo.list({"user_id": user_id})


def _can_access(order: Order, user: Any) -> bool:
    if user is None or getattr(user, "is_staff", False):
        return True
    return order.user_id == user.pk


def _shortfall_from_exception(exc: Exception) -> StockShortfallDTO:
    if isinstance(exc, InsufficientStock):
        return StockShortfallDTO(
            product_id=str(exc.product_id),
            requested=exc.requested,
            available=exc.available,
            remaining=exc.available,
            error=str(exc),
        )
    return StockShortfallDTO(
        product_id=str(exc.product_id or ""),
        available=0,
        error="Product no longer available",
    )
