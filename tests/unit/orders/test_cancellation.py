"""Unit tests for order cancellation, deletion and status transitions."""

from __future__ import annotations

from unittest import mock

import pytest
from django.db import DatabaseError

from modules.core.models import OutboxEvent
from modules.inventory.constants import StockAction
from modules.inventory.exceptions import InvalidStockOperation
from modules.inventory.models import StockLedgerEntry
from modules.orders.constants import (
    REASON_CANCELLED_BY_CUSTOMER,
    REASON_ORDER_DELETED,
    OrderStatus,
)
from modules.orders.exceptions import (
    InvalidOrderStatus,
    OrderNotFound,
    StockRefundFailed,
)
from modules.orders.models import Order, OrderStatusHistory

pytestmark = pytest.mark.unit


def _remaining(product):
    product.refresh_from_db()
    return product.stock_remaining


def _history(order):
    return OrderStatusHistory.objects.filter(order_id=order.pk).order_by("created_at", "id")


def _force_status(order, status):
    Order.objects.filter(pk=order.pk).update(status=status)


class TestCancelOrder:
    def test_refunds_and_marks_cancelled(self, order_service, place_order, make_product):
        product = make_product(stock=5)
        order = place_order((product, 3))

        cancelled = order_service.cancel_order(order.order_id)

        assert cancelled.status == OrderStatus.CANCELLED
        assert _remaining(product) == 5
        refund = StockLedgerEntry.objects.get(
            order_ref=order.order_id, action=StockAction.REFUNDED
        )
        assert refund.quantity == 3
        assert refund.reason == REASON_CANCELLED_BY_CUSTOMER

    def test_history_and_event(self, order_service, place_order, product, user):
        order = place_order((product, 1))

        order_service.cancel_order(order.order_id, notes="Changed my mind", user=user)

        latest = _history(order).last()
        assert latest.old_status == OrderStatus.IN_TRANSIT
        assert latest.new_status == OrderStatus.CANCELLED
        assert latest.notes == "Changed my mind"
        assert latest.user == user
        assert OutboxEvent.objects.filter(event_type="OrderCancelled").count() == 1

    def test_default_note(self, order_service, place_order, product):
        order = place_order((product, 1))

        order_service.cancel_order(order.order_id)

        latest = _history(order).last()
        assert latest.notes == REASON_CANCELLED_BY_CUSTOMER

    @pytest.mark.parametrize(
        "status",
        [
            OrderStatus.SHIPPED,
            OrderStatus.DELIVERED,
            OrderStatus.CANCELLED,
            OrderStatus.RETURNED,
        ],
    )
    def test_not_cancellable(self, order_service, place_order, make_product, status):
        product = make_product(stock=5)
        order = place_order((product, 2))
        _force_status(order, status)

        with pytest.raises(InvalidOrderStatus, match=f"Cannot cancel order with status: {status}"):
            order_service.cancel_order(order.order_id)

        assert _remaining(product) == 3

    def test_second_cancel_is_rejected(self, order_service, place_order, make_product):
        product = make_product(stock=5)
        order = place_order((product, 2))
        order_service.cancel_order(order.order_id)

        with pytest.raises(InvalidOrderStatus):
            order_service.cancel_order(order.order_id)

        assert _remaining(product) == 5

    def test_unknown_order(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.cancel_order("ORD-0")

    def test_other_user_cannot_cancel(self, order_service, place_order, product, other_user):
        order = place_order((product, 1))

        with pytest.raises(OrderNotFound):
            order_service.cancel_order(order.order_id, user=other_user)

    def test_staff_can_cancel_any_order(self, order_service, place_order, product, staff_user):
        order = place_order((product, 1))

        cancelled = order_service.cancel_order(order.order_id, user=staff_user)

        assert cancelled.status == OrderStatus.CANCELLED

    @pytest.mark.parametrize(
        "error", [DatabaseError("gone"), InvalidStockOperation("nothing to refund")]
    )
    def test_refund_failure_changes_nothing(
        self, order_service, ledger, place_order, make_product, error
    ):
        product = make_product(stock=5)
        order = place_order((product, 2))

        with mock.patch.object(ledger, "refund", side_effect=error):
            with pytest.raises(StockRefundFailed, match="Error processing stock refund"):
                order_service.cancel_order(order.order_id)

        order.refresh_from_db()
        assert order.status == OrderStatus.IN_TRANSIT
        assert _remaining(product) == 3
        assert _history(order).count() == 1

    def test_refund_works_after_product_deactivated(
        self, order_service, place_order, make_product
    ):
        product = make_product(stock=5)
        order = place_order((product, 2))
        product.delete()

        order_service.cancel_order(order.order_id)

        assert _remaining(product) == 5


class TestDeleteOrder:
    def test_refunds_stock_held_by_order(self, order_service, place_order, make_product):
        product = make_product(stock=5)
        order = place_order((product, 2))

        assert order_service.delete_order(order.order_id) is True

        assert not Order.objects.filter(pk=order.pk).exists()
        assert _remaining(product) == 5
        refund = StockLedgerEntry.objects.get(
            order_ref=order.order_id, action=StockAction.REFUNDED
        )
        assert refund.reason == REASON_ORDER_DELETED

    def test_cancelled_order_is_not_refunded_twice(
        self, order_service, place_order, make_product
    ):
        product = make_product(stock=5)
        order = place_order((product, 2))
        order_service.cancel_order(order.order_id)

        assert order_service.delete_order(order.order_id) is False

        assert _remaining(product) == 5
        assert (
            StockLedgerEntry.objects.filter(
                order_ref=order.order_id, action=StockAction.REFUNDED
            ).count()
            == 1
        )

    def test_returned_order_is_refunded(self, order_service, place_order, make_product):
        product = make_product(stock=5)
        order = place_order((product, 2))
        order_service.update_status(order.order_id, OrderStatus.RETURNED)

        assert order_service.delete_order(order.order_id) is True
        assert _remaining(product) == 5

    def test_refund_failure_does_not_block_removal(
        self, order_service, ledger, place_order, make_product
    ):
        product = make_product(stock=5)
        order = place_order((product, 2))

        with mock.patch.object(ledger, "refund", side_effect=DatabaseError("gone")):
            assert order_service.delete_order(order.order_id) is False

        assert not Order.objects.filter(pk=order.pk).exists()
        assert _remaining(product) == 3

    def test_ledger_keeps_entries(self, order_service, place_order, product):
        order = place_order((product, 1))

        order_service.delete_order(order.order_id)

        assert StockLedgerEntry.objects.filter(order_ref=order.order_id).count() == 2

    def test_event_recorded(self, order_service, place_order, product):
        order = place_order((product, 1))

        order_service.delete_order(order.order_id)

        event = OutboxEvent.objects.get(event_type="OrderDeleted")
        assert event.payload["order_id"] == order.order_id
        assert event.payload["stock_refunded"] is True

    def test_unknown_order(self, order_service):
        with pytest.raises(OrderNotFound):
            order_service.delete_order("ORD-0")


class TestUpdateStatus:
    @pytest.mark.parametrize(
        "path",
        [
            [OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.RETURNED],
            [OrderStatus.DELIVERED],
            [OrderStatus.RETURNED],
        ],
    )
    def test_valid_paths(self, order_service, place_order, product, path):
        order = place_order((product, 1))

        for status in path:
            order = order_service.update_status(order.order_id, status)

        assert order.status == path[-1]
        assert _history(order).count() == len(path) + 1

    @pytest.mark.parametrize(
        "current, target",
        [
            (OrderStatus.SHIPPED, OrderStatus.IN_TRANSIT),
            (OrderStatus.DELIVERED, OrderStatus.SHIPPED),
            (OrderStatus.RETURNED, OrderStatus.DELIVERED),
            (OrderStatus.CANCELLED, OrderStatus.SHIPPED),
        ],
    )
    def test_invalid_transitions(self, order_service, place_order, product, current, target):
        order = place_order((product, 1))
        _force_status(order, current)

        with pytest.raises(InvalidOrderStatus, match="Cannot transition"):
            order_service.update_status(order.order_id, target)

    def test_cancel_must_use_cancel_operation(self, order_service, place_order, make_product):
        product = make_product(stock=5)
        order = place_order((product, 2))

        with pytest.raises(InvalidOrderStatus, match="cancel operation"):
            order_service.update_status(order.order_id, OrderStatus.CANCELLED)

        assert _remaining(product) == 3

    def test_unknown_status(self, order_service, place_order, product):
        order = place_order((product, 1))

        with pytest.raises(InvalidOrderStatus, match="Unknown status"):
            order_service.update_status(order.order_id, "Lost")

    def test_delivered_moves_last_location(self, order_service, place_order, product):
        order = place_order((product, 1))

        order = order_service.update_status(order.order_id, OrderStatus.DELIVERED)

        assert order.last_location == order.destination

    def test_status_changes_do_not_touch_stock(self, order_service, place_order, make_product):
        product = make_product(stock=5)
        order = place_order((product, 2))

        order_service.update_status(order.order_id, OrderStatus.RETURNED)

        assert _remaining(product) == 3

    def test_history_records_actor(self, order_service, place_order, product, staff_user):
        order = place_order((product, 1))

        order_service.update_status(
            order.order_id, OrderStatus.SHIPPED, notes="Left warehouse", user=staff_user
        )

        latest = _history(order).last()
        assert latest.old_status == OrderStatus.IN_TRANSIT
        assert latest.new_status == OrderStatus.SHIPPED
        assert latest.user == staff_user
        assert latest.notes == "Left warehouse"
