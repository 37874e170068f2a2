"""End-to-end stock scenarios through the service layer.

Each scenario also checks the ledger invariants:
- ``stock_remaining`` never goes negative;
- deducted minus refunded equals ``initial_stock - stock_remaining``;
- reserved minus unreserved equals ``stock_reserved``.
"""

from __future__ import annotations

from unittest import mock

import pytest
from django.db import DatabaseError

from modules.inventory.constants import StockAction
from modules.inventory.dtos import StockCheckItemDTO, StockItemDTO
from modules.inventory.models import StockLedgerEntry
from modules.orders.constants import OrderStatus
from modules.orders.exceptions import StockUnavailable
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.repositories.django_repository import ProductDjangoRepository

pytestmark = pytest.mark.integration


def assert_ledger_consistent(product):
    product.refresh_from_db()
    totals = StockLedgerEntry.objects.filter(product=product).totals_by_action()

    assert product.stock_remaining >= 0
    assert totals["deducted"] - totals["refunded"] == (
        product.initial_stock - product.stock_remaining
    )
    assert totals["reserved"] - totals["unreserved"] == product.stock_reserved


def _actions(order_id):
    return list(
        StockLedgerEntry.objects.filter(order_ref=order_id)
        .order_by("created_at", "id")
        .values_list("action", "quantity")
    )


class InterleavingOrderRepository(OrderDjangoRepository):
    """Runs ``interleave`` once, right after the next pending insert."""

    interleave = None

    def create_pending(self, data):
        order = super().create_pending(data)
        callback, self.interleave = self.interleave, None
        if callback is not None:
            callback()
        return order


@pytest.fixture()
def interleaving_repo():
    return InterleavingOrderRepository()


@pytest.fixture()
def interleaving_service(interleaving_repo, validator, ledger):
    return OrderService(
        order_repository=interleaving_repo,
        product_repository=ProductDjangoRepository(),
        validator=validator,
        ledger=ledger,
    )


class TestScenarioA:
    def test_order_takes_the_last_units(self, place_order, make_product):
        product = make_product(stock=5)

        order = place_order((product, 5))

        product.refresh_from_db()
        assert product.stock_remaining == 0
        assert _actions(order.order_id) == [("deducted", 5)]
        assert_ledger_consistent(product)


class TestScenarioB:
    def test_sold_out_product_is_rejected_at_checkout(self, place_order, validator, make_product):
        product = make_product(stock=5)
        place_order((product, 5))

        with pytest.raises(StockUnavailable) as exc_info:
            place_order((product, 1))

        assert exc_info.value.stage == "checkout"
        (error,) = exc_info.value.errors
        assert error.available == 0
        assert Order.objects.count() == 1

        (direct,) = validator.check_availability(
            [StockCheckItemDTO(product_id=product.id, quantity=1)]
        )
        assert direct.available == 0
        assert_ledger_consistent(product)


class TestScenarioC:
    def test_cancel_returns_units(self, order_service, place_order, make_product):
        product = make_product(stock=5)
        order = place_order((product, 3))

        order_service.cancel_order(order.order_id)

        product.refresh_from_db()
        assert product.stock_remaining == 5
        assert _actions(order.order_id) == [("deducted", 3), ("refunded", 3)]
        assert Order.objects.get(pk=order.pk).status == OrderStatus.CANCELLED
        assert_ledger_consistent(product)


class TestScenarioD:
    """Two checkouts of 3 units against 5: both pass the validators, one wins."""

    def _race(self, service, repo, make_order_dto, product):
        outcome = {}

        def second_checkout():
            outcome["winner"] = service.place_order(make_order_dto((product, 3)))

        repo.interleave = second_checkout
        with pytest.raises(StockUnavailable) as exc_info:
            service.place_order(make_order_dto((product, 3)))
        return outcome["winner"], exc_info.value

    def test_loser_fails_the_commit_check(
        self, interleaving_service, interleaving_repo, make_order_dto, make_product
    ):
        product = make_product(stock=5)

        winner, error = self._race(interleaving_service, interleaving_repo, make_order_dto, product)

        assert error.stage == "commit"
        assert error.errors[0].error == "Stock depleted. Only 2 remaining."
        assert list(Order.objects.values_list("order_id", flat=True)) == [winner.order_id]
        product.refresh_from_db()
        assert product.stock_remaining == 2
        assert_ledger_consistent(product)

    def test_deduct_guard_holds_without_the_commit_check(
        self, interleaving_service, interleaving_repo, validator, make_order_dto, make_product
    ):
        product = make_product(stock=5)

        with mock.patch.object(validator, "check_availability", return_value=[]), \
                mock.patch.object(validator, "verify_before_deduction", return_value=[]):
            winner, error = self._race(interleaving_service, interleaving_repo, make_order_dto, product)

        assert error.stage == "commit"
        (shortfall,) = error.errors
        assert shortfall.product_id == str(product.id)
        assert shortfall.requested == 3
        assert shortfall.available == 2
        assert Order.objects.count() == 1
        product.refresh_from_db()
        assert product.stock_remaining == 2
        assert StockLedgerEntry.objects.filter(action=StockAction.DEDUCTED).count() == 1
        assert_ledger_consistent(product)


class TestScenarioE:
    def test_delete_with_failing_refund_still_removes_order(
        self, order_service, ledger, place_order, make_product
    ):
        product = make_product(stock=5)
        order = place_order((product, 3))

        with mock.patch.object(ledger, "refund", side_effect=DatabaseError("ledger down")):
            refunded = order_service.delete_order(order.order_id)

        assert refunded is False
        assert not Order.objects.filter(pk=order.pk).exists()
        product.refresh_from_db()
        assert product.stock_remaining == 2
        assert_ledger_consistent(product)


class TestReservationFlow:
    def test_reserve_then_order_then_cancel(
        self, order_service, ledger, make_order_dto, make_product, user
    ):
        product = make_product(stock=5)
        ledger.reserve(
            [StockItemDTO(product_id=product.id, quantity=2)], "RSV-FLOW", owner_id=user.pk
        )
        assert_ledger_consistent(product)

        order = order_service.place_order(
            make_order_dto((product, 2), reservation_ref="RSV-FLOW")
        )
        assert_ledger_consistent(product)
        assert (product.stock_remaining, product.stock_reserved) == (3, 0)

        order_service.cancel_order(order.order_id)
        assert_ledger_consistent(product)
        assert (product.stock_remaining, product.stock_reserved) == (5, 0)

    def test_abandoned_reservation_is_released(self, ledger, make_product):
        product = make_product(stock=5)
        ledger.reserve([StockItemDTO(product_id=product.id, quantity=4)], "RSV-GONE")

        ledger.release_reservation("RSV-GONE")

        assert_ledger_consistent(product)
        assert (product.stock_remaining, product.stock_reserved) == (5, 0)
