"""Unit tests for StockAvailabilityValidator.

The loose check measures against ``stock_remaining - stock_reserved``;
the tight check against ``stock_remaining`` only.
"""

from __future__ import annotations

from uuid import uuid4

import pytest

from modules.inventory.dtos import StockCheckItemDTO, StockItemDTO
from modules.products.models import ProductStatus

pytestmark = pytest.mark.unit


def _line(product, quantity):
    return StockCheckItemDTO(product_id=product.id, quantity=quantity)


class TestCheckAvailability:
    def test_all_lines_available(self, validator, make_product):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=1)

        assert validator.check_availability([_line(a, 5), _line(b, 1)]) == []

    def test_empty_list_has_no_errors(self, validator):
        assert validator.check_availability([]) == []

    def test_unknown_product(self, validator):
        missing = uuid4()

        (error,) = validator.check_availability(
            [StockCheckItemDTO(product_id=missing, quantity=1)]
        )

        assert error.product_id == str(missing)
        assert error.error == "Product not found"
        assert error.available == 0

    def test_deleted_product_is_not_found(self, validator, product):
        product.delete()

        (error,) = validator.check_availability([_line(product, 1)])

        assert error.error == "Product not found"

    def test_inactive_product(self, validator, make_product):
        product = make_product(stock=5, status=ProductStatus.INACTIVE)

        (error,) = validator.check_availability([_line(product, 1)])

        assert error.error == "Product is not available for sale"
        assert error.available == 0

    @pytest.mark.parametrize("quantity", [None, 0, -2])
    def test_invalid_quantity(self, validator, make_product, quantity):
        product = make_product(stock=4)

        (error,) = validator.check_availability([_line(product, quantity)])

        assert error.error == "Invalid quantity"
        assert error.available == 4

    def test_insufficient_counts_reservations(self, validator, make_product):
        product = make_product(name="Lamp", stock=5, reserved=3)

        (error,) = validator.check_availability([_line(product, 3)])

        assert error.available == 2
        assert error.remaining == 5
        assert error.requested == 3
        assert error.error == "Insufficient stock for Lamp. Available: 2 units"

    def test_out_of_stock(self, validator, make_product):
        product = make_product(name="Lamp", stock=0)

        (error,) = validator.check_availability([_line(product, 1)])

        assert error.available == 0
        assert error.error == "Insufficient stock for Lamp. Available: 0 units"

    def test_only_failing_lines_reported(self, validator, make_product):
        ok = make_product(name="OK", stock=5)
        short = make_product(name="Short", stock=1)

        errors = validator.check_availability([_line(ok, 2), _line(short, 2)])

        assert [e.product_id for e in errors] == [str(short.id)]

    def test_own_reservation_counts_as_available(self, validator, ledger, make_product):
        product = make_product(stock=5)
        ledger.reserve([StockItemDTO(product_id=product.id, quantity=4)], "RSV-MINE")

        assert validator.check_availability([_line(product, 4)])
        assert validator.check_availability([_line(product, 4)], reservation_ref="RSV-MINE") == []

    def test_is_idempotent(self, validator, make_product):
        product = make_product(stock=1)
        lines = [_line(product, 2)]

        assert validator.check_availability(lines) == validator.check_availability(lines)


class TestVerifyBeforeDeduction:
    def test_ignores_reservations(self, validator, make_product):
        product = make_product(stock=5, reserved=5)

        assert validator.verify_before_deduction([StockItemDTO(product_id=product.id, quantity=5)]) == []

    def test_depleted(self, validator, make_product):
        product = make_product(stock=2)

        (error,) = validator.verify_before_deduction(
            [StockItemDTO(product_id=product.id, quantity=3)]
        )

        assert error.error == "Stock depleted. Only 2 remaining."
        assert error.available == 2

    def test_missing_product(self, validator, product):
        product.delete()

        (error,) = validator.verify_before_deduction(
            [StockItemDTO(product_id=product.id, quantity=1)]
        )

        assert error.error == "Product no longer available"
