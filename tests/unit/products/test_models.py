"""Unit tests for the Product model.

Covers derived stock values, discount pricing and database constraints.
"""

from __future__ import annotations

from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from modules.products.models import Product, ProductStatus

pytestmark = pytest.mark.unit


class TestAvailableStock:
    def test_remaining_minus_reserved(self, make_product):
        product = make_product(stock=10, reserved=4)
        assert product.available_stock == 6

    def test_never_negative(self):
        product = Product(stock_remaining=2, stock_reserved=5)
        assert product.available_stock == 0


class TestPurchasePrice:
    def test_without_discount_is_price(self):
        product = Product(price=Decimal("19.99"), discount=0)
        assert product.purchase_price == Decimal("19.99")

    def test_discount_is_applied(self):
        product = Product(price=Decimal("100.00"), discount=15)
        assert product.purchase_price == Decimal("85.00")

    def test_rounded_half_up_to_cents(self):
        # 9.99 * 0.85 = 8.4915
        product = Product(price=Decimal("9.99"), discount=15)
        assert product.purchase_price == Decimal("8.49")

        # 0.05 * 0.5 = 0.025
        product = Product(price=Decimal("0.05"), discount=50)
        assert product.purchase_price == Decimal("0.03")

    def test_full_discount_is_free(self):
        product = Product(price=Decimal("10.00"), discount=100)
        assert product.purchase_price == Decimal("0.00")


class TestSellable:
    def test_active_product_is_sellable(self, make_product):
        assert make_product().is_sellable

    def test_inactive_product_is_not_sellable(self, make_product):
        assert not make_product(status=ProductStatus.INACTIVE).is_sellable

    def test_deleted_product_is_not_sellable(self, make_product):
        product = make_product()
        product.delete()
        assert not product.is_sellable


class TestValidation:
    def test_clean_rejects_zero_price(self):
        product = Product(name="Free", price=Decimal("0.00"))
        with pytest.raises(ValidationError):
            product.clean()

    def test_clean_rejects_discount_over_100(self):
        product = Product(name="Too cheap", price=Decimal("1.00"), discount=101)
        with pytest.raises(ValidationError):
            product.clean()


class TestConstraints:
    def test_price_must_be_positive(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            Product.objects.create(name="Bad", price=Decimal("0.00"))

    def test_discount_capped_at_100(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            Product.objects.create(name="Bad", price=Decimal("1.00"), discount=150)

    def test_stock_remaining_cannot_go_negative(self, make_product):
        product = make_product(stock=1)
        with pytest.raises(IntegrityError), transaction.atomic():
            Product.objects.filter(id=product.id).update(stock_remaining=-1)

    def test_stock_reserved_cannot_go_negative(self, make_product):
        product = make_product(stock=1)
        with pytest.raises(IntegrityError), transaction.atomic():
            Product.objects.filter(id=product.id).update(stock_reserved=-1)


class TestCatalogSave:
    def test_stale_instance_does_not_overwrite_counters(self, make_product):
        product = make_product(stock=5)
        Product.objects.filter(id=product.id).update(
            stock_remaining=3, stock_reserved=1, version=2
        )

        product.price = Decimal("12.50")
        product.save()

        stored = Product.objects.get(id=product.id)
        assert stored.price == Decimal("12.50")
        assert (stored.stock_remaining, stored.stock_reserved, stored.version) == (3, 1, 2)

    def test_counters_reloaded_after_save(self, make_product):
        product = make_product(stock=5)
        Product.objects.filter(id=product.id).update(stock_remaining=2)

        product.name = "Renamed"
        product.save()

        assert product.stock_remaining == 2

    def test_explicit_update_fields_untouched(self, make_product):
        product = make_product(stock=5)
        product.stock_remaining = 4

        product.save(update_fields=["stock_remaining"])

        assert Product.objects.get(id=product.id).stock_remaining == 4


def test_str_shows_remaining_stock(make_product):
    product = make_product(name="Lamp", stock=7)
    assert str(product) == "Lamp (7 in stock)"
