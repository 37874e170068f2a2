"""Performance regression tests: constant query count (N+1 prevention).

Verifies that list and retrieve endpoints execute a bounded number of
SQL queries regardless of the number of records, proving that
``select_related`` / ``prefetch_related`` are correctly applied.
"""

from __future__ import annotations

from decimal import Decimal

import pytest


@pytest.fixture()
def orders_with_items(place_order, make_product):
    """Ten orders of three lines each."""
    products = [
        make_product(name=f"Product {i}", price=Decimal("10.00"), stock=1000)
        for i in range(3)
    ]
    return [place_order(*[(p, 1) for p in products]) for _ in range(10)]


class TestOrderListQueryCount:
    def test_list_query_count_is_constant(
        self, staff_client, orders_with_items, django_assert_max_num_queries
    ):
        """GET /api/v1/orders/: COUNT for pagination plus one SELECT."""
        with django_assert_max_num_queries(3):
            response = staff_client.get("/api/v1/orders/")

        assert response.status_code == 200
        assert response.data["count"] == 10


class TestOrderRetrieveQueryCount:
    def test_retrieve_query_count_is_constant(
        self, auth_client, orders_with_items, django_assert_max_num_queries
    ):
        """GET /api/v1/orders/{order_id}/: order, items and history."""
        order = orders_with_items[0]

        with django_assert_max_num_queries(4):
            response = auth_client.get(f"/api/v1/orders/{order.order_id}/")

        assert response.status_code == 200
        assert len(response.data["items"]) == 3


class TestStockLevelsQueryCount:
    def test_stock_poll_is_one_query(
        self, auth_client, orders_with_items, django_assert_max_num_queries
    ):
        from modules.products.models import Product

        ids = [str(pk) for pk in Product.objects.values_list("id", flat=True)]

        with django_assert_max_num_queries(1):
            response = auth_client.post(
                "/api/v1/products/stock/", {"product_ids": ids}, format="json"
            )

        assert response.status_code == 200
        assert len(response.data["stock_levels"]) == 3
