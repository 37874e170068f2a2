"""API tests for the catalog read endpoints and stock look-ups."""

from __future__ import annotations

from decimal import Decimal
from uuid import uuid4

import pytest
from rest_framework import status

from modules.inventory.dtos import StockItemDTO
from modules.products.models import ProductStatus

pytestmark = pytest.mark.integration

URL = "/api/v1/products/"


class TestList:
    def test_lists_live_products(self, auth_client, make_product):
        make_product(name="Lamp")
        make_product(name="Chair")
        make_product(name="Gone").delete()

        response = auth_client.get(URL)

        assert response.status_code == status.HTTP_200_OK
        names = [p["name"] for p in response.json()["results"]]
        assert names == ["Chair", "Lamp"]

    def test_filters(self, auth_client, make_product):
        make_product(name="Desk Lamp", price=Decimal("15.00"), stock=0)
        make_product(name="Floor Lamp", price=Decimal("60.00"), stock=4)
        make_product(name="Chair", price=Decimal("40.00"), stock=2)

        def names(params):
            return [p["name"] for p in auth_client.get(URL, params).json()["results"]]

        assert names({"name": "lamp"}) == ["Desk Lamp", "Floor Lamp"]
        assert names({"in_stock": "true"}) == ["Chair", "Floor Lamp"]
        assert names({"min_price": "30", "max_price": "50"}) == ["Chair"]

    def test_status_filter(self, auth_client, make_product):
        make_product(name="Retired", status=ProductStatus.INACTIVE)
        make_product(name="Current")

        response = auth_client.get(URL, {"status": "inactive"})

        assert [p["name"] for p in response.json()["results"]] == ["Retired"]


class TestRetrieve:
    def test_found(self, auth_client, make_product):
        product = make_product(stock=7, reserved=2)

        response = auth_client.get(f"{URL}{product.id}/")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["available_stock"] == 5

    def test_deleted_product(self, auth_client, product):
        product.delete()

        response = auth_client.get(f"{URL}{product.id}/")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.json() == {"detail": "Product not found."}

    def test_not_a_uuid(self, auth_client):
        response = auth_client.get(f"{URL}nope/")
        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestStockLevels:
    def test_poll_counters(self, auth_client, place_order, make_product):
        a = make_product(name="A", stock=5)
        b = make_product(name="B", stock=2)
        place_order((a, 2))

        response = auth_client.post(
            f"{URL}stock/",
            {"product_ids": [str(a.id), str(b.id), str(uuid4())]},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json() == {"stock_levels": {str(a.id): 3, str(b.id): 2}}

    def test_requires_ids(self, auth_client):
        response = auth_client.post(f"{URL}stock/", {"product_ids": []}, format="json")
        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestStockHistory:
    def test_staff_sees_ledger(self, staff_client, ledger, place_order, make_product):
        product = make_product(stock=5)
        ledger.reserve([StockItemDTO(product_id=product.id, quantity=1)], "RSV-H")
        order = place_order((product, 2))

        response = staff_client.get(f"{URL}{product.id}/stock-history/")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["current_stock"] == 3
        assert body["reserved_stock"] == 1
        assert body["available_stock"] == 2
        assert [(e["action"], e["order_ref"]) for e in body["history"]] == [
            ("deducted", order.order_id),
            ("reserved", "RSV-H"),
        ]

    def test_deleted_product_keeps_history(self, staff_client, ledger, product):
        ledger.deduct([StockItemDTO(product_id=product.id, quantity=2)], "ORD-GONE")
        product.delete()

        response = staff_client.get(f"{URL}{product.id}/stock-history/")

        assert response.status_code == status.HTTP_200_OK
        body = response.json()
        assert body["current_stock"] == 3
        assert [e["order_ref"] for e in body["history"]] == ["ORD-GONE"]

    def test_shopper_is_forbidden(self, auth_client, product):
        response = auth_client.get(f"{URL}{product.id}/stock-history/")
        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_unknown_product(self, staff_client):
        response = staff_client.get(f"{URL}{uuid4()}/stock-history/")
        assert response.status_code == status.HTTP_404_NOT_FOUND
