import itertools
from datetime import timedelta
from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from modules.inventory.repositories.django_repository import (
    StockLedgerDjangoRepository,
)
from modules.inventory.services import StockLedgerService
from modules.inventory.validators import StockAvailabilityValidator
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO, ShippingAddressDTO
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.models import Product, ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository

User = get_user_model()

SHIPPING_ADDRESS = {
    "first_name": "Ana",
    "last_name": "Souza",
    "address": "12 Baker Street",
    "city": "London",
    "postal_code": "NW1 6XE",
    "country": "United Kingdom",
    "phone": "+44 20 7946 0000",
}


@pytest.fixture(autouse=True)
def _use_db(db):
    """Automatically use the test database for all tests."""


@pytest.fixture(autouse=True)
def _distinct_order_ids(monkeypatch):
    """Space generated identifiers apart so back-to-back orders never share
    an epoch millisecond."""
    original = Order.generate_identifiers
    offsets = itertools.count()

    def _generate(now):
        return original(now + timedelta(milliseconds=next(offsets)))

    monkeypatch.setattr(Order, "generate_identifiers", staticmethod(_generate))


@pytest.fixture()
def api_client():
    """DRF APIClient for testing API endpoints."""
    return APIClient()


@pytest.fixture()
def api_client_with_correlation(api_client):
    """APIClient pre-configured with a known correlation ID header."""
    cid = "test-correlation-id-fixture"
    api_client.defaults["HTTP_X_REQUEST_ID"] = cid
    return api_client, cid


# ---------------------------------------------------------------------------
# Users / clients
# ---------------------------------------------------------------------------


@pytest.fixture()
def user():
    return User.objects.create_user(username="shopper", password="testpass123")


@pytest.fixture()
def other_user():
    return User.objects.create_user(username="other-shopper", password="testpass123")


@pytest.fixture()
def staff_user():
    return User.objects.create_user(
        username="warehouse", password="testpass123", is_staff=True
    )


@pytest.fixture()
def auth_client(user):
    """APIClient force-authenticated as a regular shopper."""
    client = APIClient()
    client.force_authenticate(user=user)
    return client


@pytest.fixture()
def staff_client(staff_user):
    """APIClient force-authenticated as staff."""
    client = APIClient()
    client.force_authenticate(user=staff_user)
    return client


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


@pytest.fixture()
def make_product():
    """Factory for products whose counters start consistent with the ledger."""

    def _make(
        name="Desk Lamp",
        price=Decimal("10.00"),
        stock=10,
        reserved=0,
        discount=0,
        status=ProductStatus.ACTIVE,
    ):
        return Product.objects.create(
            name=name,
            price=price,
            discount=discount,
            status=status,
            initial_stock=stock,
            stock_remaining=stock,
            stock_reserved=reserved,
        )

    return _make


@pytest.fixture()
def product(make_product):
    return make_product(name="Desk Lamp", price=Decimal("10.00"), stock=5)


# ---------------------------------------------------------------------------
# Services
# ---------------------------------------------------------------------------


@pytest.fixture()
def ledger():
    return StockLedgerService(
        product_repository=ProductDjangoRepository(),
        ledger_repository=StockLedgerDjangoRepository(),
    )


@pytest.fixture()
def validator():
    return StockAvailabilityValidator(
        product_repository=ProductDjangoRepository(),
        ledger_repository=StockLedgerDjangoRepository(),
    )


@pytest.fixture()
def order_service(ledger, validator):
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=ProductDjangoRepository(),
        validator=validator,
        ledger=ledger,
    )


@pytest.fixture()
def make_order_dto(user):
    """Build a ``PlaceOrderDTO`` from ``(product, quantity)`` pairs."""

    def _make(*lines, owner=None, **overrides):
        data = {
            "user_id": (owner or user).pk,
            "items": [
                PlaceOrderItemDTO(product_id=product.id, quantity=quantity)
                for product, quantity in lines
            ],
            "shipping_address": ShippingAddressDTO(**SHIPPING_ADDRESS),
            "payment": "credit_card",
            "delivery_price": Decimal("5.00"),
        }
        data.update(overrides)
        return PlaceOrderDTO(**data)

    return _make


@pytest.fixture()
def place_order(order_service, make_order_dto):
    """Place a committed order through the real service."""

    def _place(*lines, **overrides):
        return order_service.place_order(make_order_dto(*lines, **overrides))

    return _place
