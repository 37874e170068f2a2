from __future__ import annotations

import random
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.core.management.base import BaseCommand

from modules.inventory.repositories.django_repository import (
    StockLedgerDjangoRepository,
)
from modules.inventory.services import StockLedgerService
from modules.inventory.validators import StockAvailabilityValidator
from modules.orders.constants import OrderStatus
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO, ShippingAddressDTO
from modules.orders.exceptions import OrderIdCollision, StockUnavailable
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.models import Product, ProductStatus
from modules.products.repositories.django_repository import ProductDjangoRepository

ADDRESSES = [
    ("Ana", "Souza", "12 Baker Street", "London", "NW1 6XE", "United Kingdom"),
    ("Bruno", "Lima", "400 Broad St", "Seattle", "98109", "United States"),
    ("Carla", "Mendes", "Rua Augusta 1500", "Sao Paulo", "01304-001", "Brazil"),
    ("Daniel", "Costa", "Unter den Linden 77", "Berlin", "10117", "Germany"),
]


class Command(BaseCommand):
    help = "Seed database with realistic development data."

    def add_arguments(self, parser):
        parser.add_argument("--orders", type=int, default=30)

    def handle(self, *args, **options):
        random.seed(42)
        self.stdout.write("Seeding development data...")

        users = self._seed_users()
        products = self._seed_products()
        orders_created = self._seed_orders(users, products, options["orders"])

        self.stdout.write(
            self.style.SUCCESS(
                "Seed completed: "
                f"users={len(users)}, "
                f"products={len(products)}, "
                f"orders={orders_created}"
            )
        )

    def _seed_users(self) -> list:
        User = get_user_model()
        if not User.objects.filter(username="admin").exists():
            User.objects.create_superuser("admin", password="admin123")
        shoppers = []
        for username in ("ana", "bruno", "carla", "daniel"):
            user, created = User.objects.get_or_create(username=username)
            if created:
                user.set_password(f"{username}123")
                user.save()
            shoppers.append(user)
        return shoppers

    def _seed_products(self) -> list[Product]:
        self.stdout.write("Creating products...")
        products: list[Product] = []
        catalog = [
            ("Monitor 27\"", Decimal("1299.90"), 10),
            ("Mechanical Keyboard", Decimal("399.90"), 0),
            ("Gaming Mouse", Decimal("249.90"), 15),
            ("Notebook 14\"", Decimal("3999.00"), 5),
            ("Headset", Decimal("299.90"), 0),
            ("Office Desk", Decimal("899.00"), 0),
            ("Ergonomic Chair", Decimal("1499.00"), 20),
            ("Bookshelf", Decimal("699.00"), 0),
            ("A4 Paper", Decimal("29.90"), 0),
            ("Blue Pen", Decimal("4.90"), 0),
            ("Notebook Stand", Decimal("149.90"), 10),
            ("LED Lamp", Decimal("59.90"), 0),
        ]
        for name, price, discount in catalog:
            stock = random.randint(10, 200)
            product, _ = Product.objects.get_or_create(
                name=name,
                defaults={
                    "description": f"{name} for the home office.",
                    "price": price,
                    "discount": discount,
                    "initial_stock": stock,
                    "stock_remaining": stock,
                    "status": ProductStatus.ACTIVE,
                },
            )
            products.append(product)
        self.stdout.write(self.style.SUCCESS("Creating products... Done!"))
        return products

    def _seed_orders(self, users: list, products: list[Product], count: int) -> int:
        self.stdout.write("Creating orders...")
        if not users or not products:
            self.stdout.write(self.style.WARNING("Skipping orders (no users/products)."))
            return 0

        service = _order_service()
        orders_created = 0
        for _ in range(count):
            user = random.choice(users)
            first, last, street, city, postal, country = random.choice(ADDRESSES)
            dto = PlaceOrderDTO(
                user_id=user.pk,
                items=[
                    PlaceOrderItemDTO(product_id=product.id, quantity=random.randint(1, 3))
                    for product in random.sample(products, k=random.randint(1, 4))
                ],
                shipping_address=ShippingAddressDTO(
                    first_name=first,
                    last_name=last,
                    address=street,
                    city=city,
                    postal_code=postal,
                    country=country,
                    phone="+1 555 0100",
                ),
                payment=random.choice(["credit_card", "paypal", "pix"]),
                delivery_price=Decimal("15.00"),
            )
            order = _place_with_retry(service, dto)
            if order is None:
                continue
            orders_created += 1

            outcome = random.random()
            if outcome < 0.15:
                service.cancel_order(order.order_id, notes="Seed cancellation")
            elif outcome < 0.45:
                service.update_status(order.order_id, OrderStatus.SHIPPED)
            elif outcome < 0.70:
                service.update_status(order.order_id, OrderStatus.DELIVERED)

        self.stdout.write(self.style.SUCCESS("Creating orders... Done!"))
        return orders_created


def _place_with_retry(service: OrderService, dto: PlaceOrderDTO, attempts: int = 3):
    for _ in range(attempts):
        try:
            return service.place_order(dto)
        except OrderIdCollision:
            continue
        except StockUnavailable:
            return None
    return None


def _order_service() -> OrderService:
    product_repository = ProductDjangoRepository()
    ledger_repository = StockLedgerDjangoRepository()
    return OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=product_repository,
        validator=StockAvailabilityValidator(product_repository, ledger_repository),
        ledger=StockLedgerService(product_repository, ledger_repository),
    )
