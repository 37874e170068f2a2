"""Periodic order maintenance."""

from __future__ import annotations

from datetime import timedelta

import structlog
from celery import shared_task
from django.conf import settings
from django.utils import timezone

from modules.inventory.repositories.django_repository import (
    StockLedgerDjangoRepository,
)
from modules.inventory.services import StockLedgerService
from modules.inventory.validators import StockAvailabilityValidator
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.services import OrderService
from modules.products.repositories.django_repository import ProductDjangoRepository

logger = structlog.get_logger(__name__)


@shared_task(name="orders.purge_abandoned_orders")
def purge_abandoned_orders() -> int:
    """Delete orders left ``pending`` past the grace period or ``rolled_back``."""
    product_repository = ProductDjangoRepository()
    ledger_repository = StockLedgerDjangoRepository()
    service = OrderService(
        order_repository=OrderDjangoRepository(),
        product_repository=product_repository,
        validator=StockAvailabilityValidator(product_repository, ledger_repository),
        ledger=StockLedgerService(product_repository, ledger_repository),
    )
    cutoff = timezone.now() - timedelta(minutes=settings.ORDER_PENDING_GRACE_MINUTES)
    purged = service.purge_abandoned_orders(cutoff)
    logger.info("orders.purge_finished", purged=purged)
    return purged
