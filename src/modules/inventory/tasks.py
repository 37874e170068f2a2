"""Periodic inventory maintenance."""

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
from modules.products.models import Product
from modules.products.repositories.django_repository import ProductDjangoRepository

logger = structlog.get_logger(__name__)


def _ledger_service() -> StockLedgerService:
    return StockLedgerService(
        product_repository=ProductDjangoRepository(),
        ledger_repository=StockLedgerDjangoRepository(),
    )


@shared_task(name="inventory.expire_stale_reservations")
def expire_stale_reservations() -> int:
    """Release checkout holds older than ``STOCK_RESERVATION_TTL_MINUTES``."""
    cutoff = timezone.now() - timedelta(minutes=settings.STOCK_RESERVATION_TTL_MINUTES)
    released = _ledger_service().expire_reservations(cutoff)
    logger.info("inventory.reservation_sweep_finished", released=released)
    return released


@shared_task(name="inventory.audit_stock_ledger")
def audit_stock_ledger() -> dict:
    """Rebuild every product's counters from its ledger and report drift."""
    service = _ledger_service()
    mismatches = []
    audited = 0
    for product in Product.objects.all().iterator():
        audited += 1
        result = service.audit_product(product)
        if not result.is_consistent:
            mismatches.append(str(product.id))
            logger.error("inventory.ledger_mismatch", **result.model_dump(mode="json"))

    logger.info("inventory.audit_finished", audited=audited, mismatches=len(mismatches))
    return {"audited": audited, "mismatches": mismatches}
