"""Django ORM implementation of the Product repository.

Satisfies ``IProductRepository`` using Django's QuerySet API.
Error handling follows the Null Object pattern: methods return ``None``
instead of raising HTTP-level exceptions; the Service Layer decides
how to translate a missing entity into an API response.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import structlog

from django.core.exceptions import ValidationError
from django.db import models, transaction
from django.db.models import F
from django.utils import timezone

from modules.products.models import Product, ProductStatus
from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class ProductDjangoRepository(IProductRepository):
    """Concrete Product repository backed by Django ORM."""

    def get_by_id(self, id: str) -> Optional[Product]:
        """Retrieve a live product by primary key.

        Returns ``None`` for non-existent, soft-deleted or invalid IDs.
        """
        try:
            return Product.objects.alive().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_with_deleted(self, id: str) -> Optional[Product]:
        try:
            return Product.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def list(self, filters: Optional[Dict[str, Any]] = None) -> "models.QuerySet[Product]":
        """List live products with optional Django ORM look-ups.

        Examples of valid filters::

            {"status": "active"}
            {"name__icontains": "lamp"}
        """
        queryset = Product.objects.alive()
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def list_by_ids(self, ids: Iterable[str]) -> Dict[str, Product]:
        valid_ids = []
        for raw in ids:
            try:
                valid_ids.append(Product._meta.pk.to_python(raw))
            except ValidationError:
                continue
        products = Product.objects.alive().filter(id__in=valid_ids)
        return {str(product.id): product for product in products}

    @transaction.atomic
    def save(self, entity: Product) -> Product:
        """Persist (create or update) a product."""
        entity.save()
        logger.info("product.saved", product_id=str(entity.id))
        return entity

    @transaction.atomic
    def delete(self, id: str) -> bool:
        """Soft-delete a product by ID.

        Returns ``True`` if the product was found and soft-deleted,
        ``False`` if no live product exists with the given ID.
        """
        product = self.get_by_id(id)
        if not product:
            return False
        product.delete()
        logger.info("product.soft_deleted", product_id=str(id))
        return True

    # ------------------------------------------------------------------
    # Locking / conditional updates
    # ------------------------------------------------------------------

    def get_for_update(self, id: str) -> Optional[Product]:
        """Retrieve a product with a row-level lock (SELECT FOR UPDATE).

        Soft-deleted rows are returned too: the ledger still has to
        refund stock to a product that was removed from the catalog.
        """
        try:
            return Product.objects.select_for_update().filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def lock_many(self, ids: Iterable[str]) -> List[Product]:
        """Lock product rows sorted by primary key to avoid deadlocks."""
        return list(
            Product.objects.select_for_update().filter(id__in=list(ids)).order_by("id")
        )

    def apply_stock_delta(
        self,
        id: str,
        remaining_delta: int = 0,
        reserved_delta: int = 0,
        min_remaining: Optional[int] = None,
        min_available: Optional[int] = None,
        require_active: bool = False,
    ) -> Optional[Product]:
        """Guarded ``UPDATE ... SET col = col + delta`` on a single row.

        Decrements are additionally guarded so neither counter can drop
        below zero, whatever the caller passes as ``min_*``.
        """
        queryset = Product.objects.filter(id=id)
        if require_active:
            queryset = queryset.filter(
                status=ProductStatus.ACTIVE, deleted_at__isnull=True
            )
        if min_remaining is not None:
            queryset = queryset.filter(stock_remaining__gte=min_remaining)
        if min_available is not None:
            queryset = queryset.filter(
                stock_remaining__gte=F("stock_reserved") + min_available
            )
        if remaining_delta < 0:
            queryset = queryset.filter(stock_remaining__gte=-remaining_delta)
        if reserved_delta < 0:
            queryset = queryset.filter(stock_reserved__gte=-reserved_delta)

        updated = queryset.update(
            stock_remaining=F("stock_remaining") + remaining_delta,
            stock_reserved=F("stock_reserved") + reserved_delta,
            version=F("version") + 1,
            updated_at=timezone.now(),
        )
        if not updated:
            logger.warning(
                "product.stock_guard_rejected",
                product_id=str(id),
                remaining_delta=remaining_delta,
                reserved_delta=reserved_delta,
            )
            return None
        return Product.objects.get(id=id)
