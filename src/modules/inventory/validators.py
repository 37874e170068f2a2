"""Stock availability checks.

Two read-only checks guard the checkout path:

- ``check_availability`` (loose): measured against what is still free,
  ``stock_remaining - stock_reserved``; run when the shopper validates
  the cart and at the start of order placement.
- ``verify_before_deduction`` (tight): measured against
  ``stock_remaining`` only; run right before the order is persisted and
  again inside the locked commit step.

Neither check mutates anything, so calling one twice without an
intervening ledger operation returns the same result.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Iterable, List, Optional

import structlog

from modules.inventory.dtos import StockShortfallDTO
from modules.products.models import ProductStatus

if TYPE_CHECKING:
    from modules.inventory.repositories.interfaces import IStockLedgerRepository
    from modules.products.repositories.interfaces import IProductRepository

logger = structlog.get_logger(__name__)


class StockAvailabilityValidator:
    """Itemized availability checks over ``{product_id, quantity}`` lines.

    Lines may be DTOs or any object exposing ``product_id`` and
    ``quantity``; an empty list yields no errors.
    """

    def __init__(
        self,
        product_repository: IProductRepository,
        ledger_repository: IStockLedgerRepository,
    ) -> None:
        self._product_repo = product_repository
        self._ledger_repo = ledger_repository

    def check_availability(
        self,
        items: Iterable[Any],
        reservation_ref: Optional[str] = None,
    ) -> List[StockShortfallDTO]:
        """Loose check.

        Units the caller already holds under ``reservation_ref`` count as
        available to it.
        """
        items = list(items)
        products = self._product_repo.list_by_ids(str(i.product_id) for i in items)
        held = (
            self._ledger_repo.outstanding_reservations(reservation_ref)
            if reservation_ref
            else {}
        )

        errors: List[StockShortfallDTO] = []
        for item in items:
            product_id = str(item.product_id)
            requested = item.quantity
            product = products.get(product_id)

            if product is None:
                errors.append(
                    StockShortfallDTO(
                        product_id=product_id,
                        requested=requested,
                        available=0,
                        error="Product not found",
                    )
                )
                continue

            if product.status != ProductStatus.ACTIVE:
                errors.append(
                    StockShortfallDTO(
                        product_id=product_id,
                        product_name=product.name,
                        requested=requested,
                        available=0,
                        remaining=product.stock_remaining,
                        error="Product is not available for sale",
                    )
                )
                continue

            if requested is None or requested <= 0:
                errors.append(
                    StockShortfallDTO(
                        product_id=product_id,
                        product_name=product.name,
                        requested=requested,
                        available=max(0, product.stock_remaining),
                        remaining=product.stock_remaining,
                        error="Invalid quantity",
                    )
                )
                continue

            available = (
                product.stock_remaining
                - product.stock_reserved
                + held.get(product_id, 0)
            )
            if product.stock_remaining <= 0 or available < requested:
                shown = max(0, available)
                errors.append(
                    StockShortfallDTO(
                        product_id=product_id,
                        product_name=product.name,
                        requested=requested,
                        available=shown,
                        remaining=product.stock_remaining,
                        error=f"Insufficient stock for {product.name}. "
                        f"Available: {shown} units",
                    )
                )

        if errors:
            logger.info(
                "stock.availability_failed",
                check="loose",
                failed_items=len(errors),
            )
        return errors

    def verify_before_deduction(self, items: Iterable[Any]) -> List[StockShortfallDTO]:
        """Tight check: ``stock_remaining >= requested``, reservations ignored."""
        items = list(items)
        products = self._product_repo.list_by_ids(str(i.product_id) for i in items)

        errors: List[StockShortfallDTO] = []
        for item in items:
            product_id = str(item.product_id)
            product = products.get(product_id)

            if product is None:
                errors.append(
                    StockShortfallDTO(
                        product_id=product_id,
                        requested=item.quantity,
                        error="Product no longer available",
                    )
                )
                continue

            if product.stock_remaining < item.quantity:
                errors.append(
                    StockShortfallDTO(
                        product_id=product_id,
                        product_name=product.name,
                        requested=item.quantity,
                        available=product.stock_remaining,
                        remaining=product.stock_remaining,
                        error=f"Stock depleted. Only {product.stock_remaining} remaining.",
                    )
                )

        if errors:
            logger.info(
                "stock.availability_failed",
                check="tight",
                failed_items=len(errors),
            )
        return errors
