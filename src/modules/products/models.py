"""Product model with stock counters.

Business rules implemented:
- Price must be greater than zero; discount is a percentage in 0..100.
- Inactive products cannot be sold (enforced by the availability validator
  and the ledger guards).
- ``stock_remaining`` and ``stock_reserved`` can never go negative
  (database check constraints).
- Stock counters are written only through the inventory ledger service,
  which bumps ``version`` on every mutation.
- Soft delete via ``deleted_at`` (inherited from SoftDeleteModel).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

import structlog

from django.core.exceptions import ValidationError
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models

from modules.core.models import SoftDeleteModel

logger = structlog.get_logger(__name__)

CENTS = Decimal("0.01")

# Written only by the ledger service through guarded UPDATE statements.
LEDGER_OWNED_FIELDS = ("stock_remaining", "stock_reserved", "version")


class ProductStatus(models.TextChoices):
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"


class Product(SoftDeleteModel):
    """Sellable item with its current stock counters.

    ``stock_remaining`` is the number of units owned; ``stock_reserved``
    the number provisionally held by checkouts in progress.  Every change
    to either counter has a matching row in ``stock_history``.
    """

    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    discount = models.PositiveSmallIntegerField(
        default=0,
        validators=[MaxValueValidator(100)],
    )
    status = models.CharField(
        max_length=20,
        choices=ProductStatus.choices,
        default=ProductStatus.ACTIVE,
    )
    initial_stock = models.PositiveIntegerField(default=0)
    stock_remaining = models.PositiveIntegerField(default=0)
    stock_reserved = models.PositiveIntegerField(default=0)
    version = models.PositiveIntegerField(default=0)

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="products_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(price__gt=0),
                name="products_price_positive",
            ),
            models.CheckConstraint(
                check=models.Q(discount__lte=100),
                name="products_discount_max_100",
            ),
            models.CheckConstraint(
                check=models.Q(stock_remaining__gte=0),
                name="products_stock_remaining_non_negative",
            ),
            models.CheckConstraint(
                check=models.Q(stock_reserved__gte=0),
                name="products_stock_reserved_non_negative",
            ),
        ]

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def available_stock(self) -> int:
        """Units that can still be promised to a new checkout."""
        return max(0, self.stock_remaining - self.stock_reserved)

    @property
    def is_sellable(self) -> bool:
        return self.status == ProductStatus.ACTIVE and not self.is_deleted

    @property
    def purchase_price(self) -> Decimal:
        """Unit price after discount, rounded to cents."""
        price = Decimal(self.price)
        if self.discount:
            price = price * (Decimal(100) - Decimal(self.discount)) / Decimal(100)
        return price.quantize(CENTS, rounding=ROUND_HALF_UP)

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def clean(self) -> None:
        super().clean()
        if self.price is not None and self.price <= 0:
            raise ValidationError({"price": "Price must be greater than zero."})
        if self.discount is not None and not 0 <= self.discount <= 100:
            raise ValidationError({"discount": "Discount must be between 0 and 100."})

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def save(self, *args, **kwargs) -> None:
        """Persist the product.

        A plain save of an existing row writes catalog fields only; the
        in-memory counters may be stale, so they are skipped and then
        reloaded from the database.
        """
        is_new = self._state.adding
        guard_counters = (
            not is_new
            and not args
            and kwargs.get("update_fields") is None
            and not kwargs.get("force_insert")
        )
        if guard_counters:
            kwargs["update_fields"] = [
                field.name
                for field in self._meta.concrete_fields
                if not field.primary_key and field.name not in LEDGER_OWNED_FIELDS
            ]
        super().save(*args, **kwargs)
        if guard_counters:
            self.refresh_from_db(fields=LEDGER_OWNED_FIELDS)
        if is_new:
            logger.info(
                "product_created",
                product_id=str(self.id),
                name=self.name,
                initial_stock=self.initial_stock,
            )

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.name} ({self.stock_remaining} in stock)"
