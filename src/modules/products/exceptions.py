"""Product domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations

from typing import Optional


class ProductNotFound(Exception):
    """The requested product does not exist or has been soft-deleted."""

    def __init__(
        self, message: str = "Product not found.", product_id: Optional[str] = None
    ) -> None:
        self.product_id = product_id
        super().__init__(message)
