"""Order domain exceptions.

Raised by the Service Layer when business rules are violated.
The API layer (Views) catches these and translates them into
appropriate HTTP responses.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, List

if TYPE_CHECKING:
    from modules.inventory.dtos import StockShortfallDTO


class OrderNotFound(Exception):
    """The requested order does not exist or is not visible to the caller."""


class InvalidOrderStatus(Exception):
    """An invalid status transition or cancellation was attempted."""


class UserNotFound(Exception):
    """The user placing the order does not exist."""


class StockUnavailable(Exception):
    """One or more lines cannot be fulfilled.

    ``stage`` tells which checkpoint failed: ``checkout`` (loose check,
    nothing written), ``verification`` (tight check before the order is
    persisted) or ``commit`` (tight check or deduction inside the commit
    step; the order was compensated).
    """

    def __init__(self, errors: List[StockShortfallDTO], stage: str) -> None:
        self.errors = errors
        self.stage = stage
        super().__init__(
            f"Insufficient stock for one or more items ({stage}): "
            f"{len(errors)} line(s) failed."
        )


class OrderIdCollision(Exception):
    """The generated order id is already taken; the client may retry."""


class OrderCommitFailed(Exception):
    """Stock deduction failed after the order was written; it was rolled back."""


class StockRefundFailed(Exception):
    """Stock could not be returned while cancelling; nothing was changed."""
