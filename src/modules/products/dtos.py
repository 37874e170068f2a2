"""Product DTOs for the Service Layer.

Framework-agnostic data transfer objects using Pydantic v2.
DTOs are immutable (``frozen=True``).

- ``StockLevelsQueryDTO``: input for the storefront stock-level poll.
"""

from __future__ import annotations

from typing import List
from uuid import UUID

from pydantic import BaseModel, ConfigDict, field_validator


class StockLevelsQueryDTO(BaseModel):
    """Product IDs whose current ``stock_remaining`` is requested.

    Duplicates are collapsed, order is preserved.
    """

    model_config = ConfigDict(frozen=True)

    product_ids: List[UUID]

    @field_validator("product_ids")
    @classmethod
    def ids_must_not_be_empty(cls, v: List[UUID]) -> List[UUID]:
        if not v:
            raise ValueError("At least one product ID is required.")
        return list(dict.fromkeys(v))
