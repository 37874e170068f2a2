"""Inventory API views.

- ``POST /api/v1/inventory/validate-stock/``: loose availability check.
- ``POST /api/v1/inventory/reservations/``: hold stock during checkout.
- ``DELETE /api/v1/inventory/reservations/{ref}/``: release a hold.

Reservations belong to the user who opened them; other users get 404
when releasing and 409 when reusing the reference.

Domain exceptions are caught and translated into HTTP status codes;
the views never swallow generic exceptions.
"""

from __future__ import annotations

from datetime import timedelta

import structlog
from django.conf import settings
from django.utils import timezone
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework.viewsets import GenericViewSet

from modules.inventory.dtos import ReserveStockDTO, StockCheckItemDTO, StockItemDTO
from modules.inventory.exceptions import InsufficientStock, ReservationRefTaken
from modules.inventory.repositories.django_repository import (
    StockLedgerDjangoRepository,
)
from modules.inventory.serializers import (
    ReservationSerializer,
    ValidateStockSerializer,
)
from modules.inventory.services import StockLedgerService
from modules.inventory.validators import StockAvailabilityValidator
from modules.products.exceptions import ProductNotFound
from modules.products.repositories.django_repository import ProductDjangoRepository

logger = structlog.get_logger(__name__)


class ValidateStockView(APIView):
    """Itemized stock check for the cart, with no side effects."""

    throttle_scope = "stock_check"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        product_repository = ProductDjangoRepository()
        ledger_repository = StockLedgerDjangoRepository()
        self._validator = StockAvailabilityValidator(
            product_repository=product_repository,
            ledger_repository=ledger_repository,
        )
        self._ledger = StockLedgerService(
            product_repository=product_repository,
            ledger_repository=ledger_repository,
        )

    def post(self, request: Request) -> Response:
        """POST /api/v1/inventory/validate-stock/

        Returns 200 when every line can be fulfilled, 409 with the failing
        lines otherwise.
        """
        serializer = ValidateStockSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        items = [
            StockCheckItemDTO(**item) for item in serializer.validated_data["items"]
        ]
        reservation_ref = serializer.validated_data.get("reservation_ref") or None
        if reservation_ref and not self._ledger.owns_reservation(
            reservation_ref, request.user.pk
        ):
            reservation_ref = None
        errors = self._validator.check_availability(items, reservation_ref=reservation_ref)
        if errors:
            return Response(
                {
                    "detail": "Insufficient stock for some items",
                    "code": "insufficient_stock",
                    "errors": [error.model_dump() for error in errors],
                },
                status=status.HTTP_409_CONFLICT,
            )
        return Response({"detail": "All items are in stock", "errors": []})


class ReservationViewSet(GenericViewSet):
    """Checkout holds, addressed by their reservation reference."""

    serializer_class = ReservationSerializer
    lookup_field = "reservation_ref"
    lookup_value_regex = "[^/]+"
    throttle_scope = "stock_check"

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._service = StockLedgerService(
            product_repository=ProductDjangoRepository(),
            ledger_repository=StockLedgerDjangoRepository(),
        )

    def create(self, request: Request) -> Response:
        """POST /api/v1/inventory/reservations/"""
        serializer = ReservationSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        payload = {"items": [StockItemDTO(**item) for item in data["items"]]}
        if data.get("reservation_ref"):
            payload["reservation_ref"] = data["reservation_ref"]
        try:
            dto = ReserveStockDTO(**payload)
        except (PydanticValidationError, ValueError) as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            self._service.reserve(
                dto.items, dto.reservation_ref, owner_id=request.user.pk
            )
        except ReservationRefTaken as exc:
            return Response(
                {"detail": str(exc), "code": "reservation_ref_taken"},
                status=status.HTTP_409_CONFLICT,
            )
        except ProductNotFound as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_404_NOT_FOUND,
            )
        except InsufficientStock as exc:
            return Response(
                {
                    "detail": str(exc),
                    "code": "insufficient_stock",
                    "errors": [
                        {
                            "product_id": exc.product_id,
                            "requested": exc.requested,
                            "available": exc.available,
                        }
                    ],
                },
                status=status.HTTP_409_CONFLICT,
            )

        expires_at = timezone.now() + timedelta(
            minutes=settings.STOCK_RESERVATION_TTL_MINUTES
        )
        return Response(
            {
                "reservation_ref": dto.reservation_ref,
                "items": [
                    {"product_id": str(item.product_id), "quantity": item.quantity}
                    for item in dto.items
                ],
                "expires_at": expires_at.isoformat(),
            },
            status=status.HTTP_201_CREATED,
        )

    def destroy(self, request: Request, reservation_ref: str | None = None) -> Response:
        """DELETE /api/v1/inventory/reservations/{reservation_ref}/"""
        entries = self._service.release_reservation(
            reservation_ref, owner_id=request.user.pk
        )
        if not entries:
            return Response(
                {"detail": "Reservation not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        logger.info(
            "stock.reservation_released",
            reservation_ref=reservation_ref,
            items=len(entries),
        )
        return Response(status=status.HTTP_204_NO_CONTENT)
