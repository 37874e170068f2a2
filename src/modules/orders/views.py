"""Order API views.

Exposes the ``OrderService`` via HTTP using DRF ViewSets.
Domain exceptions are caught and translated into appropriate
HTTP status codes; the view never swallows generic exceptions.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.permissions import IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.throttling import BaseThrottle
from rest_framework.viewsets import GenericViewSet

from modules.core.pagination import StandardResultsSetPagination
from modules.inventory.exceptions import ReservationNotFound
from modules.inventory.repositories.django_repository import (
    StockLedgerDjangoRepository,
)
from modules.inventory.services import StockLedgerService
from modules.inventory.validators import StockAvailabilityValidator
from modules.orders.dtos import PlaceOrderDTO, PlaceOrderItemDTO, ShippingAddressDTO
from modules.orders.exceptions import (
    InvalidOrderStatus,
    OrderCommitFailed,
    OrderIdCollision,
    OrderNotFound,
    StockRefundFailed,
    StockUnavailable,
    UserNotFound,
)
from modules.orders.filters import OrderFilter
from modules.orders.models import Order
from modules.orders.repositories.django_repository import OrderDjangoRepository
from modules.orders.serializers import (
    CancelOrderSerializer,
    OrderListSerializer,
    OrderSerializer,
    PlaceOrderSerializer,
    UpdateStatusSerializer,
)
from modules.orders.services import OrderService
from modules.products.repositories.django_repository import ProductDjangoRepository

ORDER_NOT_FOUND = {"detail": "Order not found."}


class OrderViewSet(GenericViewSet):
    """ViewSet for Order operations.

    Uses ``OrderService`` with injected repositories (DIP).
    Does **not** extend ``ModelViewSet``: all ORM access goes through
    the service/repository layer.  Orders are addressed by their public
    ``order_id``.
    """

    queryset = Order.objects.none()
    lookup_field = "order_id"
    lookup_value_regex = "[^/]+"
    filterset_class = OrderFilter
    search_fields = ["order_id", "tracking_code"]
    ordering_fields = ["created_at", "total_price", "status"]
    ordering = ["-created_at", "-id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        product_repository = ProductDjangoRepository()
        ledger_repository = StockLedgerDjangoRepository()
        self._service = OrderService(
            order_repository=OrderDjangoRepository(),
            product_repository=product_repository,
            validator=StockAvailabilityValidator(
                product_repository=product_repository,
                ledger_repository=ledger_repository,
            ),
            ledger=StockLedgerService(
                product_repository=product_repository,
                ledger_repository=ledger_repository,
            ),
        )

    def get_permissions(self):
        if self.action in {"partial_update", "destroy"}:
            return [IsAdminUser()]
        return super().get_permissions()

    def get_throttles(self) -> list[BaseThrottle]:
        """Throttle scope per action."""
        throttle_scope: str | None
        if self.action == "create":
            throttle_scope = "order_placement"
        elif self.action in {"list", "retrieve"}:
            throttle_scope = "order_listing"
        else:
            throttle_scope = None
        self.throttle_scope = throttle_scope
        return super().get_throttles()

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create(self, request: Request) -> Response:
        """POST /api/v1/orders/

        Places an order for the authenticated user.  Returns 201 with the
        order's ``order_id`` and ``tracking_code``.
        """
        serializer = PlaceOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            dto = PlaceOrderDTO(
                user_id=request.user.pk,
                items=[PlaceOrderItemDTO(**item) for item in data["items"]],
                shipping_address=ShippingAddressDTO(**data["shipping_address"]),
                payment=data["payment"],
                delivery_price=data["delivery_price"],
                reservation_ref=data.get("reservation_ref") or None,
            )
        except (PydanticValidationError, ValueError) as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            order = self._service.place_order(dto)
        except (UserNotFound, ReservationNotFound) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        except StockUnavailable as exc:
            return Response(
                {
                    "detail": "Insufficient stock for some items",
                    "code": "insufficient_stock",
                    "errors": [error.model_dump() for error in exc.errors],
                },
                status=status.HTTP_409_CONFLICT,
            )
        except OrderIdCollision as exc:
            return Response(
                {
                    "detail": str(exc),
                    "code": "order_id_collision",
                    "retryable": True,
                },
                status=status.HTTP_409_CONFLICT,
            )
        except OrderCommitFailed as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        out = OrderSerializer(order)
        return Response(out.data, status=status.HTTP_201_CREATED)

    # ------------------------------------------------------------------
    # List / Retrieve
    # ------------------------------------------------------------------

    def get_queryset(self):
        user = self.request.user
        if user.is_staff:
            return self._service.list_orders()
        return self._service.list_user_orders(user.pk)

    def list(self, request: Request) -> Response:
        """GET /api/v1/orders/

        Staff see every committed order, other users their own.  Filtering
        (status, user, date range, total range) is handled by
        ``OrderFilter``; ordering by ``OrderingFilter``.  Results are
        paginated.
        """
        queryset = self.filter_queryset(self.get_queryset())

        paginator = StandardResultsSetPagination()
        page = paginator.paginate_queryset(queryset, request)
        serializer = OrderListSerializer(page, many=True)
        return paginator.get_paginated_response(serializer.data)

    def retrieve(self, request: Request, order_id: str | None = None) -> Response:
        """GET /api/v1/orders/{order_id}/"""
        try:
            order = self._service.get_order(order_id, user=request.user)
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        serializer = OrderSerializer(order)
        return Response(serializer.data)

    # ------------------------------------------------------------------
    # Status Update (staff)
    # ------------------------------------------------------------------

    def partial_update(self, request: Request, order_id: str | None = None) -> Response:
        """PATCH /api/v1/orders/{order_id}/

        Updates the delivery status.  Cancellations are **not** allowed via
        this endpoint; use ``POST /orders/{order_id}/cancel/`` instead.
        """
        serializer = UpdateStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._service.update_status(
                order_id=order_id,
                new_status=serializer.validated_data["status"],
                notes=serializer.validated_data["notes"],
                user=request.user,
            )
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except InvalidOrderStatus as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )

        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Cancel (dedicated action)
    # ------------------------------------------------------------------

    @action(detail=True, methods=["post"])
    def cancel(self, request: Request, order_id: str | None = None) -> Response:
        """POST /api/v1/orders/{order_id}/cancel/

        Cancels an order and returns its units to stock.
        """
        serializer = CancelOrderSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            order = self._service.cancel_order(
                order_id=order_id,
                notes=serializer.validated_data["notes"],
                user=request.user,
            )
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        except InvalidOrderStatus as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )
        except StockRefundFailed as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR,
            )

        return Response(OrderSerializer(order).data)

    # ------------------------------------------------------------------
    # Delete (staff)
    # ------------------------------------------------------------------

    def destroy(self, request: Request, order_id: str | None = None) -> Response:
        """DELETE /api/v1/orders/{order_id}/"""
        try:
            stock_refunded = self._service.delete_order(order_id)
        except OrderNotFound:
            return Response(ORDER_NOT_FOUND, status=status.HTTP_404_NOT_FOUND)
        return Response(
            {"detail": "Order deleted.", "stock_refunded": stock_refunded},
            status=status.HTTP_200_OK,
        )
