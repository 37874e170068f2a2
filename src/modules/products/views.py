"""Product API views.

Read side of the catalog plus the two stock endpoints the storefront and
the admin dashboard poll.  Domain exceptions are caught and translated
into HTTP status codes; the view never swallows generic exceptions.
"""

from __future__ import annotations

from django_filters.rest_framework import DjangoFilterBackend
from pydantic import ValidationError as PydanticValidationError
from rest_framework import status
from rest_framework.decorators import action
from rest_framework.filters import OrderingFilter, SearchFilter
from rest_framework.mixins import ListModelMixin
from rest_framework.permissions import IsAdminUser
from rest_framework.request import Request
from rest_framework.response import Response
from rest_framework.viewsets import GenericViewSet

from modules.inventory.repositories.django_repository import (
    StockLedgerDjangoRepository,
)
from modules.inventory.services import StockLedgerService
from modules.products.dtos import StockLevelsQueryDTO
from modules.products.exceptions import ProductNotFound
from modules.products.filters import ProductFilter
from modules.products.models import Product
from modules.products.repositories.django_repository import ProductDjangoRepository
from modules.products.serializers import ProductSerializer, StockLevelsRequestSerializer
from modules.products.services import ProductService


class ProductViewSet(ListModelMixin, GenericViewSet):
    """ViewSet for Product reads and stock look-ups.

    Uses ``ProductService`` and ``StockLedgerService`` with Django
    repositories (DIP).  Does **not** extend ``ModelViewSet``: catalog
    writes live in the back office.
    """

    filterset_class = ProductFilter
    search_fields = ["name", "description"]
    ordering_fields = ["name", "price", "stock_remaining"]
    ordering = ["name", "id"]
    filter_backends = [DjangoFilterBackend, SearchFilter, OrderingFilter]
    queryset = Product.objects.alive()
    serializer_class = ProductSerializer

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        product_repository = ProductDjangoRepository()
        self._service = ProductService(repository=product_repository)
        self._ledger = StockLedgerService(
            product_repository=product_repository,
            ledger_repository=StockLedgerDjangoRepository(),
        )

    def get_queryset(self):
        return self._service.list_products()

    def get_permissions(self):
        if self.action == "stock_history":
            return [IsAdminUser()]
        return super().get_permissions()

    def get_throttles(self):
        if self.action == "stock_levels":
            self.throttle_scope = "stock_check"
        return super().get_throttles()

    def retrieve(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/products/{pk}/"""
        try:
            product = self._service.get_product(pk)
        except ProductNotFound:
            return Response(
                {"detail": "Product not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(ProductSerializer(product).data)

    @action(detail=False, methods=["post"], url_path="stock")
    def stock_levels(self, request: Request) -> Response:
        """POST /api/v1/products/stock/

        ``{"product_ids": [...]}`` -> ``{"stock_levels": {id: remaining}}``.
        Unknown or deleted products are left out of the mapping.
        """
        serializer = StockLevelsRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        try:
            dto = StockLevelsQueryDTO(**serializer.validated_data)
        except (PydanticValidationError, ValueError) as exc:
            return Response(
                {"detail": str(exc)},
                status=status.HTTP_400_BAD_REQUEST,
            )
        levels = self._ledger.get_stock_levels(dto.product_ids)
        return Response({"stock_levels": levels})

    @action(detail=True, methods=["get"], url_path="stock-history")
    def stock_history(self, request: Request, pk: str | None = None) -> Response:
        """GET /api/v1/products/{pk}/stock-history/ (staff only)"""
        try:
            history = self._ledger.get_stock_history(pk)
        except ProductNotFound:
            return Response(
                {"detail": "Product not found."},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(history.model_dump(mode="json"))
