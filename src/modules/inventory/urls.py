"""Inventory URL configuration."""

from __future__ import annotations

from django.urls import path
from rest_framework.routers import DefaultRouter

from modules.inventory.views import ReservationViewSet, ValidateStockView

router = DefaultRouter(trailing_slash=True)
router.register(
    "inventory/reservations", ReservationViewSet, basename="reservation"
)

urlpatterns = [
    path(
        "inventory/validate-stock/",
        ValidateStockView.as_view(),
        name="validate-stock",
    ),
    *router.urls,
]
