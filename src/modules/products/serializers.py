"""Product DRF serializers for API input/output.

The serializer operates at the Interface layer (API Views).
Stock counters are always read-only here.
"""

from __future__ import annotations

from rest_framework import serializers

from modules.products.models import Product


class ProductSerializer(serializers.ModelSerializer):
    """Read serializer for the Product resource."""

    available_stock = serializers.IntegerField(read_only=True)
    purchase_price = serializers.DecimalField(
        max_digits=10, decimal_places=2, read_only=True
    )

    class Meta:
        model = Product
        fields = [
            "id",
            "name",
            "description",
            "price",
            "discount",
            "purchase_price",
            "status",
            "stock_remaining",
            "stock_reserved",
            "available_stock",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields


class StockLevelsRequestSerializer(serializers.Serializer):
    """Validates ``POST /products/stock/``."""

    product_ids = serializers.ListField(
        child=serializers.UUIDField(), allow_empty=False
    )
