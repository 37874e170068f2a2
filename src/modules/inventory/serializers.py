"""Inventory DRF serializers for API input."""

from __future__ import annotations

from rest_framework import serializers


class StockCheckItemSerializer(serializers.Serializer):
    """A cart line as sent by the storefront.

    ``quantity`` is optional here so that missing or non-positive values
    reach the validator and come back as an itemized error.
    """

    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(required=False, allow_null=True)


class ValidateStockSerializer(serializers.Serializer):
    items = StockCheckItemSerializer(many=True, allow_empty=False)
    reservation_ref = serializers.CharField(
        required=False, max_length=64, allow_blank=True
    )


class StockItemSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    quantity = serializers.IntegerField(min_value=1)


class ReservationSerializer(serializers.Serializer):
    reservation_ref = serializers.CharField(
        required=False, max_length=64, allow_blank=False
    )
    items = StockItemSerializer(many=True, allow_empty=False)
