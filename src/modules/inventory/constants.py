"""Inventory ledger constants."""

from django.db import models


class StockAction(models.TextChoices):
    RESERVED = "reserved", "Reserved"
    UNRESERVED = "unreserved", "Unreserved"
    DEDUCTED = "deducted", "Deducted"
    REFUNDED = "refunded", "Refunded"


REASON_RESERVED = "Reserved during checkout"
REASON_RESTORED = "Order cancelled"
REASON_DEDUCTED = "Order confirmed and paid"
REASON_REFUNDED = "Order refunded"
REASON_RESERVATION_CONSUMED = "Reservation converted to order"
REASON_RESERVATION_EXPIRED = "Reservation expired"
REASON_CHECKOUT_ABANDONED = "Checkout abandoned"

RESERVATION_REF_PREFIX = "RSV-"
