"""Django ORM implementation of the Order repository.

Satisfies ``IOrderRepository`` using Django's QuerySet API.
Write operations are wrapped in ``transaction.atomic()`` so the Order
aggregate (Order + OrderItems) is persisted atomically; ``save`` and
``remove`` also write the aggregate's domain events to the outbox in the
same transaction.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import UUID

import structlog
from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.db import IntegrityError, models, transaction
from django.db.models import Q

from modules.core.models import OutboxEvent
from modules.orders.constants import CommitState
from modules.orders.exceptions import OrderIdCollision
from modules.orders.models import Order, OrderItem, OrderStatusHistory
from modules.orders.repositories.interfaces import IOrderRepository

logger = structlog.get_logger(__name__)

OUTBOX_TOPIC = "orders"


class OrderDjangoRepository(IOrderRepository):
    """Concrete Order repository backed by Django ORM."""

    # ------------------------------------------------------------------
    # Create (aggregate root + children)
    # ------------------------------------------------------------------

    def create_pending(self, data: Dict[str, Any]) -> Order:
        """Insert the order and its items atomically.

        ``data`` keys: the ``Order`` field values plus ``items`` (list of
        dicts with ``product_id``, ``name``, ``quantity``, ``price``).
        """
        fields = {key: value for key, value in data.items() if key != "items"}
        try:
            with transaction.atomic():
                order = Order.objects.create(commit_state=CommitState.PENDING, **fields)
                for item_data in data.get("items", []):
                    OrderItem(order=order, **item_data).save()
        except IntegrityError:
            taken = Order.objects.filter(
                Q(order_id=fields.get("order_id"))
                | Q(tracking_code=fields.get("tracking_code"))
            ).exists()
            if not taken:
                raise
            logger.warning("order.id_collision", order_id=fields.get("order_id"))
            raise OrderIdCollision(
                f"Order ID {fields.get('order_id')} already exists. Please try again."
            ) from None

        logger.info(
            "order.pending_created",
            order_id=order.order_id,
            item_count=len(data.get("items", [])),
        )
        return order

    # ------------------------------------------------------------------
    # Commit state
    # ------------------------------------------------------------------

    def mark_committed(self, order: Order) -> Order:
        order.commit_state = CommitState.COMMITTED
        order.save(update_fields=["commit_state"])
        return order

    def mark_rolled_back(self, order: Order) -> Order:
        order.commit_state = CommitState.ROLLED_BACK
        order.save(update_fields=["commit_state"])
        logger.info("order.marked_rolled_back", order_id=order.order_id)
        return order

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def _committed(self) -> "models.QuerySet[Order]":
        return Order.objects.filter(commit_state=CommitState.COMMITTED)

    def get_by_id(self, id: str) -> Optional[Order]:
        """Retrieve any order by internal primary key, whatever its commit state.

        Returns ``None`` for non-existent or invalid IDs.
        """
        try:
            return Order.objects.filter(id=id).first()
        except (ValueError, ValidationError):
            return None

    def get_by_order_id(self, order_id: str) -> Optional[Order]:
        """Retrieve a committed order with eager-loaded relations.

        ``select_related`` for the user FK, ``prefetch_related`` for items
        and status history.  Prevents N+1.
        """
        return (
            self._committed()
            .select_related("user")
            .prefetch_related("items", "status_history")
            .filter(order_id=order_id)
            .first()
        )

    def get_for_update(self, order_id: str) -> Optional[Order]:
        """Retrieve a committed order with a row-level lock (SELECT FOR UPDATE).

        Eager-loads items so the caller can iterate over them while the
        row is locked.
        """
        return (
            self._committed()
            .select_for_update()
            .prefetch_related("items")
            .filter(order_id=order_id)
            .first()
        )

    def list(self, filters: Optional[Dict[str, Any]] = None) -> "models.QuerySet[Order]":
        """List committed orders with optional filters.

        Supported filter keys include ``status``, ``user_id`` and
        ``created_at__range``.
        """
        queryset = self._committed().select_related("user")
        if filters:
            queryset = queryset.filter(**filters)
        return queryset

    def list_stale_uncommitted(self, cutoff: datetime) -> List[Order]:
        return list(
            Order.objects.filter(
                Q(commit_state=CommitState.PENDING, created_at__lt=cutoff)
                | Q(commit_state=CommitState.ROLLED_BACK)
            ).order_by("created_at")
        )

    # ------------------------------------------------------------------
    # Save / Delete (IRepository contract)
    # ------------------------------------------------------------------

    @transaction.atomic
    def save(self, entity: Order) -> Order:
        """Persist an order and flush its domain events to the outbox."""
        entity.save()
        event_count = self._flush_events(entity)
        logger.info("order.saved", order_id=entity.order_id, event_count=event_count)
        return entity

    @transaction.atomic
    def remove(self, order: Order) -> None:
        self._flush_events(order)
        order_id = order.order_id
        order.delete()
        logger.info("order.removed", order_id=order_id)

    def delete(self, id: str) -> bool:
        """Hard-delete an order by internal ID."""
        order = self.get_by_id(id)
        if not order:
            return False
        self.remove(order)
        return True

    # ------------------------------------------------------------------
    # History / users
    # ------------------------------------------------------------------

    def add_history(
        self,
        order: Order,
        new_status: str,
        old_status: Optional[str] = None,
        notes: str = "",
        user: Optional[Any] = None,
    ) -> OrderStatusHistory:
        """Record a status change in the order's audit trail."""
        history = OrderStatusHistory.objects.create(
            order=order,
            old_status=old_status,
            new_status=new_status,
            notes=notes,
            user=user if user is not None and user.is_authenticated else None,
        )
        logger.info(
            "order.history_added",
            order_id=order.order_id,
            old_status=old_status,
            new_status=new_status,
        )
        return history

    def get_user(self, user_id: Any) -> Optional[Any]:
        return get_user_model().objects.filter(pk=user_id, is_active=True).first()

    # ------------------------------------------------------------------
    # Outbox
    # ------------------------------------------------------------------

    def _flush_events(self, entity: Order) -> int:
        events = entity.domain_events
        for event in events:
            OutboxEvent.objects.create(
                event_type=event.event_name,
                aggregate_id=str(event.aggregate_id),
                payload=_serialize_event_payload(event),
                topic=OUTBOX_TOPIC,
            )
        entity.clear_domain_events()
        return len(events)


def _serialize_event_payload(event: Any) -> Dict[str, Any]:
    data = asdict(event)
    normalized = _normalize_for_json(data)
    return json.loads(json.dumps(normalized))


def _normalize_for_json(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [_normalize_for_json(item) for item in value]
    if isinstance(value, dict):
        return {key: _normalize_for_json(val) for key, val in value.items()}
    return value
