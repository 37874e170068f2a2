"""Background tasks owned by the core module."""

import structlog
from celery import shared_task
from django.db import transaction

from modules.core.models import OutboxEvent
from shared.infrastructure.bus import UnknownEventType, event_bus

logger = structlog.get_logger(__name__)

OUTBOX_BATCH_SIZE = 100
OUTBOX_MAX_RETRIES = 5


@shared_task(name="core.publish_outbox_events")
def publish_outbox_events(batch_size: int = OUTBOX_BATCH_SIZE) -> dict:
    """Dispatch pending outbox rows to the in-process event bus.

    A handler failure marks the row FAILED and bumps ``retry_count``; the
    row is retried on later runs until ``OUTBOX_MAX_RETRIES``.
    """
    published = failed = 0
    events = list(OutboxEvent.objects.publishable(OUTBOX_MAX_RETRIES)[:batch_size])

    for outbox_event in events:
        log = logger.bind(
            outbox_id=str(outbox_event.id),
            event_type=outbox_event.event_type,
            aggregate_id=outbox_event.aggregate_id,
        )
        try:
            with transaction.atomic():
                event_bus.publish_payload(outbox_event.event_type, outbox_event.payload)
                outbox_event.mark_as_published()
        except (UnknownEventType, KeyError, ValueError, TypeError) as exc:
            outbox_event.mark_as_failed(f"{type(exc).__name__}: {exc}")
            log.warning("outbox.publish_failed", error=str(exc))
            failed += 1
            continue
        published += 1

    logger.info("outbox.batch_published", published=published, failed=failed)
    return {"published": published, "failed": failed}
