"""
Transactional Outbox pattern implementation.
"""
from __future__ import annotations

import logging
from decimal import Decimal
from enum import Enum
from uuid import UUID, uuid4

from django.db import DatabaseError, models, transaction
from django.db.models import F
from django.utils import timezone

from orders.domain.events import DomainEvent
from orders.infra.models import TimeStampedModel


logger = logging.getLogger(__name__)


class OutboxEvent(TimeStampedModel):
    """Outbox event for transactional outbox pattern."""
    id = models.UUIDField(primary_key=True, default=uuid4, editable=False)
    aggregate_id = models.UUIDField()
    aggregate_type = models.CharField(max_length=50)
    event_type = models.CharField(max_length=100)
    event_data = models.JSONField()
    processed = models.BooleanField(default=False)
    processed_at = models.DateTimeField(null=True, blank=True)
    failed = models.BooleanField(default=False)
    retry_count = models.IntegerField(default=0)
    last_error = models.TextField(blank=True, default="")

    class Meta:
        indexes = [
            models.Index(fields=("processed", "created_at")),
            models.Index(fields=("aggregate_id", "aggregate_type")),
        ]


class OutboxRepository:
    """Repository for outbox events."""

    def add_event(self, event: DomainEvent, aggregate_type: str) -> UUID:
        """Add event to outbox (within the caller's transaction)."""
        outbox_event = OutboxEvent.objects.create(
            aggregate_id=event.aggregate_id,
            aggregate_type=aggregate_type,
            event_type=event.event_type,
            event_data=self._serialize_event(event),
        )
        return outbox_event.id

    def add_events_best_effort(self, events: list[DomainEvent], aggregate_type: str) -> int:
        """Add each event in its own savepoint; failures are logged, not raised."""
        added = 0
        for event in events:
            try:
                with transaction.atomic():
                    self.add_event(event, aggregate_type)
                added += 1
            except DatabaseError as e:
                logger.error(
                    "outbox_write_failed",
                    extra={
                        "order_id": str(event.aggregate_id),
                        "operation": event.event_type,
                        "error": str(e),
                    },
                )
        return added

    def get_unprocessed_events(self, limit: int = 100) -> list[OutboxEvent]:
        """Get unprocessed events."""
        return list(
            OutboxEvent.objects
            .filter(processed=False)
            .order_by("created_at")[:limit]
        )

    def mark_processed(self, event_id: UUID) -> None:
        """Mark event as processed."""
        OutboxEvent.objects.filter(id=event_id).update(
            processed=True,
            processed_at=timezone.now(),
        )

    def mark_failed(self, event_id: UUID, error: str) -> None:
        """Give up on an event after the retry budget is spent."""
        OutboxEvent.objects.filter(id=event_id).update(
            processed=True,
            failed=True,
            processed_at=timezone.now(),
            last_error=error[:2000],
        )

    def increment_retry(self, event_id: UUID, error: str = "") -> None:
        """Increment retry count."""
        OutboxEvent.objects.filter(id=event_id).update(
            retry_count=F("retry_count") + 1,
            last_error=error[:2000],
        )

    def _serialize_event(self, event: DomainEvent) -> dict:
        """Serialize event to dict."""
        data = {
            "event_id": str(event.event_id),
            "aggregate_id": str(event.aggregate_id),
            "event_type": event.event_type,
            "version": event.version.value,
        }
        for key, value in event.__dict__.items():
            if key not in ("event_id", "aggregate_id", "event_type", "version"):
                if isinstance(value, UUID):
                    data[key] = str(value)
                elif isinstance(value, Decimal):
                    data[key] = str(value)
                elif isinstance(value, Enum):
                    data[key] = value.value
                else:
                    data[key] = value
        return data
