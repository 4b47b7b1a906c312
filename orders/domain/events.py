"""
Domain events raised by the order aggregate.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from orders.domain.statuses import NotificationPriority, NotificationType, OrderStatus


class EventVersion(str, Enum):
    """Event version for upcasting."""
    V1 = "1.0"


@dataclass
class DomainEvent:
    """Base domain event."""
    event_id: UUID
    aggregate_id: UUID
    event_type: str


@dataclass
class NotificationRequested(DomainEvent):
    """Request for the notification collaborator (fire-and-forget)."""
    user_id: UUID
    notification_type: NotificationType
    priority: NotificationPriority
    order_status: OrderStatus
    custom_order_id: str | None = None
    version: EventVersion = EventVersion.V1
    occurred_at: str = ""

