"""
Courier delivery events: deduplicated, time-ordered log and derived summary.
"""
from __future__ import annotations

import bisect
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Mapping

from orders.domain.errors import InvalidOrderOperation
from orders.domain.results import OperationResult, ReviewRequired
from orders.domain.state_machine import OrderStatusMachine
from orders.domain.statuses import OrderStatus

if TYPE_CHECKING:
    from orders.domain.order import Order


logger = logging.getLogger(__name__)


class DeliveryEventCode(str, Enum):
    """Event codes the tracker derives state from; other codes are kept as-is."""
    MANIFESTED = "manifested"
    PICKED_UP = "picked_up"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERY_ATTEMPTED = "delivery_attempted"
    DELIVERED = "delivered"
    RTO_INITIATED = "rto_initiated"
    RTO_DELIVERED = "rto_delivered"


# Documented metadata keys; anything else is dropped.
METADATA_KEYS = frozenset({
    "courier_status_code",
    "scan_type",
    "instructions",
    "receiver_name",
    "signature_url",
    "pod_url",
    "source",
})
METADATA_VALUE_MAX_LENGTH = 256


def bounded_metadata(meta: Mapping[str, object] | None) -> Mapping[str, str]:
    """Keep documented keys only, values as strings capped in length."""
    if not meta:
        return MappingProxyType({})
    return MappingProxyType({
        key: str(value)[:METADATA_VALUE_MAX_LENGTH]
        for key, value in meta.items()
        if key in METADATA_KEYS and value is not None
    })


@dataclass(frozen=True)
class DeliveryEvent:
    """Single courier scan or status update."""
    code: str
    status: str
    timestamp: datetime
    location: str = ""
    description: str = ""
    expected_delivery: datetime | None = None
    updated_by: str = ""
    meta: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        if not self.code:
            raise InvalidOrderOperation("Delivery event code is required")
        if not self.status:
            raise InvalidOrderOperation("Delivery event status is required")
        if self.timestamp.tzinfo is None:
            raise InvalidOrderOperation("Delivery event timestamp must be timezone-aware")
        object.__setattr__(self, "meta", bounded_metadata(self.meta))

    @property
    def dedup_key(self) -> tuple[str, datetime, str]:
        return (self.code, self.timestamp, self.location)

    def is_code(self, code: DeliveryEventCode) -> bool:
        return self.code == code.value


@dataclass(frozen=True)
class TrackedEvent:
    """Delivery event with its arrival sequence number."""
    sequence: int
    event: DeliveryEvent


class DeliveryLog:
    """Append-only event log kept sorted by timestamp, ties in arrival order."""

    def __init__(self, entries: list[TrackedEvent] | None = None):
        self._entries: list[TrackedEvent] = []
        self._keys: set[tuple] = set()
        for entry in sorted(entries or [], key=lambda e: (e.event.timestamp, e.sequence)):
            self._entries.append(entry)
            self._keys.add(entry.event.dedup_key)

    def contains(self, event: DeliveryEvent) -> bool:
        return event.dedup_key in self._keys

    def add(self, event: DeliveryEvent) -> TrackedEvent:
        entry = TrackedEvent(sequence=self.next_sequence, event=event)
        timestamps = [e.event.timestamp for e in self._entries]
        position = bisect.bisect_right(timestamps, event.timestamp)
        self._entries.insert(position, entry)
        self._keys.add(event.dedup_key)
        return entry

    @property
    def next_sequence(self) -> int:
        return max((e.sequence for e in self._entries), default=0) + 1

    @property
    def events(self) -> tuple[DeliveryEvent, ...]:
        return tuple(e.event for e in self._entries)

    @property
    def entries(self) -> tuple[TrackedEvent, ...]:
        return tuple(self._entries)

    def arrived_after(self, sequence: int) -> tuple[TrackedEvent, ...]:
        """Entries whose arrival sequence is greater than ``sequence``."""
        return tuple(sorted((e for e in self._entries if e.sequence > sequence), key=lambda e: e.sequence))

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class DeliveryInfoView:
    """Read view derived from the delivery event log."""
    tracking_id: str | None
    provider: str
    mode: str
    last_mile_status: str | None
    expected_delivery_date: datetime | None
    actual_delivery_date: datetime | None
    delivery_attempts: int
    received_by: str | None
    proof_of_delivery: str | None
    customer_instructions: str
    events: tuple[DeliveryEvent, ...]


class DeliveryTracker:
    """Records courier events on an order and derives the delivery summary."""

    # Courier-driven auto-transitions and the order states they apply from.
    AUTO_TRANSITIONS = {
        DeliveryEventCode.DELIVERED.value: (
            OrderStatus.DELIVERED,
            frozenset({OrderStatus.SHIPPED, OrderStatus.OUT_FOR_DELIVERY}),
        ),
        DeliveryEventCode.OUT_FOR_DELIVERY.value: (
            OrderStatus.OUT_FOR_DELIVERY,
            frozenset({OrderStatus.SHIPPED}),
        ),
    }

    def __init__(self, machine: OrderStatusMachine | None = None):
        self.machine = machine or OrderStatusMachine()

    def record_event(self, order: Order, event: DeliveryEvent, now: datetime | None = None) -> OperationResult:
        """Append ``event`` unless it is a redelivery of a recorded one."""
        if order.delivery_log.contains(event):
            logger.info(
                "delivery_event_duplicate",
                extra={"order_id": str(order.id), "event_code": event.code},
            )
            return OperationResult.noop()

        order.delivery_log.add(event)
        result = OperationResult(applied=True)

        transition = self.AUTO_TRANSITIONS.get(event.code)
        if transition is None:
            return result
        target, sources = transition
        if order.order_status == target:
            return result
        if order.order_status in sources and self.machine.can_transition(order, target):
            self.machine.transition(
                order,
                target,
                remarks=f"Courier event {event.code}: {event.status}",
                now=now or event.timestamp,
            )
        elif target == OrderStatus.DELIVERED:
            result.warnings.append(ReviewRequired(
                f"delivered event received while order is {order.order_status.value}",
                event_code=event.code,
            ))
        return result

    def summarize(self, order: Order) -> DeliveryInfoView:
        """Derive the delivery summary from the event log alone."""
        events = order.delivery_log.events
        last_delivered = self._latest(events, DeliveryEventCode.DELIVERED)

        expected = None
        for event in reversed(events):
            if event.expected_delivery is not None:
                expected = event.expected_delivery
                break

        return DeliveryInfoView(
            tracking_id=order.delivery.shipment_id,
            provider=order.delivery.provider,
            mode=order.delivery.mode.value,
            last_mile_status=events[-1].status if events else None,
            expected_delivery_date=expected,
            actual_delivery_date=last_delivered.timestamp if last_delivered else None,
            delivery_attempts=sum(
                1 for e in events if e.is_code(DeliveryEventCode.OUT_FOR_DELIVERY)
            ),
            received_by=last_delivered.meta.get("receiver_name") if last_delivered else None,
            proof_of_delivery=last_delivered.meta.get("pod_url") if last_delivered else None,
            customer_instructions=order.delivery.customer_instructions,
            events=events,
        )

    @staticmethod
    def _latest(events, code: DeliveryEventCode) -> DeliveryEvent | None:
        for event in reversed(events):
            if event.is_code(code):
                return event
        return None
