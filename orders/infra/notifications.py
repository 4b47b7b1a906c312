"""
Outbound notification requests: HTTP client and outbox dispatcher.
"""
from __future__ import annotations

import logging

import requests

from orders.conf import orders_setting
from orders.infra.outbox import OutboxEvent, OutboxRepository
from orders.infra.pii_masker import mask_uuid


logger = logging.getLogger(__name__)


class NotificationError(Exception):
    """Notification collaborator could not be reached or refused the request."""


class NotificationClient:
    """Posts notification requests to the notification collaborator."""

    def __init__(
        self,
        url: str | None = None,
        timeout: float | None = None,
        session: requests.Session | None = None,
    ):
        self.url = url if url is not None else orders_setting("NOTIFICATION_WEBHOOK_URL")
        self.timeout = timeout if timeout is not None else orders_setting("NOTIFICATION_TIMEOUT")
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    def send(self, payload: dict) -> None:
        try:
            response = self.session.post(self.url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationError(str(e)) from e


class NotificationDispatcher:
    """Drains notification requests from the outbox.

    Delivery is fire-and-forget: each event gets a bounded number of
    attempts across runs and is then marked failed. Order state is never
    touched from here.
    """

    def __init__(
        self,
        client: NotificationClient | None = None,
        outbox_repo: OutboxRepository | None = None,
        max_attempts: int | None = None,
    ):
        self.client = client or NotificationClient()
        self.outbox_repo = outbox_repo or OutboxRepository()
        self.max_attempts = max_attempts or orders_setting("NOTIFICATION_MAX_ATTEMPTS")

    def dispatch_pending(self, limit: int | None = None) -> int:
        """Send unprocessed notification requests; returns how many were delivered."""
        if not self.client.enabled:
            logger.info("notification_dispatch_disabled")
            return 0

        events = self.outbox_repo.get_unprocessed_events(limit=limit or orders_setting("OUTBOX_BATCH_SIZE"))
        delivered = 0
        for event in events:
            if event.event_type != "NotificationRequested":
                self.outbox_repo.mark_processed(event.id)
                continue
            if self._dispatch(event):
                delivered += 1
        return delivered

    def _dispatch(self, event: OutboxEvent) -> bool:
        payload = self.payload_for(event)
        try:
            self.client.send(payload)
        except NotificationError as e:
            attempts = event.retry_count + 1
            logger.warning(
                "notification_dispatch_failed",
                extra={
                    "order_id": mask_uuid(str(event.aggregate_id)),
                    "attempt": attempts,
                    "error": str(e),
                },
            )
            if attempts >= self.max_attempts:
                self.outbox_repo.mark_failed(event.id, str(e))
            else:
                self.outbox_repo.increment_retry(event.id, str(e))
            return False

        self.outbox_repo.mark_processed(event.id)
        logger.info(
            "notification_dispatched",
            extra={"order_id": mask_uuid(str(event.aggregate_id)), "operation": payload["type"]},
        )
        return True

    @staticmethod
    def payload_for(event: OutboxEvent) -> dict:
        data = event.event_data
        return {
            "userId": data["user_id"],
            "type": data["notification_type"],
            "relatedOrder": data["aggregate_id"],
            "priority": data["priority"],
            "orderStatus": data.get("order_status"),
            "customOrderId": data.get("custom_order_id"),
        }
