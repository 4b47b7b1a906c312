from orders.infra.models import (  # noqa: F401
    CouponRecord,
    DeliveryEventRecord,
    IdempotencyKey,
    LineItemRecord,
    OrderCodeCounter,
    OrderRecord,
    ProductRecord,
    StatusHistoryRecord,
)
from orders.infra.outbox import OutboxEvent  # noqa: F401
