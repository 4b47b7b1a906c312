"""
Human-friendly order codes: PREFIX + YYYYMMDD + 2 random alphanumerics + daily serial.
"""
from __future__ import annotations

import secrets
import string
from datetime import datetime

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from orders.conf import orders_setting
from orders.infra.models import OrderCodeCounter

ALPHABET = string.ascii_uppercase + string.digits


def next_daily_serial(date_key: str) -> int:
    """Atomically increment and return the serial for ``date_key``."""
    with transaction.atomic():
        OrderCodeCounter.objects.get_or_create(date_key=date_key)
        OrderCodeCounter.objects.filter(date_key=date_key).update(seq=F("seq") + 1)
        return OrderCodeCounter.objects.values_list("seq", flat=True).get(date_key=date_key)


def generate_order_code(now: datetime | None = None) -> str:
    now = timezone.localtime(now or timezone.now())
    date_key = now.strftime("%Y%m%d")
    serial = next_daily_serial(date_key)
    rand2 = "".join(secrets.choice(ALPHABET) for _ in range(2))
    return f"{orders_setting('ORDER_CODE_PREFIX')}{date_key}{rand2}{serial:04d}"
