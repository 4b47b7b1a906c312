"""
Order engine settings with defaults, overridable through ``settings.ORDERS``.
"""
from django.conf import settings

DEFAULTS = {
    "VERSION_CONFLICT_RETRIES": 3,
    "VERSION_CONFLICT_BACKOFF": 0.05,
    "ORDER_CODE_PREFIX": "ODR",
    "NOTIFICATION_WEBHOOK_URL": None,
    "NOTIFICATION_TIMEOUT": 5,
    "NOTIFICATION_MAX_ATTEMPTS": 5,
    "OUTBOX_BATCH_SIZE": 100,
}


def orders_setting(name: str):
    """Look up an order engine setting, falling back to the default."""
    if name not in DEFAULTS:
        raise KeyError(f"Unknown order engine setting: {name}")
    return getattr(settings, "ORDERS", {}).get(name, DEFAULTS[name])
