"""
PII (Personally Identifiable Information) masking utilities.
"""
import re
from typing import Any

UUID_RE = re.compile(r'^[0-9a-f]{8}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{4}-[0-9a-f]{12}$', re.I)
PHONE_RE = re.compile(r'^[\d\s\+\-\(\)]+$')

PII_FIELDS = {
    "email", "phone", "name", "street", "zip_code", "relationship",
    "user_id", "actor_id", "order_id", "payment_id", "signature",
}


def mask_email(email: str) -> str:
    """Mask email address."""
    if "@" not in email:
        return email
    local, domain = email.split("@", 1)
    masked = "**" if len(local) <= 2 else local[:2] + "*" * (len(local) - 2)
    return f"{masked}@{domain}"


def mask_phone(phone: str) -> str:
    """Mask phone number."""
    if len(phone) <= 4:
        return "*" * len(phone)
    return phone[:2] + "*" * (len(phone) - 4) + phone[-2:]


def mask_name(name: str) -> str:
    """Mask name."""
    if len(name) <= 2:
        return "**"
    return name[0] + "*" * (len(name) - 2) + name[-1]


def mask_uuid(uuid_str: str) -> str:
    """Mask UUID (show first 8 chars only)."""
    if len(uuid_str) < 8:
        return "*" * len(uuid_str)
    return uuid_str[:8] + "-****-****-****-************"


def mask_value(key: str, value: Any) -> Any:
    if not isinstance(value, str):
        return value
    if "@" in value:
        return mask_email(value)
    if UUID_RE.match(value):
        return mask_uuid(value)
    if PHONE_RE.match(value):
        return mask_phone(value)
    if key == "signature":
        return "****"
    return mask_name(value)


def mask_pii_in_dict(data: dict) -> dict:
    """Mask PII in dictionary recursively."""
    masked = {}
    for key, value in data.items():
        key_lower = key.lower()
        if isinstance(value, dict):
            masked[key] = mask_pii_in_dict(value)
        elif isinstance(value, list):
            masked[key] = [mask_pii_in_dict(item) if isinstance(item, dict) else item for item in value]
        elif key_lower in PII_FIELDS:
            masked[key] = mask_value(key_lower, value)
        else:
            masked[key] = value
    return masked
