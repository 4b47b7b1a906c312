"""
Custom JSON formatter for logging (without external dependencies).
"""
import json
import logging
from datetime import datetime, timezone

# extra= fields copied into the JSON record when present
EXTRA_FIELDS = (
    "request_id",
    "user_id",
    "order_id",
    "operation",
    "status",
    "idempotency_key",
    "error",
    "error_type",
    "attempt",
    "event_code",
)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record):
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        for name in EXTRA_FIELDS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, ensure_ascii=False, default=str)
