"""
logging_config.py - Centralized JSON Logging Configuration

PURPOSE:
    Provides structured JSON logging for the inventory service (HTTP API and
    order event consumer) with timezone-aware timestamps and context injection.

KEY FEATURES:
    - JSON Format: One JSON object per line, ready for log aggregation
    - Timezone Aware: Timestamps use the configured IANA zone (default Asia/Karachi)
    - Correlation Tracking: correlation_id links an order's events across services
    - Service Context: service_name is added to every record by a filter
    - Inventory Context: optional product_id / order_id extras
    - Exception Handling: Full stack traces included in log entries

JSON LOG FIELDS:
    - timestamp: ISO 8601 with zone offset (e.g., "2026-10-18T09:12:44.120511+05:00")
    - level: Log level (INFO, ERROR, WARNING, DEBUG, CRITICAL)
    - logger: Module where the log originated (e.g., "services.inventory_service.ledger")
    - message: The actual log message
    - service_name: Name of the service (injected automatically)
    - correlation_id / event_type / product_id / order_id: only when supplied via extra=
    - exception: Full stack trace (only when exc_info is set)

USAGE:
    from shared.logging_config import setup_logging
    setup_logging("inventory-service", level="INFO")

    logger = logging.getLogger(__name__)
    logger.info("Reserved stock", extra={"product_id": "P-1", "order_id": "ORD-1"})

EXAMPLE JSON OUTPUT:
    {
        "timestamp": "2026-10-18T09:12:44.120511+05:00",
        "level": "INFO",
        "logger": "services.inventory_service.reservations",
        "message": "Reserved 4 units of P-1 for order ORD-1",
        "service_name": "inventory-service",
        "order_id": "ORD-1"
    }
"""

import json
import logging
import sys
from datetime import datetime
from typing import Any, Dict
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "Asia/Karachi"

# Optional attributes copied from the record when a caller passes them via extra=
CONTEXT_FIELDS = ("correlation_id", "service_name", "event_type", "product_id", "order_id")


class JsonFormatter(logging.Formatter):
    """Custom formatter that outputs JSON logs with correlation context."""

    def __init__(self, tz_name: str = DEFAULT_TIMEZONE):
        super().__init__()
        self.tz = ZoneInfo(tz_name)

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, self.tz).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        for field in CONTEXT_FIELDS:
            if hasattr(record, field):
                log_data[field] = getattr(record, field)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class ServiceFilter(logging.Filter):
    """Stamp every record with the owning service name."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self.service_name
        return True


def setup_logging(service_name: str, level: str = "INFO", tz_name: str = DEFAULT_TIMEZONE) -> None:
    """Setup JSON logging for a service."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(tz_name))
    handler.addFilter(ServiceFilter(service_name))

    logger = logging.getLogger()
    logger.setLevel(level)

    # Re-running setup (reloads, tests) must not duplicate output
    for existing in list(logger.handlers):
        if isinstance(existing.formatter, JsonFormatter):
            logger.removeHandler(existing)
    logger.addHandler(handler)
