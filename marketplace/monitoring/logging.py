"""
Structured logging for the marketplace.

structlog builds each event (request id and caller bound through
contextvars), the standard library carries it to stdout, and
MarketplaceJsonFormatter writes the final JSON line.
"""
import logging
import sys
from typing import Any, Dict

import structlog
from pythonjsonlogger import jsonlogger

from marketplace.config import get_settings

# Gateway and storage credentials that must never reach a log line
REDACTED_KEYS = frozenset(
    {
        "authorization",
        "client_secret",
        "api_secret",
        "session_token",
        "signature",
    }
)

QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite", "sqlalchemy.engine")


class MarketplaceJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter that stamps the service and redacts credentials."""

    def __init__(self, app_name: str, app_env: str, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.app_name = app_name
        self.app_env = app_env

    def add_fields(
        self,
        log_record: Dict[str, Any],
        record: logging.LogRecord,
        message_dict: Dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record["app_name"] = self.app_name
        log_record["app_env"] = self.app_env

        for key in REDACTED_KEYS.intersection(log_record):
            log_record[key] = "***REDACTED***"


def redact_event(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """structlog processor applying the same redaction before rendering."""
    for key in REDACTED_KEYS.intersection(event_dict):
        event_dict[key] = "***REDACTED***"
    return event_dict


def setup_logging() -> None:
    """Route structlog events through a single JSON stdout handler."""
    settings = get_settings()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.processors.TimeStamper(fmt="iso", key="@timestamp"),
            structlog.processors.format_exc_info,
            redact_event,
            structlog.stdlib.render_to_log_kwargs,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        MarketplaceJsonFormatter(
            app_name=settings.app_name,
            app_env=settings.app_env,
            fmt="%(message)s",
            rename_fields={"message": "event"},
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers[:] = [handler]
    root_logger.setLevel(settings.log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
