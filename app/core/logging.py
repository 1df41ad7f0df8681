import json
import logging
import logging.config
from datetime import datetime, timezone
from typing import Optional

from app.core.context import get_job_name, get_request_id, get_tenant_id
from app.core.settings import settings

# Attributes set by the logging machinery itself; anything else passed via ``extra=``
# is copied into the JSON payload.
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", None, None)).keys()
) | {"message", "asctime", "tenant_id", "request_id", "job", "stream"}


class RequestContextFilter(logging.Filter):
    """Inject tenant/request/job ids into log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.tenant_id = get_tenant_id()
        record.request_id = get_request_id()
        record.job = get_job_name()
        return True


class JsonFormatter(logging.Formatter):
    """Structured JSON lines; one formatter instance per stream label."""

    def __init__(self, stream_label: str = "transactional") -> None:
        super().__init__()
        self.stream_label = stream_label

    def format(self, record: logging.LogRecord) -> str:  # noqa: D401 - concise
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "stream": self.stream_label,
            "tenant_id": getattr(record, "tenant_id", "-"),
            "request_id": getattr(record, "request_id", "-"),
        }
        job = getattr(record, "job", "-")
        if job and job != "-":
            payload["job"] = job
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload[key] = value
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def _stream_handler(formatter: str, level: str) -> dict:
    return {
        "class": "logging.StreamHandler",
        "level": level,
        "formatter": formatter,
        "filters": ["request_context"],
        "stream": "ext://sys.stdout",
    }


def configure_logging(level: Optional[str] = None) -> None:
    log_level = (level or settings.log_level).upper()
    logging.config.dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "filters": {
                "request_context": {"()": RequestContextFilter},
            },
            "formatters": {
                "json": {"()": JsonFormatter, "stream_label": "transactional"},
                "audit_json": {"()": JsonFormatter, "stream_label": "audit"},
                "ops_json": {"()": JsonFormatter, "stream_label": "ops"},
            },
            "handlers": {
                "default": _stream_handler("json", log_level),
                "audit": _stream_handler("audit_json", log_level),
                "ops": _stream_handler("ops_json", log_level),
            },
            "loggers": {
                "": {"handlers": ["default"], "level": log_level, "propagate": False},
                "app.audit": {"handlers": ["audit"], "level": log_level, "propagate": False},
                # Operator follow-up alerts (e.g. breaches nobody could be notified about)
                "app.ops": {"handlers": ["ops"], "level": log_level, "propagate": False},
                "uvicorn": {"handlers": ["default"], "level": log_level, "propagate": False},
                "uvicorn.error": {"handlers": ["default"], "level": log_level, "propagate": False},
                "uvicorn.access": {"handlers": ["default"], "level": log_level, "propagate": False},
            },
        }
    )
    logging.getLogger(__name__).info(
        "Logging configured for environment=%s tenancy_mode=%s",
        settings.environment,
        settings.tenancy_mode,
    )


def get_audit_logger() -> logging.Logger:
    return logging.getLogger("app.audit")


def get_ops_logger() -> logging.Logger:
    return logging.getLogger("app.ops")
