import json
import logging
from datetime import UTC, datetime

CONTEXT_FIELDS = (
    "request_id",
    "tenant_id",
    "user_id",
    "provider",
    "provider_id",
    "provider_type",
    "provider_source",
    "prompt_type",
    "prompt_source",
    "latency_ms",
    "token_in",
    "token_out",
    "error_code",
    "error",
)

# httpx logs full request URLs at INFO; Gemini URLs carry the api key.
QUIET_LOGGERS = ("httpx", "httpcore")


class JsonFormatter(logging.Formatter):
    """One JSON object per line; context comes from ``extra=`` on the log call."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, object] = {
            "ts": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "event": record.getMessage(),
        }
        payload.update(
            {
                name: getattr(record, name)
                for name in CONTEXT_FIELDS
                if getattr(record, name, None) is not None
            }
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(log_level: str) -> None:
    root = logging.getLogger()
    for handler in list(root.handlers):
        if isinstance(handler.formatter, JsonFormatter):
            root.removeHandler(handler)

    stream = logging.StreamHandler()
    stream.setFormatter(JsonFormatter())
    root.addHandler(stream)
    root.setLevel(log_level.upper())

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
