import json
import logging

from grc_ai.core.logging import JsonFormatter, configure_logging


def _record(message: str) -> logging.LogRecord:
    return logging.LogRecord("grc.dispatch", logging.INFO, __file__, 1, message, None, None)


def test_json_formatter_includes_context_fields() -> None:
    record = _record("dispatch_completed")
    record.tenant_id = "tenant-a"
    record.token_in = 12
    record.api_key = "never-logged"

    payload = json.loads(JsonFormatter().format(record))

    assert payload["event"] == "dispatch_completed"
    assert payload["logger"] == "grc.dispatch"
    assert payload["tenant_id"] == "tenant-a"
    assert payload["token_in"] == 12
    assert "api_key" not in payload


def test_json_formatter_keeps_non_ascii() -> None:
    record = _record("prompt_template_missing")
    record.error = "Proteção"
    assert "Proteção" in JsonFormatter().format(record)


def test_configure_logging_is_idempotent_and_quiets_httpx() -> None:
    configure_logging("info")
    configure_logging("info")

    root = logging.getLogger()
    json_handlers = [h for h in root.handlers if isinstance(h.formatter, JsonFormatter)]
    assert len(json_handlers) == 1
    assert logging.getLogger("httpx").level == logging.WARNING
