import json
import logging
from pathlib import Path

from jsonschema import ValidationError, validate

from grc_ai.config.settings import Settings
from grc_ai.metrics import inc_counter
from grc_ai.storage.base import Store, UsageLogWriteError, UsageRecord

logger = logging.getLogger("grc.usage")


class UsageRecorder:
    """Best-effort writer for usage telemetry.

    ``record`` never raises for validation or persistence failures; it logs a
    warning and returns False so the request outcome is unaffected.
    """

    def __init__(self, settings: Settings, store: Store):
        self._enabled = settings.usage_logging_enabled
        self._schema_path = settings.contracts_dir / "usage-record.schema.json"
        self._schema = json.loads(self._schema_path.read_text(encoding="utf-8"))
        self._store = store

    @property
    def schema_path(self) -> Path:
        return self._schema_path

    def record(self, record: UsageRecord) -> bool:
        if not self._enabled:
            return False

        try:
            validate(instance=record.as_dict(), schema=self._schema)
            self._store.insert_usage(record)
        except (ValidationError, UsageLogWriteError) as exc:
            logger.warning(
                "usage_log_write_failed",
                extra={
                    "tenant_id": record.tenant_id,
                    "user_id": record.user_id,
                    "provider_id": record.provider_id,
                    "error": f"{type(exc).__name__}: {_short(exc)}",
                },
            )
            inc_counter("grc_usage_log_failures_total", {"reason": type(exc).__name__})
            return False
        return True


def _short(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return exc.message
    return str(exc)
