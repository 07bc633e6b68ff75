"""SQLite persistence backend for profiles, providers, templates and usage logs."""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from grc_ai.storage.base import (
    Profile,
    PromptTemplate,
    ProviderConfig,
    StoreError,
    UsageLogWriteError,
    UsageRecord,
    provider_from_row,
)

logger = logging.getLogger("grc.store")

# temperature and max_tokens carry no type affinity so the values are kept as stored.
SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS profiles (
        id TEXT PRIMARY KEY,
        tenant_id TEXT,
        full_name TEXT NOT NULL DEFAULT ''
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS ai_grc_providers (
        id TEXT PRIMARY KEY,
        tenant_id TEXT,
        name TEXT NOT NULL DEFAULT '',
        provider_type TEXT NOT NULL,
        endpoint_url TEXT NOT NULL,
        model_name TEXT NOT NULL,
        api_key TEXT NOT NULL,
        temperature,
        max_tokens,
        is_active INTEGER NOT NULL DEFAULT 1,
        priority INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_ai_grc_providers_tenant
    ON ai_grc_providers(tenant_id, provider_type, is_active, priority)
    """,
    """
    CREATE TABLE IF NOT EXISTS ai_grc_prompt_templates (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        template_content TEXT NOT NULL,
        version INTEGER NOT NULL DEFAULT 1,
        category TEXT NOT NULL DEFAULT '',
        is_active INTEGER NOT NULL DEFAULT 1
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_ai_grc_prompt_templates_name
    ON ai_grc_prompt_templates(name, is_active)
    """,
    """
    CREATE TABLE IF NOT EXISTS ai_usage_logs (
        id TEXT PRIMARY KEY,
        created_at TEXT NOT NULL,
        user_id TEXT NOT NULL,
        tenant_id TEXT NOT NULL,
        provider_id TEXT NOT NULL,
        module_name TEXT NOT NULL,
        operation_type TEXT NOT NULL,
        status TEXT NOT NULL,
        error_message TEXT,
        prompt_text TEXT NOT NULL,
        response_text TEXT NOT NULL,
        tokens_input INTEGER NOT NULL,
        tokens_output INTEGER NOT NULL,
        total_tokens INTEGER NOT NULL,
        response_time_ms INTEGER NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_ai_usage_logs_tenant
    ON ai_usage_logs(tenant_id, created_at)
    """,
)

PROVIDER_COLUMNS = (
    "id, tenant_id, name, provider_type, endpoint_url, model_name, api_key, "
    "temperature, max_tokens, is_active, priority"
)


@dataclass
class SQLiteStore:
    path: Path
    backend: str = "sqlite"

    def __post_init__(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.ensure_schema()

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self.path))
        connection.row_factory = sqlite3.Row
        return connection

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        try:
            with self._connect() as connection:
                yield connection
        except sqlite3.Error as exc:
            raise StoreError(f"sqlite read failed: {exc}") from exc

    def ensure_schema(self) -> None:
        with self._connect() as connection:
            for statement in SCHEMA_STATEMENTS:
                connection.execute(statement)
            connection.commit()

    def ping(self) -> bool:
        try:
            with self._connect() as connection:
                connection.execute("SELECT 1").fetchone()
        except sqlite3.Error:
            return False
        return True

    def get_profile(self, user_id: str) -> Profile | None:
        with self._reading() as connection:
            row = connection.execute(
                "SELECT id, tenant_id, full_name FROM profiles WHERE id = ?",
                (user_id,),
            ).fetchone()
        if row is None:
            return None
        return Profile(user_id=row["id"], tenant_id=row["tenant_id"], full_name=row["full_name"])

    def find_tenant_provider(self, tenant_id: str, provider_type: str) -> ProviderConfig | None:
        with self._reading() as connection:
            row = connection.execute(
                f"SELECT {PROVIDER_COLUMNS} FROM ai_grc_providers "
                "WHERE tenant_id = ? AND lower(trim(provider_type)) = ? AND is_active = 1 "
                "ORDER BY priority ASC, rowid ASC LIMIT 1",
                (tenant_id, provider_type.strip().lower()),
            ).fetchone()
        return provider_from_row(row) if row is not None else None

    def list_global_providers(self) -> list[ProviderConfig]:
        with self._reading() as connection:
            rows = connection.execute(
                f"SELECT {PROVIDER_COLUMNS} FROM ai_grc_providers "
                "WHERE tenant_id IS NULL AND is_active = 1 "
                "ORDER BY priority ASC, rowid ASC"
            ).fetchall()
        return [provider_from_row(row) for row in rows]

    def count_visible_providers(self, tenant_id: str) -> int:
        with self._reading() as connection:
            row = connection.execute(
                "SELECT COUNT(*) AS total FROM ai_grc_providers "
                "WHERE tenant_id = ? OR tenant_id IS NULL",
                (tenant_id,),
            ).fetchone()
        return int(row["total"]) if row is not None else 0

    def get_active_template(self, name: str) -> PromptTemplate | None:
        with self._reading() as connection:
            row = connection.execute(
                "SELECT id, name, template_content, version, category, is_active "
                "FROM ai_grc_prompt_templates WHERE name = ? AND is_active = 1 "
                "ORDER BY version DESC, rowid ASC LIMIT 1",
                (name,),
            ).fetchone()
        if row is None:
            return None
        return PromptTemplate(
            id=row["id"],
            name=row["name"],
            content=row["template_content"],
            version=int(row["version"]),
            is_active=bool(row["is_active"]),
            category=row["category"],
        )

    def insert_usage(self, record: UsageRecord) -> None:
        try:
            with self._connect() as connection:
                connection.execute(
                    """
                    INSERT INTO ai_usage_logs (
                        id,
                        created_at,
                        user_id,
                        tenant_id,
                        provider_id,
                        module_name,
                        operation_type,
                        status,
                        error_message,
                        prompt_text,
                        response_text,
                        tokens_input,
                        tokens_output,
                        total_tokens,
                        response_time_ms
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.created_at,
                        record.user_id,
                        record.tenant_id,
                        record.provider_id,
                        record.module_name,
                        record.operation_type,
                        record.status,
                        record.error_message,
                        record.prompt_text,
                        record.response_text,
                        record.tokens_input,
                        record.tokens_output,
                        record.total_tokens,
                        record.response_time_ms,
                    ),
                )
                connection.commit()
        except sqlite3.Error as exc:
            raise UsageLogWriteError(f"sqlite usage insert failed: {exc}") from exc

    def upsert_profile(self, profile: Profile) -> None:
        with self._connect() as connection:
            connection.execute(
                "INSERT INTO profiles (id, tenant_id, full_name) VALUES (?, ?, ?) "
                "ON CONFLICT(id) DO UPDATE SET tenant_id = excluded.tenant_id, "
                "full_name = excluded.full_name",
                (profile.user_id, profile.tenant_id, profile.full_name),
            )
            connection.commit()

    def add_provider(self, provider: ProviderConfig) -> None:
        with self._connect() as connection:
            connection.execute(
                f"INSERT INTO ai_grc_providers ({PROVIDER_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    provider.id,
                    provider.tenant_id,
                    provider.name,
                    provider.provider_type,
                    provider.endpoint_url,
                    provider.model_name,
                    provider.api_key,
                    provider.temperature,
                    provider.max_tokens,
                    1 if provider.is_active else 0,
                    provider.priority,
                ),
            )
            connection.commit()
        logger.info(
            "provider_added",
            extra={"provider_id": provider.id, "provider_type": provider.provider_type},
        )

    def add_template(self, template: PromptTemplate) -> None:
        with self._connect() as connection:
            connection.execute(
                "INSERT INTO ai_grc_prompt_templates "
                "(id, name, template_content, version, category, is_active) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    template.id,
                    template.name,
                    template.content,
                    template.version,
                    template.category,
                    1 if template.is_active else 0,
                ),
            )
            connection.commit()

    def list_usage(
        self, tenant_id: str | None = None, limit: int | None = None
    ) -> list[UsageRecord]:
        sql = "SELECT * FROM ai_usage_logs"
        params: list[Any] = []
        if tenant_id is not None:
            sql += " WHERE tenant_id = ?"
            params.append(tenant_id)
        sql += " ORDER BY rowid ASC"
        if limit is not None and limit > 0:
            sql += " LIMIT ?"
            params.append(limit)
        with self._reading() as connection:
            rows = connection.execute(sql, tuple(params)).fetchall()
        return [
            UsageRecord(
                id=row["id"],
                created_at=row["created_at"],
                user_id=row["user_id"],
                tenant_id=row["tenant_id"],
                provider_id=row["provider_id"],
                module_name=row["module_name"],
                operation_type=row["operation_type"],
                status=row["status"],
                error_message=row["error_message"],
                prompt_text=row["prompt_text"],
                response_text=row["response_text"],
                tokens_input=row["tokens_input"],
                tokens_output=row["tokens_output"],
                total_tokens=row["total_tokens"],
                response_time_ms=row["response_time_ms"],
            )
            for row in rows
        ]

