from typing import Any, cast

from grc_ai.storage.base import (
    Profile,
    PromptTemplate,
    ProviderConfig,
    StoreError,
    UsageLogWriteError,
    UsageRecord,
    provider_from_row,
)

try:
    import psycopg
    from psycopg.rows import dict_row
except ImportError:  # pragma: no cover - import guard
    psycopg = cast(Any, None)
    dict_row = cast(Any, None)

PROVIDER_COLUMNS = (
    "id::text AS id, tenant_id::text AS tenant_id, name, provider_type, endpoint_url, "
    "model_name, api_key, temperature, max_tokens, is_active, priority"
)

SCHEMA_DDL = """
CREATE TABLE IF NOT EXISTS profiles (
    id TEXT PRIMARY KEY,
    tenant_id TEXT,
    full_name TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS ai_grc_providers (
    id TEXT PRIMARY KEY,
    tenant_id TEXT,
    name TEXT NOT NULL DEFAULT '',
    provider_type TEXT NOT NULL,
    endpoint_url TEXT NOT NULL,
    model_name TEXT NOT NULL,
    api_key TEXT NOT NULL,
    temperature DOUBLE PRECISION,
    max_tokens INTEGER,
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    priority INTEGER NOT NULL DEFAULT 1,
    created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
    seq BIGSERIAL
);
CREATE INDEX IF NOT EXISTS idx_ai_grc_providers_tenant
    ON ai_grc_providers(tenant_id, provider_type, is_active, priority);
CREATE TABLE IF NOT EXISTS ai_grc_prompt_templates (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    template_content TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    category TEXT NOT NULL DEFAULT '',
    is_active BOOLEAN NOT NULL DEFAULT TRUE,
    seq BIGSERIAL
);
CREATE TABLE IF NOT EXISTS ai_usage_logs (
    id TEXT PRIMARY KEY,
    created_at TIMESTAMPTZ NOT NULL,
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
    response_time_ms INTEGER NOT NULL,
    seq BIGSERIAL
);
"""


class PostgresStore:
    """Store backed by the platform's Postgres tables.

    A connection is opened per call; pooling is left to the platform.
    """

    backend = "postgres"

    def __init__(self, dsn: str):
        if psycopg is None or dict_row is None:
            raise RuntimeError("psycopg is required for the postgres store backend")
        self._dsn = dsn

    def _fetch(self, sql: str, params: list[Any]) -> list[dict[str, Any]]:
        try:
            with psycopg.connect(self._dsn, row_factory=dict_row) as conn:
                with conn.cursor() as cursor:
                    cursor.execute(sql, params)
                    return list(cursor.fetchall())
        except psycopg.Error as exc:
            raise StoreError(f"postgres read failed: {exc}") from exc

    def _execute(self, sql: str, params: list[Any]) -> None:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cursor:
                cursor.execute(sql, params)
            conn.commit()

    def ensure_schema(self) -> None:
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cursor:
                cursor.execute(SCHEMA_DDL)
            conn.commit()

    def ping(self) -> bool:
        try:
            self._fetch("SELECT 1 AS ok", [])
        except StoreError:
            return False
        return True

    def get_profile(self, user_id: str) -> Profile | None:
        rows = self._fetch(
            "SELECT id::text AS id, tenant_id::text AS tenant_id, full_name "
            "FROM profiles WHERE id::text = %s",
            [user_id],
        )
        if not rows:
            return None
        row = rows[0]
        return Profile(
            user_id=str(row["id"]),
            tenant_id=row.get("tenant_id"),
            full_name=str(row.get("full_name") or ""),
        )

    def find_tenant_provider(self, tenant_id: str, provider_type: str) -> ProviderConfig | None:
        rows = self._fetch(
            f"SELECT {PROVIDER_COLUMNS} FROM ai_grc_providers "
            "WHERE tenant_id::text = %s AND lower(trim(provider_type)) = %s AND is_active "
            "ORDER BY priority ASC, seq ASC LIMIT 1",
            [tenant_id, provider_type.strip().lower()],
        )
        return provider_from_row(rows[0]) if rows else None

    def list_global_providers(self) -> list[ProviderConfig]:
        rows = self._fetch(
            f"SELECT {PROVIDER_COLUMNS} FROM ai_grc_providers "
            "WHERE tenant_id IS NULL AND is_active "
            "ORDER BY priority ASC, seq ASC",
            [],
        )
        return [provider_from_row(row) for row in rows]

    def count_visible_providers(self, tenant_id: str) -> int:
        rows = self._fetch(
            "SELECT COUNT(*) AS total FROM ai_grc_providers "
            "WHERE tenant_id::text = %s OR tenant_id IS NULL",
            [tenant_id],
        )
        return int(rows[0]["total"]) if rows else 0

    def get_active_template(self, name: str) -> PromptTemplate | None:
        rows = self._fetch(
            "SELECT id::text AS id, name, template_content, version, category, is_active "
            "FROM ai_grc_prompt_templates WHERE name = %s AND is_active "
            "ORDER BY version DESC, seq ASC LIMIT 1",
            [name],
        )
        if not rows:
            return None
        row = rows[0]
        return PromptTemplate(
            id=str(row["id"]),
            name=str(row["name"]),
            content=str(row["template_content"]),
            version=int(row["version"]),
            is_active=bool(row["is_active"]),
            category=str(row.get("category") or ""),
        )

    def insert_usage(self, record: UsageRecord) -> None:
        try:
            self._execute(
                "INSERT INTO ai_usage_logs (id, created_at, user_id, tenant_id, provider_id, "
                "module_name, operation_type, status, error_message, prompt_text, "
                "response_text, tokens_input, tokens_output, total_tokens, response_time_ms) "
                "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)",
                [
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
                ],
            )
        except psycopg.Error as exc:
            raise UsageLogWriteError(f"postgres usage insert failed: {exc}") from exc

    def upsert_profile(self, profile: Profile) -> None:
        self._execute(
            "INSERT INTO profiles (id, tenant_id, full_name) VALUES (%s, %s, %s) "
            "ON CONFLICT (id) DO UPDATE SET tenant_id = EXCLUDED.tenant_id, "
            "full_name = EXCLUDED.full_name",
            [profile.user_id, profile.tenant_id, profile.full_name],
        )

    def add_provider(self, provider: ProviderConfig) -> None:
        self._execute(
            "INSERT INTO ai_grc_providers (id, tenant_id, name, provider_type, endpoint_url, "
            "model_name, api_key, temperature, max_tokens, is_active, priority) "
            "VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)",
            [
                provider.id,
                provider.tenant_id,
                provider.name,
                provider.provider_type,
                provider.endpoint_url,
                provider.model_name,
                provider.api_key,
                provider.temperature,
                provider.max_tokens,
                provider.is_active,
                provider.priority,
            ],
        )

    def add_template(self, template: PromptTemplate) -> None:
        self._execute(
            "INSERT INTO ai_grc_prompt_templates "
            "(id, name, template_content, version, category, is_active) "
            "VALUES (%s, %s, %s, %s, %s, %s)",
            [
                template.id,
                template.name,
                template.content,
                template.version,
                template.category,
                template.is_active,
            ],
        )

    def list_usage(
        self, tenant_id: str | None = None, limit: int | None = None
    ) -> list[UsageRecord]:
        sql = (
            "SELECT id, created_at::text AS created_at, user_id, tenant_id, provider_id, "
            "module_name, operation_type, status, error_message, prompt_text, response_text, "
            "tokens_input, tokens_output, total_tokens, response_time_ms FROM ai_usage_logs"
        )
        params: list[Any] = []
        if tenant_id is not None:
            sql += " WHERE tenant_id = %s"
            params.append(tenant_id)
        sql += " ORDER BY seq ASC"
        if limit is not None and limit > 0:
            sql += " LIMIT %s"
            params.append(limit)
        return [UsageRecord(**row) for row in self._fetch(sql, params)]
