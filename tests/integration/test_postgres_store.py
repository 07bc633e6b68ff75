from __future__ import annotations

import os
from uuid import uuid4

import pytest

from grc_ai.providers.resolution import ProviderResolver
from grc_ai.storage.base import Profile, PromptTemplate, ProviderConfig, UsageRecord
from grc_ai.storage.postgres import PostgresStore


def _dsn() -> str:
    return os.getenv("GRC_TEST_POSTGRES_DSN", "")


@pytest.fixture
def pg_store() -> PostgresStore:
    dsn = _dsn()
    if not dsn:
        pytest.skip("GRC_TEST_POSTGRES_DSN is not set")
    import psycopg

    store = PostgresStore(dsn=dsn)
    store.ensure_schema()
    with psycopg.connect(dsn) as conn:
        with conn.cursor() as cursor:
            cursor.execute(
                "TRUNCATE TABLE profiles, ai_grc_providers, ai_grc_prompt_templates, ai_usage_logs"
            )
        conn.commit()
    return store


def _provider(tenant_id: str | None, priority: int, provider_type: str = "glm") -> ProviderConfig:
    return ProviderConfig(
        id=str(uuid4()),
        tenant_id=tenant_id,
        provider_type=provider_type,
        endpoint_url="https://glm.example.test/chat",
        model_name="glm-4",
        api_key="k",
        temperature=0.2,
        max_tokens=800,
        priority=priority,
    )


def test_postgres_store_resolves_and_logs(pg_store: PostgresStore) -> None:
    pg_store.upsert_profile(Profile(user_id="user-1", tenant_id="tenant-a"))
    global_row = _provider(None, 1, provider_type="gemini")
    local_row = _provider("tenant-a", 2)
    pg_store.add_provider(global_row)
    pg_store.add_provider(local_row)
    pg_store.add_template(PromptTemplate(id=str(uuid4()), name="alex_risk_analysis", content="R"))

    profile = pg_store.get_profile("user-1")
    assert profile is not None and profile.tenant_id == "tenant-a"
    assert ProviderResolver(pg_store).resolve("tenant-a").config.id == local_row.id
    assert ProviderResolver(pg_store).resolve("tenant-b").config.id == global_row.id
    assert pg_store.count_visible_providers("tenant-a") == 2

    template = pg_store.get_active_template("alex_risk_analysis")
    assert template is not None and template.content == "R"

    pg_store.insert_usage(
        UsageRecord(
            user_id="user-1",
            tenant_id="tenant-a",
            provider_id=local_row.id,
            prompt_text="hello",
            response_text="hi",
            total_tokens=5,
        )
    )
    [row] = pg_store.list_usage(tenant_id="tenant-a")
    assert row.total_tokens == 5
    assert pg_store.ping() is True
