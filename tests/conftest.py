import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from grc_ai.config.settings import clear_settings_cache, get_settings
from grc_ai.identity.resolver import issue_token
from grc_ai.main import create_app
from grc_ai.storage.base import Profile, ProviderConfig
from grc_ai.storage.sqlite import SQLiteStore

GLM_ENDPOINT = "https://glm.example.test/api/paas/v4/chat/completions"


def glm_reply(content: str = "GLM answer", usage: dict[str, Any] | None = None) -> dict[str, Any]:
    return {
        "id": "chatcmpl-1",
        "choices": [{"index": 0, "message": {"role": "assistant", "content": content}}],
        "usage": usage
        if usage is not None
        else {"prompt_tokens": 12, "completion_tokens": 30, "total_tokens": 42},
    }


def gemini_reply(text: str = "Gemini answer") -> dict[str, Any]:
    return {
        "candidates": [{"content": {"parts": [{"text": text}], "role": "model"}}],
        "usageMetadata": {
            "promptTokenCount": 9,
            "candidatesTokenCount": 21,
            "totalTokenCount": 30,
        },
    }


class FakeUpstream:
    """Programmable upstream keyed by host; records every request it receives."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, Callable[[httpx.Request], httpx.Response]] = {
            "glm.example.test": lambda request: httpx.Response(200, json=glm_reply()),
            "gemini.example.test": lambda request: httpx.Response(200, json=gemini_reply()),
        }

    def reply(self, host: str, status_code: int = 200, **kwargs: Any) -> None:
        self.routes[host] = lambda request: httpx.Response(status_code, **kwargs)

    def fail(self, host: str, exc: Exception) -> None:
        def _raise(request: httpx.Request) -> httpx.Response:
            raise exc

        self.routes[host] = _raise

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(request.url.host)
        if route is None:
            return httpx.Response(404, text="no route")
        return route(request)

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def last_json(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


@pytest.fixture
def store(tmp_path: Path) -> SQLiteStore:
    return SQLiteStore(path=tmp_path / "grc.db")


@pytest.fixture
def upstream() -> FakeUpstream:
    return FakeUpstream()


@pytest.fixture
def make_provider() -> Callable[..., ProviderConfig]:
    counter = {"value": 0}

    def _make(**overrides: Any) -> ProviderConfig:
        counter["value"] += 1
        values: dict[str, Any] = {
            "id": f"provider-{counter['value']}",
            "tenant_id": "tenant-a",
            "provider_type": "glm",
            "endpoint_url": GLM_ENDPOINT,
            "model_name": "glm-4-plus",
            "api_key": "glm-secret",
            "temperature": 0.3,
            "max_tokens": 1024,
            "is_active": True,
            "priority": 1,
        }
        values.update(overrides)
        return ProviderConfig(**values)

    return _make


@pytest.fixture
def settings_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("GRC_JWT_SECRET", "test-secret")
    monkeypatch.setenv("GRC_STORE_SQLITE_PATH", str(tmp_path / "unused.db"))
    monkeypatch.delenv("GRC_STRICT_STATUS_CODES", raising=False)
    monkeypatch.delenv("GRC_PROVIDER_GLOBAL_TYPE_FILTER", raising=False)
    clear_settings_cache()


@pytest.fixture
def client(settings_env: None, store: SQLiteStore, upstream: FakeUpstream) -> TestClient:
    app = create_app(store=store, transport=upstream.transport())
    return TestClient(app)


@pytest.fixture
def auth_headers(settings_env: None, store: SQLiteStore) -> dict[str, str]:
    store.upsert_profile(Profile(user_id="user-1", tenant_id="tenant-a", full_name="Ana"))
    token = issue_token(get_settings(), "user-1")
    return {"Authorization": f"Bearer {token}"}
