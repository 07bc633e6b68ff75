import asyncio
import json

import httpx
import pytest

from grc_ai.core.errors import EmptyResponseError
from grc_ai.prompts.assembly import AssembledPrompt
from grc_ai.providers.base import ProviderError
from grc_ai.providers.glm import GLMAdapter
from grc_ai.storage.base import ProviderConfig

CONFIG = ProviderConfig(
    id="p-glm",
    tenant_id="tenant-a",
    provider_type="glm",
    endpoint_url="https://glm.example.test/api/paas/v4/chat/completions",
    model_name="glm-4-plus",
    api_key="glm-secret",
    temperature=0.3,
    max_tokens=1024,
)


def _prompt(context: dict | None = None) -> AssembledPrompt:
    return AssembledPrompt(
        system_prompt="You are ALEX.",
        user_prompt="Summarize our top risks",
        context=context,
        prompt_type="risk",
        source="template",
    )


def _adapter(handler) -> tuple[GLMAdapter, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def _handle(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    return GLMAdapter(transport=httpx.MockTransport(_handle)), seen


def test_glm_body_has_system_then_user_messages() -> None:
    body = GLMAdapter().build_body(CONFIG, _prompt())
    assert body["model"] == "glm-4-plus"
    assert body["temperature"] == 0.3
    assert body["max_tokens"] == 1024
    assert body["messages"] == [
        {"role": "system", "content": "You are ALEX."},
        {"role": "user", "content": "Summarize our top risks"},
    ]


def test_glm_body_adds_context_as_second_system_message() -> None:
    body = GLMAdapter().build_body(CONFIG, _prompt(context={"module": "risks", "count": 3}))
    messages = body["messages"]
    assert [m["role"] for m in messages] == ["system", "system", "user"]
    assert messages[1]["content"].startswith("Additional context:\n")
    assert '"module": "risks"' in messages[1]["content"]


def test_glm_invoke_parses_choice_and_usage() -> None:
    adapter, seen = _adapter(
        lambda request: httpx.Response(
            200,
            json={
                "choices": [{"message": {"role": "assistant", "content": "Top risks: ..."}}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 30, "total_tokens": 42},
            },
        )
    )
    result = asyncio.run(adapter.invoke(CONFIG, _prompt()))

    assert result.response_text == "Top risks: ..."
    assert result.usage == {"prompt_tokens": 12, "completion_tokens": 30, "total_tokens": 42}
    assert len(seen) == 1
    assert seen[0].headers["Authorization"] == "Bearer glm-secret"
    assert str(seen[0].url) == CONFIG.endpoint_url
    assert json.loads(seen[0].content)["model"] == "glm-4-plus"


def test_glm_invoke_without_choices_is_empty_response() -> None:
    adapter, _ = _adapter(lambda request: httpx.Response(200, json={"choices": []}))
    with pytest.raises(EmptyResponseError, match="Empty response from glm provider"):
        asyncio.run(adapter.invoke(CONFIG, _prompt()))


def test_glm_invoke_maps_upstream_500_to_provider_error() -> None:
    adapter, _ = _adapter(lambda request: httpx.Response(500, text="boom"))
    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(adapter.invoke(CONFIG, _prompt()))
    assert exc_info.value.code == "provider_error"
    assert exc_info.value.upstream_status == 500
    assert "500" in exc_info.value.message
    assert "boom" in exc_info.value.message


def test_glm_invoke_maps_429_to_rate_limited() -> None:
    adapter, _ = _adapter(lambda request: httpx.Response(429, text="slow down"))
    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(adapter.invoke(CONFIG, _prompt()))
    assert exc_info.value.code == "provider_rate_limited"
    assert exc_info.value.error_type == "rate_limit"


def test_glm_invoke_maps_timeout() -> None:
    def _timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    adapter, _ = _adapter(_timeout)
    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(adapter.invoke(CONFIG, _prompt()))
    assert exc_info.value.code == "provider_timeout"
    assert exc_info.value.status_code == 504


def test_glm_invoke_maps_connection_failure() -> None:
    def _refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    adapter, _ = _adapter(_refuse)
    with pytest.raises(ProviderError) as exc_info:
        asyncio.run(adapter.invoke(CONFIG, _prompt()))
    assert exc_info.value.code == "provider_connection_error"


def test_glm_invoke_rejects_non_json_body() -> None:
    adapter, _ = _adapter(lambda request: httpx.Response(200, text="<html>"))
    with pytest.raises(ProviderError, match="non-JSON"):
        asyncio.run(adapter.invoke(CONFIG, _prompt()))


def test_glm_invoke_with_fake_post() -> None:
    adapter = GLMAdapter()

    async def fake_post(config: ProviderConfig, body: dict[str, object]) -> dict[str, object]:
        return {"choices": [{"message": {"content": "ok"}}]}

    adapter._post = fake_post  # type: ignore[method-assign]
    result = asyncio.run(adapter.invoke(CONFIG, _prompt()))
    assert result.response_text == "ok"
    assert result.usage == {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}


def test_glm_repeated_invocations_return_identical_results() -> None:
    fixture = {
        "choices": [{"message": {"role": "assistant", "content": "Same answer"}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 30},
    }
    adapter, seen = _adapter(lambda request: httpx.Response(200, json=fixture))

    first = asyncio.run(adapter.invoke(CONFIG, _prompt(context={"module": "risks"})))
    second = asyncio.run(adapter.invoke(CONFIG, _prompt(context={"module": "risks"})))

    assert first == second
    assert first.usage == {"prompt_tokens": 12, "completion_tokens": 30, "total_tokens": 42}
    assert seen[0].content == seen[1].content


def test_glm_non_finite_usage_does_not_fail_the_call() -> None:
    adapter, _ = _adapter(
        lambda request: httpx.Response(
            200,
            content=b'{"choices":[{"message":{"content":"ok"}}],"usage":{"prompt_tokens":NaN}}',
            headers={"content-type": "application/json"},
        )
    )
    result = asyncio.run(adapter.invoke(CONFIG, _prompt()))
    assert result.response_text == "ok"
    assert result.usage == {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
