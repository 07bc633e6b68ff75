"""Adapter for GLM-style chat completion endpoints (bearer auth, role messages)."""

import httpx

from grc_ai.core.errors import EmptyResponseError
from grc_ai.prompts.assembly import AssembledPrompt, context_block
from grc_ai.providers.base import (
    AdapterResult,
    ProviderType,
    generation_params,
    normalize_usage,
)
from grc_ai.providers.http import post_json
from grc_ai.storage.base import ProviderConfig


class GLMAdapter:
    """Calls an OpenAI-shaped ``chat/completions`` endpoint such as Zhipu GLM."""

    provider_type = ProviderType.GLM

    def __init__(
        self,
        timeout_s: float = 45.0,
        default_temperature: float = 0.7,
        default_max_tokens: int = 2000,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._timeout = timeout_s
        self._default_temperature = default_temperature
        self._default_max_tokens = default_max_tokens
        self._transport = transport

    async def invoke(self, config: ProviderConfig, prompt: AssembledPrompt) -> AdapterResult:
        body = self.build_body(config, prompt)
        result = await self._post(config, body)

        choices = result.get("choices")
        if not isinstance(choices, list) or not choices:
            raise EmptyResponseError(self.provider_type.value)
        first_choice = choices[0] if isinstance(choices[0], dict) else {}
        message = first_choice.get("message")
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str):
            raise EmptyResponseError(self.provider_type.value)

        raw_usage = result.get("usage")
        usage_bag = raw_usage if isinstance(raw_usage, dict) else {}
        return AdapterResult(
            response_text=content,
            usage=normalize_usage(usage_bag),
            raw_usage=usage_bag,
        )

    def build_body(self, config: ProviderConfig, prompt: AssembledPrompt) -> dict[str, object]:
        params = generation_params(config, self._default_temperature, self._default_max_tokens)
        messages: list[dict[str, str]] = [{"role": "system", "content": prompt.system_prompt}]
        context_text = context_block(prompt.context)
        if context_text:
            messages.append(
                {"role": "system", "content": f"Additional context:\n{context_text}"}
            )
        messages.append({"role": "user", "content": prompt.user_prompt})
        return {
            "model": config.model_name,
            "messages": messages,
            "temperature": params.temperature,
            "max_tokens": params.max_tokens,
        }

    async def _post(self, config: ProviderConfig, body: dict[str, object]) -> dict[str, object]:
        headers = {
            "Authorization": f"Bearer {config.api_key}",
            "Content-Type": "application/json",
        }
        return await post_json(
            url=config.endpoint_url,
            body=body,
            headers=headers,
            timeout_s=self._timeout,
            transport=self._transport,
        )

