"""Gemini ``generateContent`` adapter."""

from __future__ import annotations

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


class GeminiAdapter:
    """Sends one combined text block and authenticates with the ``key`` query parameter."""

    provider_type = ProviderType.GEMINI

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

        candidates_raw = result.get("candidates")
        candidates = candidates_raw if isinstance(candidates_raw, list) else []
        if not candidates:
            raise EmptyResponseError(self.provider_type.value)

        first = candidates[0] if isinstance(candidates[0], dict) else {}
        content = first.get("content")
        parts_raw = content.get("parts") if isinstance(content, dict) else None
        parts = parts_raw if isinstance(parts_raw, list) else []
        texts = [
            part["text"]
            for part in parts
            if isinstance(part, dict) and isinstance(part.get("text"), str)
        ]
        if not texts:
            raise EmptyResponseError(self.provider_type.value)

        usage_raw = result.get("usageMetadata")
        usage_bag = usage_raw if isinstance(usage_raw, dict) else {}
        return AdapterResult(
            response_text="".join(texts),
            usage=normalize_usage(usage_bag),
            raw_usage=usage_bag,
        )

    def build_body(self, config: ProviderConfig, prompt: AssembledPrompt) -> dict[str, object]:
        params = generation_params(config, self._default_temperature, self._default_max_tokens)
        return {
            "contents": [{"parts": [{"text": self._combined_text(prompt)}]}],
            "generationConfig": {
                "temperature": params.temperature,
                "maxOutputTokens": params.max_tokens,
            },
        }

    @staticmethod
    def _combined_text(prompt: AssembledPrompt) -> str:
        sections = [prompt.system_prompt]
        context_text = context_block(prompt.context)
        if context_text:
            sections.append(f"Additional context:\n{context_text}")
        sections.append(f"User request:\n{prompt.user_prompt}")
        return "\n\n".join(sections)

    async def _post(self, config: ProviderConfig, body: dict[str, object]) -> dict[str, object]:
        return await post_json(
            url=config.endpoint_url,
            body=body,
            headers={"Content-Type": "application/json"},
            params={"key": config.api_key},
            timeout_s=self._timeout,
            transport=self._transport,
        )
