from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from grc_ai.prompts.assembly import AssembledPrompt
from grc_ai.storage.base import ProviderConfig


class ProviderError(Exception):
    """Transport or protocol failure talking to an upstream provider."""

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        error_type: str = "provider",
        upstream_status: int | None = None,
        body: str = "",
    ):
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.error_type = error_type
        self.upstream_status = upstream_status
        self.body = body


class ProviderType(str, Enum):
    GLM = "glm"
    GEMINI = "gemini"

    @classmethod
    def parse(cls, raw: object) -> ProviderType | None:
        if not isinstance(raw, str):
            return None
        try:
            return cls(raw.strip().lower())
        except ValueError:
            return None


@dataclass(frozen=True)
class GenerationParams:
    temperature: float
    max_tokens: int


@dataclass(frozen=True)
class AdapterResult:
    response_text: str
    usage: dict[str, int]
    raw_usage: dict[str, Any] = field(default_factory=dict)


class ChatAdapter(Protocol):
    provider_type: ProviderType

    async def invoke(self, config: ProviderConfig, prompt: AssembledPrompt) -> AdapterResult:
        """Send the assembled prompt upstream and return normalized output."""


_PROMPT_KEYS = ("prompt_tokens", "promptTokenCount", "input_tokens")
_COMPLETION_KEYS = ("completion_tokens", "candidatesTokenCount", "output_tokens")
_TOTAL_KEYS = ("total_tokens", "totalTokenCount")


def _count(value: object) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        return int(value) if math.isfinite(value) and value >= 0 else None
    if isinstance(value, str):
        try:
            parsed = int(value.strip())
        except ValueError:
            return None
        return parsed if parsed >= 0 else None
    return None


def _first_count(bag: dict[str, Any], keys: tuple[str, ...]) -> int | None:
    for key in keys:
        count = _count(bag.get(key))
        if count is not None:
            return count
    return None


def normalize_usage(raw: object) -> dict[str, int]:
    """Map either naming convention onto prompt/completion/total counts.

    Missing, negative, non-finite or non-numeric fields count as zero; the
    total falls back to the sum of the other two when the provider does not
    report one.
    """
    bag = raw if isinstance(raw, dict) else {}
    prompt_tokens = _first_count(bag, _PROMPT_KEYS) or 0
    completion_tokens = _first_count(bag, _COMPLETION_KEYS) or 0
    total_tokens = _first_count(bag, _TOTAL_KEYS)
    if total_tokens is None:
        total_tokens = prompt_tokens + completion_tokens
    return {
        "prompt_tokens": prompt_tokens,
        "completion_tokens": completion_tokens,
        "total_tokens": total_tokens,
    }


def generation_params(
    config: ProviderConfig, default_temperature: float, default_max_tokens: int
) -> GenerationParams:
    return GenerationParams(
        temperature=_coerce_float(config.temperature, default_temperature),
        max_tokens=_coerce_int(config.max_tokens, default_max_tokens),
    )


def _coerce_float(value: object, default: float) -> float:
    if isinstance(value, bool):
        return default
    if isinstance(value, int | float):
        parsed = float(value)
    elif isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return default
    else:
        return default
    return parsed if math.isfinite(parsed) else default


def _coerce_int(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value if value > 0 else default
    if isinstance(value, float):
        return int(value) if math.isfinite(value) and value > 0 else default
    if isinstance(value, str):
        try:
            parsed = int(float(value))
        except (ValueError, OverflowError):
            return default
        return parsed if parsed > 0 else default
    return default
