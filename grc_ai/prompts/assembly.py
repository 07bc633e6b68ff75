"""System prompt selection and context serialization."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Literal

from grc_ai.storage.base import Store

logger = logging.getLogger("grc.prompts")

DEFAULT_PROMPT_TYPE = "general"

TYPE_TEMPLATE_NAMES: dict[str, str] = {
    "general": "alex_general_assistant",
    "assessment": "alex_assessment_analysis",
    "risk": "alex_risk_analysis",
    "audit": "alex_audit_support",
    "policy": "alex_policy_elaboration",
    "compliance": "alex_compliance_review",
    "privacy": "alex_privacy_lgpd",
    "incident": "alex_incident_response",
    "vendor": "alex_vendor_risk",
    "ethics": "alex_ethics_channel",
}

FALLBACK_SYSTEM_PROMPT = (
    "You are ALEX, an AI assistant specialized in governance, risk management and "
    "compliance (GRC). Answer clearly and objectively, and ground your answers in "
    "recognized frameworks and applicable regulations such as the LGPD."
)

PromptSource = Literal["override", "template", "fallback"]


@dataclass(frozen=True)
class AssembledPrompt:
    system_prompt: str
    user_prompt: str
    context: dict[str, Any] | None
    prompt_type: str
    source: PromptSource
    template_name: str | None = None


def normalize_prompt_type(type_tag: str | None) -> str:
    if not type_tag:
        return DEFAULT_PROMPT_TYPE
    normalized = type_tag.strip().lower()
    return normalized if normalized in TYPE_TEMPLATE_NAMES else DEFAULT_PROMPT_TYPE


def context_block(context: dict[str, Any] | None) -> str:
    """Serialize caller context for inclusion in the prompt material."""
    if not context:
        return ""
    return json.dumps(context, ensure_ascii=False, indent=2, default=str)


class PromptAssembler:
    def __init__(self, store: Store):
        self._store = store

    def assemble(
        self,
        prompt: str,
        type_tag: str | None = None,
        system_prompt: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> AssembledPrompt:
        prompt_type = normalize_prompt_type(type_tag)

        if system_prompt:
            return AssembledPrompt(
                system_prompt=system_prompt,
                user_prompt=prompt,
                context=context or None,
                prompt_type=prompt_type,
                source="override",
            )

        template_name = TYPE_TEMPLATE_NAMES[prompt_type]
        template = self._store.get_active_template(template_name)
        if template is None or not template.content.strip():
            logger.info(
                "prompt_template_missing",
                extra={"prompt_type": prompt_type, "prompt_source": "fallback"},
            )
            return AssembledPrompt(
                system_prompt=FALLBACK_SYSTEM_PROMPT,
                user_prompt=prompt,
                context=context or None,
                prompt_type=prompt_type,
                source="fallback",
                template_name=template_name,
            )

        return AssembledPrompt(
            system_prompt=template.content,
            user_prompt=prompt,
            context=context or None,
            prompt_type=prompt_type,
            source="template",
            template_name=template_name,
        )
