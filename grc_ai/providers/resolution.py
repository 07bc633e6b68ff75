"""Two-tier provider selection: tenant-private first, global fallback second."""

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Literal

from grc_ai.core.errors import NoActiveProviderError
from grc_ai.storage.base import ProviderConfig, Store

logger = logging.getLogger("grc.providers")

ProviderSource = Literal["local", "global"]


@dataclass(frozen=True)
class ResolvedProvider:
    config: ProviderConfig
    source: ProviderSource


class ProviderResolver:
    """Select exactly one provider configuration for a request.

    The local tier is filtered to ``primary_type``. The global tier is not
    type-filtered unless ``type_filter`` is given, so a global row of an
    unknown type is still selected and rejected later at dispatch.
    """

    def __init__(
        self,
        store: Store,
        primary_type: str = "glm",
        type_filter: Callable[[str], bool] | None = None,
    ):
        self._store = store
        self._primary_type = primary_type
        self._type_filter = type_filter

    def resolve(self, tenant_id: str) -> ResolvedProvider:
        local = self._store.find_tenant_provider(tenant_id, self._primary_type)
        if local is not None:
            logger.info(
                "provider_resolved",
                extra={
                    "tenant_id": tenant_id,
                    "provider_id": local.id,
                    "provider_type": local.provider_type,
                    "provider_source": "local",
                },
            )
            return ResolvedProvider(config=local, source="local")

        candidates = self.global_candidates(self._store.list_global_providers())
        if candidates:
            selected = candidates[0]
            logger.info(
                "provider_resolved",
                extra={
                    "tenant_id": tenant_id,
                    "provider_id": selected.id,
                    "provider_type": selected.provider_type,
                    "provider_source": "global",
                },
            )
            return ResolvedProvider(config=selected, source="global")

        visible = self._store.count_visible_providers(tenant_id)
        logger.warning(
            "provider_resolution_failed",
            extra={"tenant_id": tenant_id, "error_code": "no_active_provider"},
        )
        raise NoActiveProviderError(tenant_id=tenant_id, visible_count=visible)

    def global_candidates(self, rows: list[ProviderConfig]) -> list[ProviderConfig]:
        # Rows are re-checked here so a store that only returns "visible" rows still works.
        candidates = [row for row in rows if row.tenant_id is None and row.is_active]
        if self._type_filter is not None:
            candidates = [row for row in candidates if self._type_filter(row.provider_type)]
        return sorted(candidates, key=lambda row: row.priority)
