"""Records and the persistence protocol the dispatcher reads and writes."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import uuid4

from grc_ai.core.errors import AppError


class StoreError(AppError):
    """Raised when the backing store cannot serve a read."""

    def __init__(self, message: str):
        super().__init__(503, "store_unavailable", "store", message)


class UsageLogWriteError(Exception):
    """Raised when a usage record cannot be persisted."""


@dataclass(frozen=True)
class Profile:
    user_id: str
    tenant_id: str | None
    full_name: str = ""


@dataclass(frozen=True)
class ProviderConfig:
    id: str
    tenant_id: str | None
    provider_type: str
    endpoint_url: str
    model_name: str
    api_key: str
    temperature: Any = None
    max_tokens: Any = None
    is_active: bool = True
    priority: int = 1
    name: str = ""

    @property
    def is_global(self) -> bool:
        return self.tenant_id is None


@dataclass(frozen=True)
class PromptTemplate:
    id: str
    name: str
    content: str
    version: int = 1
    is_active: bool = True
    category: str = ""


@dataclass(frozen=True)
class UsageRecord:
    user_id: str
    tenant_id: str
    provider_id: str
    prompt_text: str
    response_text: str
    tokens_input: int = 0
    tokens_output: int = 0
    total_tokens: int = 0
    module_name: str = "general"
    operation_type: str = "chat"
    status: str = "success"
    error_message: str | None = None
    response_time_ms: int = 0
    created_at: str = field(default_factory=lambda: datetime.now(UTC).isoformat())
    id: str = field(default_factory=lambda: str(uuid4()))

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class Store(Protocol):
    backend: str

    def ensure_schema(self) -> None:
        """Create tables when they do not exist."""

    def ping(self) -> bool:
        """Return True when the store answers a trivial query."""

    def get_profile(self, user_id: str) -> Profile | None:
        """Return the caller profile, if any."""

    def find_tenant_provider(self, tenant_id: str, provider_type: str) -> ProviderConfig | None:
        """Return the preferred active provider of one type owned by the tenant.

        The type is compared case-insensitively, ignoring surrounding whitespace.
        """

    def list_global_providers(self) -> list[ProviderConfig]:
        """Return active providers without tenant scope, preferred first."""

    def count_visible_providers(self, tenant_id: str) -> int:
        """Count tenant-owned and global provider rows regardless of state."""

    def get_active_template(self, name: str) -> PromptTemplate | None:
        """Return the latest active template with this name."""

    def insert_usage(self, record: UsageRecord) -> None:
        """Append one usage record or raise UsageLogWriteError."""

    def upsert_profile(self, profile: Profile) -> None:
        """Create or replace a caller profile."""

    def add_provider(self, provider: ProviderConfig) -> None:
        """Persist a provider configuration."""

    def add_template(self, template: PromptTemplate) -> None:
        """Persist a prompt template."""

    def list_usage(
        self, tenant_id: str | None = None, limit: int | None = None
    ) -> list[UsageRecord]:
        """Load usage records in write order."""


def provider_from_row(row: Any) -> ProviderConfig:
    """Build a provider from a mapping-like database row."""
    return ProviderConfig(
        id=str(row["id"]),
        tenant_id=row["tenant_id"],
        name=row["name"] or "",
        provider_type=str(row["provider_type"]),
        endpoint_url=str(row["endpoint_url"]),
        model_name=str(row["model_name"]),
        api_key=str(row["api_key"]),
        temperature=row["temperature"],
        max_tokens=row["max_tokens"],
        is_active=bool(row["is_active"]),
        priority=int(row["priority"]),
    )
