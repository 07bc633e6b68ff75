from functools import lru_cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GRC_", case_sensitive=False)

    env: str = "dev"
    log_level: str = "INFO"

    # Persistence collaborator
    store_backend: str = "sqlite"
    store_sqlite_path: Path = Path("artifacts/store/grc_ai.db")
    store_postgres_dsn: str | None = None

    # Caller identity
    jwt_secret: str = Field(default="dev-jwt-secret", description="HS256 secret for caller tokens")
    jwt_audience: str = "authenticated"

    # Provider resolution and invocation
    provider_primary_type: str = "glm"
    provider_global_type_filter: bool = False
    provider_timeout_s: float = 45.0
    default_temperature: float = 0.7
    default_max_tokens: int = 2000

    strict_status_codes: bool = False
    usage_logging_enabled: bool = True
    metrics_enabled: bool = True
    contracts_dir: Path = Path(__file__).resolve().parents[1] / "contracts"

    @property
    def store_backend_normalized(self) -> str:
        return self.store_backend.strip().lower()

    @property
    def provider_primary_type_normalized(self) -> str:
        return self.provider_primary_type.strip().lower()

    @property
    def jwt_audience_or_none(self) -> str | None:
        audience = self.jwt_audience.strip()
        return audience or None


@lru_cache
def get_settings() -> Settings:
    return Settings()


def clear_settings_cache() -> None:
    get_settings.cache_clear()
