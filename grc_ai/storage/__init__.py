from grc_ai.config.settings import Settings
from grc_ai.storage.base import Store
from grc_ai.storage.postgres import PostgresStore
from grc_ai.storage.sqlite import SQLiteStore


def create_store(settings: Settings) -> Store:
    backend = settings.store_backend_normalized
    if backend == "sqlite":
        return SQLiteStore(path=settings.store_sqlite_path)
    if backend == "postgres":
        if not settings.store_postgres_dsn:
            raise RuntimeError("GRC_STORE_POSTGRES_DSN is required when backend=postgres")
        return PostgresStore(dsn=settings.store_postgres_dsn)
    raise ValueError(f"Unsupported store backend: {settings.store_backend}")


__all__ = ["PostgresStore", "SQLiteStore", "Store", "create_store"]
