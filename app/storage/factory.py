from app.core.config import Settings, settings
from app.core.exceptions import ConfigurationError
from app.storage.base import StorageAdapter
from app.storage.memory import InMemoryDocumentStore


def build_storage(config: Settings = settings) -> StorageAdapter:
    backend = config.storage_backend.strip().lower()
    if backend == "memory":
        return InMemoryDocumentStore()
    if backend == "redis":
        from app.storage.redis_store import RedisDocumentStore

        return RedisDocumentStore(redis_url=config.document_store_redis_url, prefix=config.document_store_prefix)
    if backend == "sql":
        from app.db.session import SessionLocal
        from app.storage.sql import SqlStorageAdapter

        return SqlStorageAdapter(SessionLocal)
    raise ConfigurationError(f"Unknown storage backend {config.storage_backend!r}")
