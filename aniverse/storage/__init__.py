# aniverse/storage/__init__.py
from aniverse.storage.base import Storage


def build_storage(settings) -> Storage:
    """Create the backend named by STORAGE_BACKEND."""
    backend = settings.STORAGE_BACKEND.lower()
    if backend == "memory":
        from aniverse.storage.memory import MemoryStorage
        return MemoryStorage()
    if backend == "database":
        from aniverse.storage.database import DatabaseStorage
        return DatabaseStorage(settings.DATABASE_URL, create_tables=settings.ENV != "prod")
    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")
