"""Storage provider factory for creating the configured storage instance."""

from functools import lru_cache

from scorm_backend.config import get_settings
from scorm_backend.storage.base import AbstractStorage
from scorm_backend.storage.local import LocalStorage


@lru_cache
def get_storage_provider() -> AbstractStorage:
    """Get the configured storage provider instance.

    Cached so the same instance is reused for the application lifetime.
    Other providers (object stores) plug in here.
    """
    settings = get_settings()
    return LocalStorage(base_path=settings.storage_path)
