"""
Runtime configuration for the SCORM backend
Environment-based settings for ingestion limits, storage and launch signing
"""

import os
from dataclasses import dataclass
from enum import Enum
from functools import lru_cache


class Environment(Enum):
    DEVELOPMENT = "development"
    TEST = "test"
    QA = "qa"
    STAGING = "staging"
    PRODUCTION = "production"


DEFAULT_LAUNCH_SECRET = "dev-only-scorm-launch-secret-change-me"


def _get_current_environment() -> Environment:
    """Get current environment from environment variable"""
    env_name = os.getenv("ENVIRONMENT", "development").lower()
    try:
        return Environment(env_name)
    except ValueError:
        return Environment.DEVELOPMENT


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


@dataclass(frozen=True)
class ScormSettings:
    environment: Environment
    storage_path: str
    max_archive_bytes: int
    max_extracted_bytes: int
    max_archive_entries: int
    ingest_timeout_seconds: float
    suspend_data_max_bytes: int
    launch_secret: str
    launch_ttl_seconds: int
    api_prefix: str = "/api/v1"

    @classmethod
    def from_env(cls) -> "ScormSettings":
        """Build settings from ``SCORM_*`` environment variables."""
        environment = _get_current_environment()
        secret = os.getenv("SCORM_LAUNCH_SECRET", DEFAULT_LAUNCH_SECRET)
        if (
            environment == Environment.PRODUCTION
            and secret == DEFAULT_LAUNCH_SECRET
        ):
            raise ValueError(
                "SCORM_LAUNCH_SECRET must be set in production"
            )
        return cls(
            environment=environment,
            storage_path=os.getenv("SCORM_STORAGE_PATH", "scorm_storage"),
            max_archive_bytes=_int_env(
                "SCORM_MAX_ARCHIVE_BYTES", 200 * 1024 * 1024
            ),
            max_extracted_bytes=_int_env(
                "SCORM_MAX_EXTRACTED_BYTES", 1024 * 1024 * 1024
            ),
            max_archive_entries=_int_env("SCORM_MAX_ARCHIVE_ENTRIES", 10000),
            ingest_timeout_seconds=float(
                _int_env("SCORM_INGEST_TIMEOUT_SECONDS", 120)
            ),
            suspend_data_max_bytes=_int_env(
                "SCORM_SUSPEND_DATA_MAX_BYTES", 64000
            ),
            launch_secret=secret,
            launch_ttl_seconds=_int_env("SCORM_LAUNCH_TTL_SECONDS", 4 * 3600),
        )


@lru_cache
def get_settings() -> ScormSettings:
    """Return process-wide settings (call ``cache_clear`` after env changes)."""
    return ScormSettings.from_env()
