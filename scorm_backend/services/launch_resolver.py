"""
Launch resolution

Builds the configuration a player needs to start a content object: a signed,
package-scoped content root, the entry URL beneath it, and the attempt number
the session should commit against.
"""

import logging
from datetime import datetime
from typing import Optional, Tuple
from urllib.parse import quote

from sqlalchemy.ext.asyncio import AsyncSession

from scorm_backend.config import ScormSettings, get_settings
from scorm_backend.dependencies import CallerIdentity, ensure_tenant_access
from scorm_backend.models.persisted_scorm import AttemptRecord
from scorm_backend.models.scorm import TERMINAL_STATUSES, AttemptStatus
from scorm_backend.repositories.attempt_repo import AttemptRepository
from scorm_backend.repositories.package_repo import PackageRepository
from scorm_backend.services.exceptions import (
    ContentMissing,
    ContentObjectNotFound,
)
from scorm_backend.storage.base import AbstractStorage
from scorm_backend.utils.launch_tokens import create_launch_token

logger = logging.getLogger(__name__)


class LaunchResolver:
    def __init__(
        self,
        session: AsyncSession,
        storage: AbstractStorage,
        settings: Optional[ScormSettings] = None,
    ):
        self.storage = storage
        self.settings = settings or get_settings()
        self.packages = PackageRepository(session)
        self.attempts = AttemptRepository(session)

    async def next_attempt(
        self, learner_id: str, tenant_id: str, content_object_id: int
    ) -> Tuple[int, Optional[AttemptRecord]]:
        """Attempt number a new session should use.

        The latest attempt is resumed while it is non-terminal; otherwise a
        fresh number (max + 1) is handed out. Returns the resumed attempt, if
        any, alongside the number.
        """
        latest = await self.attempts.latest(
            learner_id, tenant_id, content_object_id
        )
        if latest is None:
            return 1, None
        if AttemptStatus(latest.status) not in TERMINAL_STATUSES:
            return latest.attempt_number, latest
        return latest.attempt_number + 1, None

    async def resolve(
        self, content_object_id: int, caller: CallerIdentity
    ) -> dict:
        content_object = await self.packages.get_content_object(
            content_object_id
        )
        package = content_object.package
        ensure_tenant_access(
            caller, package.tenant_id, f"content object {content_object_id}"
        )
        if not package.is_active:
            raise ContentObjectNotFound(
                f"Content object {content_object_id} belongs to a deleted "
                "package"
            )

        attempt_number, resumed = await self.next_attempt(
            caller.user_id, caller.tenant_id, content_object.id
        )

        entry_key = f"{package.storage_root}/{content_object.entry_path}"
        if not await self.storage.exists(entry_key):
            logger.error(
                "Entry file missing for content object %s: %s",
                content_object.id,
                entry_key,
            )
            raise ContentMissing(
                f"Entry file {content_object.entry_path} is missing from "
                "storage",
                details={"entryPath": content_object.entry_path},
            )

        token, expires_at = create_launch_token(
            package.id, package.tenant_id, caller.user_id, self.settings
        )
        content_root = f"{self.settings.api_prefix}/scorm/content/{token}/"
        entry_url = content_root + quote(content_object.entry_path)
        if content_object.launch_parameters:
            entry_url += "?" + content_object.launch_parameters

        return {
            "entryUrl": entry_url,
            "contentRoot": content_root,
            "attemptNumber": attempt_number,
            "packageId": package.id,
            "contentObjectId": content_object.id,
            "title": content_object.title,
            "schemaVersion": package.schema_version,
            "masteryScore": content_object.mastery_score,
            "expiresAt": _naive_iso(expires_at),
            "resume": _resume_state(resumed),
        }


def _resume_state(attempt: Optional[AttemptRecord]) -> Optional[dict]:
    if attempt is None:
        return None
    return {
        "status": attempt.status,
        "lessonLocation": attempt.lesson_location,
        "suspendData": attempt.suspend_data,
        "totalTimeSeconds": attempt.total_time_seconds,
    }


def _naive_iso(value: datetime) -> str:
    return value.replace(tzinfo=None).isoformat()
