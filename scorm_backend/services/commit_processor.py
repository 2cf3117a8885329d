"""
Runtime commit processing

Merges partial runtime state posted by a running content object into its
attempt record. Commits for the same (learner, tenant, content object,
attempt) are serialized by an in-process keyed lock; each commit is its own
unit of work, so a failed commit never undoes earlier accepted ones.

Status only moves up the priority order
``not_attempted < incomplete < browsed < failed < completed < passed`` with a
single exception: a failed attempt may go back to ``incomplete`` while the
learner retries within the same attempt.
"""

import logging
from typing import Optional, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from scorm_backend.config import ScormSettings, get_settings
from scorm_backend.models.persisted_scorm import (
    AttemptRecord,
    ContentObjectRecord,
    utcnow,
)
from scorm_backend.models.scorm import (
    STATUS_RANK,
    TERMINAL_STATUSES,
    AttemptStatus,
    CommitPayload,
)
from scorm_backend.repositories.attempt_repo import AttemptRepository
from scorm_backend.repositories.package_repo import PackageRepository
from scorm_backend.services.exceptions import (
    AccessDenied,
    AttemptNotFound,
    SuspendDataTooLarge,
)
from scorm_backend.services.progress import (
    LessonContext,
    ProgressNotifier,
    TerminalOutcome,
)
from scorm_backend.utils.keyed_lock import KeyedLock

logger = logging.getLogger(__name__)

# Shared by every processor in this process.
attempt_locks = KeyedLock()

# Accepted commit fingerprints remembered per attempt. A client replaying a
# buffered commit after newer ones were accepted is still recognised.
RECENT_DIGEST_LIMIT = 32


def merge_status(
    stored: AttemptStatus, reported: Optional[AttemptStatus]
) -> AttemptStatus:
    """Status after applying ``reported`` on top of ``stored``."""
    if reported is None:
        return stored
    if STATUS_RANK[reported] >= STATUS_RANK[stored]:
        return reported
    if stored == AttemptStatus.FAILED and reported == AttemptStatus.INCOMPLETE:
        return reported
    return stored


def lesson_context(content_object: ContentObjectRecord) -> LessonContext:
    package = content_object.package
    return LessonContext(
        tenant_id=package.tenant_id,
        course_id=package.course_id,
        package_id=package.id,
        content_object_id=content_object.id,
        content_object_identifier=content_object.identifier,
    )


class CommitProcessor:
    def __init__(
        self,
        session: AsyncSession,
        notifier: ProgressNotifier,
        settings: Optional[ScormSettings] = None,
        locks: Optional[KeyedLock] = None,
    ):
        self.session = session
        self.notifier = notifier
        self.settings = settings or get_settings()
        self.locks = locks or attempt_locks
        self.packages = PackageRepository(session)
        self.attempts = AttemptRepository(session)

    async def _load_content_object(
        self, content_object_id: int, tenant_id: str, cross_tenant: bool
    ) -> ContentObjectRecord:
        content_object = await self.packages.get_content_object(
            content_object_id
        )
        if content_object.package.tenant_id != tenant_id and not cross_tenant:
            logger.warning(
                "Access denied: tenant %s committing to content object %s "
                "of tenant %s",
                tenant_id,
                content_object_id,
                content_object.package.tenant_id,
            )
            raise AccessDenied(
                f"Access to content object {content_object_id} denied"
            )
        return content_object

    # Commit -----------------------------------------------------------------
    async def commit(
        self,
        learner_id: str,
        tenant_id: str,
        content_object_id: int,
        attempt_number: int,
        payload: CommitPayload,
        cross_tenant: bool = False,
    ) -> Tuple[AttemptRecord, bool]:
        """Apply one commit; return the attempt and whether it just became
        terminal for the first time.

        Raises SuspendDataTooLarge after persisting the rest of the commit
        when the suspend data is over the cap.
        """
        if attempt_number < 1:
            raise AttemptNotFound("Attempt numbers start at 1")
        content_object = await self._load_content_object(
            content_object_id, tenant_id, cross_tenant
        )
        context = lesson_context(content_object)

        key = (learner_id, tenant_id, content_object_id, attempt_number)
        async with self.locks.hold(key):
            try:
                attempt, became_terminal = await self._apply(
                    learner_id, tenant_id, content_object_id,
                    attempt_number, payload,
                )
            except IntegrityError:
                # Another worker process created the row first.
                await self.session.rollback()
                attempt, became_terminal = await self._apply(
                    learner_id, tenant_id, content_object_id,
                    attempt_number, payload,
                )

        if became_terminal:
            await self._notify(learner_id, context, attempt)

        size = self._suspend_data_size(payload)
        if size is not None and size > self.settings.suspend_data_max_bytes:
            raise SuspendDataTooLarge(
                f"Suspend data is {size} bytes, maximum is "
                f"{self.settings.suspend_data_max_bytes}",
                attempt=attempt,
                details={
                    "size": size,
                    "limit": self.settings.suspend_data_max_bytes,
                },
            )
        return attempt, became_terminal

    def _suspend_data_size(self, payload: CommitPayload) -> Optional[int]:
        if "suspend_data" not in payload.model_fields_set:
            return None
        return len((payload.suspend_data or "").encode("utf-8"))

    async def _apply(
        self,
        learner_id: str,
        tenant_id: str,
        content_object_id: int,
        attempt_number: int,
        payload: CommitPayload,
    ) -> Tuple[AttemptRecord, bool]:
        attempt = await self.attempts.get(
            learner_id, tenant_id, content_object_id, attempt_number
        )
        created = attempt is None
        if created:
            highest = await self.attempts.max_attempt_number(
                learner_id, tenant_id, content_object_id
            )
            if attempt_number > highest + 1:
                raise AttemptNotFound(
                    f"Attempt {attempt_number} has not been started; "
                    f"next attempt is {highest + 1}"
                )
            attempt = AttemptRecord(
                learner_id=learner_id,
                tenant_id=tenant_id,
                content_object_id=content_object_id,
                attempt_number=attempt_number,
                status=AttemptStatus.NOT_ATTEMPTED.value,
                total_time_seconds=0.0,
                terminal_history=[],
            )

        digest = payload.digest()
        seen = list(attempt.recent_commit_digests or [])
        if not created and digest in seen:
            logger.debug(
                "Duplicate commit for attempt %s ignored", attempt.id
            )
            return attempt, False

        changed = created

        stored = AttemptStatus(attempt.status)
        reported = payload.reported_status()
        new_status = merge_status(stored, reported)
        if reported is not None and new_status != reported:
            logger.warning(
                "Ignoring status regression %s -> %s on attempt %s/%s",
                stored.value,
                reported.value,
                content_object_id,
                attempt_number,
            )
        if new_status != stored:
            attempt.status = new_status.value
            changed = True

        if payload.has_score():
            scores = (payload.score_raw, payload.score_min, payload.score_max)
            if scores != (attempt.score_raw, attempt.score_min,
                          attempt.score_max):
                attempt.score_raw, attempt.score_min, attempt.score_max = (
                    scores
                )
                changed = True

        if payload.session_time is not None:
            if payload.session_time > 0:
                attempt.total_time_seconds = (
                    (attempt.total_time_seconds or 0.0) + payload.session_time
                )
                changed = True
            if attempt.session_time_seconds != payload.session_time:
                attempt.session_time_seconds = payload.session_time
                changed = True

        size = self._suspend_data_size(payload)
        if size is not None:
            if size > self.settings.suspend_data_max_bytes:
                logger.warning(
                    "Suspend data of %d bytes rejected for attempt %s/%s",
                    size,
                    content_object_id,
                    attempt_number,
                )
            elif payload.suspend_data != attempt.suspend_data:
                attempt.suspend_data = payload.suspend_data
                changed = True

        if (
            "lesson_location" in payload.model_fields_set
            and payload.lesson_location != attempt.lesson_location
        ):
            attempt.lesson_location = payload.lesson_location
            changed = True

        if not changed:
            return attempt, False

        now = utcnow()
        became_terminal = False
        history = list(attempt.terminal_history or [])
        if new_status in TERMINAL_STATUSES and new_status.value not in history:
            attempt.terminal_history = history + [new_status.value]
            if attempt.terminal_at is None:
                attempt.terminal_at = now
            became_terminal = True

        attempt.recent_commit_digests = (seen + [digest])[
            -RECENT_DIGEST_LIMIT:
        ]
        if attempt.first_commit_at is None:
            attempt.first_commit_at = now
        attempt.last_commit_at = now
        await self.attempts.save(attempt)

        if became_terminal:
            logger.info(
                "Attempt %s of learner %s on content object %s reached %s",
                attempt_number,
                learner_id,
                content_object_id,
                new_status.value,
            )
        return attempt, became_terminal

    async def _notify(
        self,
        learner_id: str,
        context: LessonContext,
        attempt: AttemptRecord,
    ) -> None:
        outcome = TerminalOutcome(
            status=attempt.status,
            score=attempt.score_raw,
            attempt_number=attempt.attempt_number,
        )
        try:
            await self.notifier.on_content_object_terminal(
                learner_id, context, outcome
            )
        except Exception as exc:
            logger.warning(
                "Progress notification failed for learner %s on content "
                "object %s: %s",
                learner_id,
                context.content_object_id,
                exc,
                exc_info=True,
            )

    # Retake -----------------------------------------------------------------
    async def start_new_attempt(
        self,
        learner_id: str,
        tenant_id: str,
        content_object_id: int,
        cross_tenant: bool = False,
    ) -> AttemptRecord:
        """Open attempt ``max + 1`` so the next launch starts fresh.

        An untouched ``not_attempted`` latest attempt is returned as is.
        """
        content_object = await self._load_content_object(
            content_object_id, tenant_id, cross_tenant
        )
        latest = await self.attempts.latest(
            learner_id, tenant_id, content_object.id
        )
        if (
            latest is not None
            and latest.status == AttemptStatus.NOT_ATTEMPTED.value
            and latest.first_commit_at is None
        ):
            return latest

        number = (latest.attempt_number if latest else 0) + 1
        key = (learner_id, tenant_id, content_object.id, number)
        async with self.locks.hold(key):
            existing = await self.attempts.get(
                learner_id, tenant_id, content_object.id, number
            )
            if existing is not None:
                return existing
            attempt = AttemptRecord(
                learner_id=learner_id,
                tenant_id=tenant_id,
                content_object_id=content_object.id,
                attempt_number=number,
                status=AttemptStatus.NOT_ATTEMPTED.value,
                total_time_seconds=0.0,
                terminal_history=[],
            )
            await self.attempts.add(attempt)
        logger.info(
            "Learner %s started attempt %s on content object %s",
            learner_id,
            number,
            content_object.id,
        )
        return attempt
