"""SCORM runtime router: launch, commits, retakes, attempt history, summary.

The commit endpoint is the hottest path in the subsystem: players autosave
partial state every few seconds and flush once more on unload.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Path, Query, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from scorm_backend.config import ScormSettings, get_settings
from scorm_backend.db.config import get_session
from scorm_backend.dependencies import (
    CallerIdentity,
    ensure_authoring_role,
    ensure_tenant_access,
    get_caller,
)
from scorm_backend.models.persisted_scorm import ContentObjectRecord
from scorm_backend.models.scorm import CommitPayload
from scorm_backend.repositories.package_repo import PackageRepository
from scorm_backend.services.attempt_aggregator import AttemptAggregator
from scorm_backend.services.commit_processor import CommitProcessor
from scorm_backend.services.exceptions import AccessDenied, AttemptNotFound
from scorm_backend.services.launch_resolver import LaunchResolver
from scorm_backend.services.progress import (
    ProgressNotifier,
    get_progress_notifier,
)
from scorm_backend.storage.base import AbstractStorage
from scorm_backend.storage.factory import get_storage_provider

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/scorm/content-objects", tags=["SCORM Runtime"]
)


class AttemptOut(BaseModel):
    id: int
    learnerId: str
    tenantId: str
    contentObjectId: int
    attemptNumber: int
    status: str
    scoreRaw: Optional[float] = None
    scoreMin: Optional[float] = None
    scoreMax: Optional[float] = None
    totalTimeSeconds: float
    sessionTimeSeconds: Optional[float] = None
    suspendData: Optional[str] = None
    lessonLocation: Optional[str] = None
    firstCommitAt: Optional[str] = None
    lastCommitAt: Optional[str] = None
    terminalAt: Optional[str] = None


class CommitOut(BaseModel):
    success: bool = True
    attempt: AttemptOut
    becameTerminal: bool


class ResumeOut(BaseModel):
    status: str
    lessonLocation: Optional[str] = None
    suspendData: Optional[str] = None
    totalTimeSeconds: float


class LaunchOut(BaseModel):
    entryUrl: str
    contentRoot: str
    attemptNumber: int
    packageId: int
    contentObjectId: int
    title: str
    schemaVersion: str
    masteryScore: Optional[float] = None
    expiresAt: str
    resume: Optional[ResumeOut] = None


class SummaryOut(BaseModel):
    contentObjectId: int
    tenantId: str
    learnersAttempted: int
    learnersTerminal: int
    meanScore: Optional[float] = None
    completionRatio: float
    learnerCompletionRatio: float
    attemptCount: int
    terminalAttemptCount: int
    minScore: Optional[float] = None
    maxScore: Optional[float] = None

# Helpers ------------------------------------------------------------------


async def _load_content_object(
    session: AsyncSession, content_object_id: int, caller: CallerIdentity
) -> ContentObjectRecord:
    content_object = await PackageRepository(session).get_content_object(
        content_object_id
    )
    ensure_tenant_access(
        caller,
        content_object.package.tenant_id,
        f"content object {content_object_id}",
    )
    return content_object


def _scope(
    caller: CallerIdentity,
    learner_id: Optional[str],
    tenant_id: Optional[str],
) -> tuple:
    """Resolve whose attempts a caller may read."""
    learner = learner_id or caller.user_id
    tenant = tenant_id or caller.tenant_id
    if learner != caller.user_id:
        ensure_authoring_role(caller, "read other learners' attempts")
    if tenant != caller.tenant_id and not caller.is_cross_tenant_operator:
        raise AccessDenied("Only cross-tenant operators may choose a tenant")
    return learner, tenant


async def _get_processor(
    session: AsyncSession = Depends(get_session),
    notifier: ProgressNotifier = Depends(get_progress_notifier),
    settings: ScormSettings = Depends(get_settings),
) -> CommitProcessor:
    return CommitProcessor(session, notifier, settings)

# Routes -------------------------------------------------------------------


@router.get("/{content_object_id}/launch", response_model=LaunchOut)
async def launch_content_object(
    content_object_id: int,
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
    storage: AbstractStorage = Depends(get_storage_provider),
    settings: ScormSettings = Depends(get_settings),
):
    resolver = LaunchResolver(session, storage, settings)
    return await resolver.resolve(content_object_id, caller)


@router.post(
    "/{content_object_id}/attempts/{attempt_number}/commit",
    response_model=CommitOut,
)
async def commit_runtime_state(
    payload: CommitPayload,
    content_object_id: int,
    attempt_number: int = Path(..., ge=1),
    caller: CallerIdentity = Depends(get_caller),
    processor: CommitProcessor = Depends(_get_processor),
) -> Dict[str, Any]:
    attempt, became_terminal = await processor.commit(
        caller.user_id,
        caller.tenant_id,
        content_object_id,
        attempt_number,
        payload,
        cross_tenant=caller.is_cross_tenant_operator,
    )
    return {
        "success": True,
        "attempt": attempt.to_dict(),
        "becameTerminal": became_terminal,
    }


@router.post(
    "/{content_object_id}/attempts",
    response_model=AttemptOut,
    status_code=status.HTTP_201_CREATED,
)
async def start_new_attempt(
    content_object_id: int,
    caller: CallerIdentity = Depends(get_caller),
    processor: CommitProcessor = Depends(_get_processor),
):
    """Retake: open a fresh attempt for the calling learner."""
    attempt = await processor.start_new_attempt(
        caller.user_id,
        caller.tenant_id,
        content_object_id,
        cross_tenant=caller.is_cross_tenant_operator,
    )
    return attempt.to_dict()


@router.get(
    "/{content_object_id}/attempts", response_model=List[AttemptOut]
)
async def list_attempts(
    content_object_id: int,
    learner_id: Optional[str] = Query(None),
    tenant_id: Optional[str] = Query(None),
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
):
    await _load_content_object(session, content_object_id, caller)
    learner, tenant = _scope(caller, learner_id, tenant_id)
    attempts = await AttemptAggregator(session).list_attempts(
        learner, tenant, content_object_id
    )
    return [a.to_dict() for a in attempts]


@router.get(
    "/{content_object_id}/attempts/best", response_model=AttemptOut
)
async def best_attempt(
    content_object_id: int,
    learner_id: Optional[str] = Query(None),
    tenant_id: Optional[str] = Query(None),
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
):
    await _load_content_object(session, content_object_id, caller)
    learner, tenant = _scope(caller, learner_id, tenant_id)
    attempt = await AttemptAggregator(session).best_attempt(
        learner, tenant, content_object_id
    )
    if attempt is None:
        raise AttemptNotFound(
            f"No terminal attempt for learner {learner} on content object "
            f"{content_object_id}"
        )
    return attempt.to_dict()


@router.get("/{content_object_id}/summary", response_model=SummaryOut)
async def attempt_summary(
    content_object_id: int,
    tenant_id: Optional[str] = Query(None),
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
):
    ensure_authoring_role(caller, "read attempt summaries")
    content_object = await _load_content_object(
        session, content_object_id, caller
    )
    tenant = content_object.package.tenant_id
    if tenant_id and tenant_id != tenant:
        _scope(caller, None, tenant_id)
        tenant = tenant_id
    return await AttemptAggregator(session).summary(content_object_id, tenant)
