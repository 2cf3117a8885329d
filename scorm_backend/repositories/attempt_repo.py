"""Repository layer for SCORM attempt persistence."""
from __future__ import annotations
from typing import Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select

from scorm_backend.models.persisted_scorm import AttemptRecord


class AttemptRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    def _key(
        self, learner_id: str, tenant_id: str, content_object_id: int
    ) -> tuple:
        return (
            AttemptRecord.learner_id == learner_id,
            AttemptRecord.tenant_id == tenant_id,
            AttemptRecord.content_object_id == content_object_id,
        )

    # CREATE -----------------------------------------------------------------
    async def add(self, attempt: AttemptRecord) -> AttemptRecord:
        self.session.add(attempt)
        await self.session.commit()
        return attempt

    # READ -------------------------------------------------------------------
    async def get(
        self,
        learner_id: str,
        tenant_id: str,
        content_object_id: int,
        attempt_number: int,
    ) -> Optional[AttemptRecord]:
        # populate_existing: always reflect the latest committed row, even if
        # this session already holds the object from an earlier read.
        result = await self.session.execute(
            select(AttemptRecord)
            .where(
                *self._key(learner_id, tenant_id, content_object_id),
                AttemptRecord.attempt_number == attempt_number,
            )
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def latest(
        self, learner_id: str, tenant_id: str, content_object_id: int
    ) -> Optional[AttemptRecord]:
        result = await self.session.execute(
            select(AttemptRecord)
            .where(*self._key(learner_id, tenant_id, content_object_id))
            .order_by(AttemptRecord.attempt_number.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def max_attempt_number(
        self, learner_id: str, tenant_id: str, content_object_id: int
    ) -> int:
        result = await self.session.execute(
            select(func.max(AttemptRecord.attempt_number)).where(
                *self._key(learner_id, tenant_id, content_object_id)
            )
        )
        return int(result.scalar_one() or 0)

    async def list_for_learner(
        self, learner_id: str, tenant_id: str, content_object_id: int
    ) -> Sequence[AttemptRecord]:
        result = await self.session.execute(
            select(AttemptRecord)
            .where(*self._key(learner_id, tenant_id, content_object_id))
            .order_by(AttemptRecord.attempt_number.asc())
        )
        return result.scalars().all()

    async def list_for_content_object(
        self, content_object_id: int, tenant_id: str
    ) -> Sequence[AttemptRecord]:
        result = await self.session.execute(
            select(AttemptRecord)
            .where(
                AttemptRecord.content_object_id == content_object_id,
                AttemptRecord.tenant_id == tenant_id,
            )
            .order_by(
                AttemptRecord.learner_id.asc(),
                AttemptRecord.attempt_number.asc(),
            )
        )
        return result.scalars().all()

    # UPDATE -----------------------------------------------------------------
    async def save(self, attempt: AttemptRecord) -> AttemptRecord:
        self.session.add(attempt)
        await self.session.commit()
        return attempt
