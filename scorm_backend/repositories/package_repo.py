"""Repository layer for SCORM package persistence.

Provides an abstraction over direct SQLAlchemy session usage so that routers
and services remain thin and testable. Packages and their content objects are
written once at ingestion; afterwards only the status flip of a soft delete
touches them.
"""
from __future__ import annotations
from typing import List, Optional, Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select

from scorm_backend.models.persisted_scorm import (
    ContentObjectRecord,
    PackageRecord,
    utcnow,
)
from scorm_backend.services.exceptions import (
    ContentObjectNotFound,
    PackageNotFound,
)


class PackageRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    # CREATE -----------------------------------------------------------------
    async def create(
        self,
        package: PackageRecord,
        content_objects: List[ContentObjectRecord],
    ) -> PackageRecord:
        """Persist a package and its content objects in one transaction."""
        self.session.add(package)
        self.session.add_all(content_objects)
        await self.session.commit()
        return package

    # READ -------------------------------------------------------------------
    async def get(self, pk: int) -> PackageRecord:
        result = await self.session.execute(
            select(PackageRecord).where(PackageRecord.id == pk)
        )
        record = result.scalar_one_or_none()
        if not record:
            raise PackageNotFound(f"Package {pk} not found")
        return record

    async def list_for_tenant(
        self, tenant_id: str, include_deleted: bool = False
    ) -> Sequence[PackageRecord]:
        stmt = select(PackageRecord).where(PackageRecord.tenant_id == tenant_id)
        if not include_deleted:
            stmt = stmt.where(PackageRecord.status == "active")
        stmt = stmt.order_by(
            PackageRecord.created_at.desc(), PackageRecord.id.desc()
        )
        result = await self.session.execute(stmt)
        return result.scalars().all()

    async def latest_for_course(
        self, tenant_id: str, course_id: str
    ) -> Optional[PackageRecord]:
        result = await self.session.execute(
            select(PackageRecord)
            .where(
                PackageRecord.tenant_id == tenant_id,
                PackageRecord.course_id == course_id,
                PackageRecord.status == "active",
            )
            .order_by(PackageRecord.created_at.desc(), PackageRecord.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def get_content_object(self, pk: int) -> ContentObjectRecord:
        result = await self.session.execute(
            select(ContentObjectRecord).where(ContentObjectRecord.id == pk)
        )
        record = result.unique().scalar_one_or_none()
        if not record:
            raise ContentObjectNotFound(f"Content object {pk} not found")
        return record

    async def list_content_objects(
        self, package_id: int
    ) -> Sequence[ContentObjectRecord]:
        result = await self.session.execute(
            select(ContentObjectRecord)
            .where(ContentObjectRecord.package_id == package_id)
            .order_by(ContentObjectRecord.ordinal)
        )
        return result.unique().scalars().all()

    async def count_content_objects(self, package_id: int) -> int:
        result = await self.session.execute(
            select(func.count(ContentObjectRecord.id)).where(
                ContentObjectRecord.package_id == package_id
            )
        )
        return int(result.scalar_one())

    # UPDATE -----------------------------------------------------------------
    async def mark_deleted(self, package: PackageRecord) -> PackageRecord:
        package.status = "deleted"
        package.deleted_at = utcnow()
        await self.session.commit()
        return package
