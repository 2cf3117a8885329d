"""SQLAlchemy ORM models for persisted SCORM entities.

Separate from Pydantic models in scorm.py which describe request/response
shapes and runtime commit validation. This layer manages persistence only.
"""
from __future__ import annotations
from datetime import datetime, timezone
from typing import List, Optional
from sqlalchemy.orm import (
    Mapped,
    mapped_column,
    declarative_base,
    relationship,
)
from sqlalchemy import (
    JSON,
    BigInteger,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)

Base = declarative_base()


def utcnow() -> datetime:
    """Naive UTC timestamp, matching the naive DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class PackageRecord(Base):
    __tablename__ = "scorm_packages"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True)
    course_id: Mapped[Optional[str]] = mapped_column(
        String(64), nullable=True, index=True
    )
    uploaded_by: Mapped[str] = mapped_column(String(64))
    title: Mapped[str] = mapped_column(String(255))
    identifier: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    schema_version: Mapped[str] = mapped_column(String(64))
    storage_root: Mapped[str] = mapped_column(String(512), unique=True)
    status: Mapped[str] = mapped_column(String(16), default="active")
    original_filename: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    archive_size: Mapped[int] = mapped_column(BigInteger, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    deleted_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )

    content_objects: Mapped[List["ContentObjectRecord"]] = relationship(
        back_populates="package",
        cascade="all, delete-orphan",
        lazy="selectin",
        passive_deletes=True,
        order_by="ContentObjectRecord.ordinal",
    )

    @property
    def is_active(self) -> bool:
        return self.status == "active"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenantId": self.tenant_id,
            "courseId": self.course_id,
            "uploadedBy": self.uploaded_by,
            "title": self.title,
            "identifier": self.identifier,
            "schemaVersion": self.schema_version,
            "storageRoot": self.storage_root,
            "status": self.status,
            "originalFilename": self.original_filename,
            "archiveSize": self.archive_size,
            "createdAt": _iso(self.created_at),
            "deletedAt": _iso(self.deleted_at),
        }


class ContentObjectRecord(Base):
    """A launchable SCO/asset declared by a package manifest.

    Rows are written once at ingestion and never mutated; a re-upload creates
    a new package with new content objects.
    """

    __tablename__ = "scorm_content_objects"
    __table_args__ = (
        UniqueConstraint(
            "package_id", "ordinal", name="uq_scorm_content_objects_ordinal"
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    package_id: Mapped[int] = mapped_column(
        ForeignKey("scorm_packages.id", ondelete="CASCADE"), index=True
    )
    identifier: Mapped[str] = mapped_column(String(255))
    title: Mapped[str] = mapped_column(String(255))
    ordinal: Mapped[int] = mapped_column(Integer)
    entry_path: Mapped[str] = mapped_column(String(1024))
    launch_parameters: Mapped[Optional[str]] = mapped_column(
        String(1024), nullable=True
    )
    resource_identifier: Mapped[Optional[str]] = mapped_column(
        String(255), nullable=True
    )
    scorm_type: Mapped[str] = mapped_column(String(16), default="sco")
    mastery_score: Mapped[Optional[float]] = mapped_column(
        Float, nullable=True
    )
    prerequisites: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    package: Mapped[PackageRecord] = relationship(
        back_populates="content_objects", lazy="joined"
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "packageId": self.package_id,
            "identifier": self.identifier,
            "title": self.title,
            "ordinal": self.ordinal,
            "entryPath": self.entry_path,
            "launchParameters": self.launch_parameters,
            "resourceIdentifier": self.resource_identifier,
            "scormType": self.scorm_type,
            "masteryScore": self.mastery_score,
            "prerequisites": self.prerequisites,
        }


class AttemptRecord(Base):
    """One learner's runtime timeline against one content object.

    Keyed by (learner, tenant, content object, attempt number). Not owned by
    the package so attempts survive package soft deletion.
    """

    __tablename__ = "scorm_attempts"
    __table_args__ = (
        UniqueConstraint(
            "learner_id",
            "tenant_id",
            "content_object_id",
            "attempt_number",
            name="uq_scorm_attempts_key",
        ),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    learner_id: Mapped[str] = mapped_column(String(64), index=True)
    tenant_id: Mapped[str] = mapped_column(String(64), index=True)
    content_object_id: Mapped[int] = mapped_column(
        ForeignKey("scorm_content_objects.id"), index=True
    )
    attempt_number: Mapped[int] = mapped_column(Integer)
    status: Mapped[str] = mapped_column(String(16), default="not_attempted")
    score_raw: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    score_min: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    score_max: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    total_time_seconds: Mapped[float] = mapped_column(Float, default=0.0)
    session_time_seconds: Mapped[Optional[float]] = mapped_column(
        Float, nullable=True
    )
    suspend_data: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    lesson_location: Mapped[Optional[str]] = mapped_column(
        String(1000), nullable=True
    )
    terminal_history: Mapped[list] = mapped_column(JSON, default=list)
    # newest last, bounded by commit_processor.RECENT_DIGEST_LIMIT
    recent_commit_digests: Mapped[list] = mapped_column(JSON, default=list)
    first_commit_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    last_commit_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )
    terminal_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime, nullable=True
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "learnerId": self.learner_id,
            "tenantId": self.tenant_id,
            "contentObjectId": self.content_object_id,
            "attemptNumber": self.attempt_number,
            "status": self.status,
            "scoreRaw": self.score_raw,
            "scoreMin": self.score_min,
            "scoreMax": self.score_max,
            "totalTimeSeconds": self.total_time_seconds,
            "sessionTimeSeconds": self.session_time_seconds,
            "suspendData": self.suspend_data,
            "lessonLocation": self.lesson_location,
            "firstCommitAt": _iso(self.first_commit_at),
            "lastCommitAt": _iso(self.last_commit_at),
            "terminalAt": _iso(self.terminal_at),
        }
