"""
SCORM package ingestion

Validates an uploaded zip archive, extracts it into tenant-scoped storage,
parses its manifest and persists the package with its content objects.
Ingestion is all-or-nothing: on any failure no records are written and the
files already extracted are removed (best effort).
"""

import asyncio
import io
import logging
import posixpath
import re
import uuid
import zipfile
import zlib
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from scorm_backend.config import ScormSettings, get_settings
from scorm_backend.models.persisted_scorm import (
    ContentObjectRecord,
    PackageRecord,
)
from scorm_backend.repositories.package_repo import PackageRepository
from scorm_backend.services.exceptions import (
    ArchiveInvalid,
    ArchiveTooLarge,
    IngestionTimeout,
    ManifestInvalid,
    ManifestMissing,
)
from scorm_backend.services.manifest_parser import (
    ManifestDescriptor,
    parse_manifest,
)
from scorm_backend.storage.base import AbstractStorage
from scorm_backend.storage.exceptions import StorageError

logger = logging.getLogger(__name__)

MANIFEST_NAME = "imsmanifest.xml"

_DRIVE_RE = re.compile(r"^[a-zA-Z]:")
_SEGMENT_RE = re.compile(r"[^A-Za-z0-9_.-]")


@dataclass
class ArchiveMember:
    info: zipfile.ZipInfo
    path: str


def storage_segment(value: str) -> str:
    """Make an identifier safe to use as a single storage path segment."""
    cleaned = _SEGMENT_RE.sub("_", value.strip()) or "_"
    if cleaned in (".", ".."):
        cleaned = cleaned.replace(".", "_")
    return cleaned


def safe_member_path(name: str) -> str:
    """Normalize an archive member name; reject absolute or escaping paths."""
    candidate = name.replace("\\", "/")
    if candidate.startswith("/") or _DRIVE_RE.match(candidate):
        raise ArchiveInvalid(f"Archive entry has an absolute path: {name!r}")
    normalized = posixpath.normpath(candidate)
    if normalized == ".." or normalized.startswith("../"):
        raise ArchiveInvalid(
            f"Archive entry escapes the package root: {name!r}"
        )
    return normalized


class PackageIngestor:
    """Turns archive bytes into a persisted package."""

    def __init__(
        self,
        session: AsyncSession,
        storage: AbstractStorage,
        settings: Optional[ScormSettings] = None,
    ):
        self.session = session
        self.storage = storage
        self.settings = settings or get_settings()
        self.repo = PackageRepository(session)

    async def ingest(
        self,
        archive: bytes,
        tenant_id: str,
        uploaded_by: str,
        course_id: Optional[str] = None,
        filename: Optional[str] = None,
    ) -> Tuple[PackageRecord, List[ContentObjectRecord]]:
        if len(archive) > self.settings.max_archive_bytes:
            raise ArchiveTooLarge(
                f"Archive size ({len(archive)} bytes) exceeds maximum "
                f"allowed size ({self.settings.max_archive_bytes} bytes)",
                details={
                    "size": len(archive),
                    "limit": self.settings.max_archive_bytes,
                },
            )
        if not archive:
            raise ArchiveInvalid("Archive is empty")

        try:
            zf = zipfile.ZipFile(io.BytesIO(archive))
        except (zipfile.BadZipFile, zipfile.LargeZipFile) as exc:
            raise ArchiveInvalid(f"Not a readable zip archive: {exc}")

        with zf:
            members = self._inspect(zf)
            manifest_path, base_dir = self._locate_manifest(members)
            prefix = "/".join(
                ["tenants", storage_segment(tenant_id), "scorm",
                 uuid.uuid4().hex]
            )
            logger.info(
                "Ingesting package %s for tenant %s into %s (%d files)",
                filename or "<upload>",
                tenant_id,
                prefix,
                len(members),
            )
            try:
                try:
                    manifest_raw = await asyncio.wait_for(
                        self._extract(zf, members, prefix, manifest_path),
                        timeout=self.settings.ingest_timeout_seconds,
                    )
                except asyncio.TimeoutError:
                    raise IngestionTimeout(
                        "Archive extraction exceeded "
                        f"{self.settings.ingest_timeout_seconds:g}s"
                    )
                descriptor = parse_manifest(manifest_raw)
                self._verify_entry_points(descriptor, members, base_dir)
                package, content_objects = self._build_records(
                    descriptor,
                    base_dir,
                    prefix=prefix,
                    tenant_id=tenant_id,
                    uploaded_by=uploaded_by,
                    course_id=course_id,
                    filename=filename,
                    archive_size=len(archive),
                )
                await self.repo.create(package, content_objects)
            except Exception:
                await self.session.rollback()
                await self._cleanup(prefix)
                raise

        logger.info(
            "Ingested package %s (%s) with %d content objects",
            package.id,
            package.title,
            len(content_objects),
        )
        return package, content_objects

    # Validation -------------------------------------------------------------
    def _inspect(self, zf: zipfile.ZipFile) -> List[ArchiveMember]:
        """Check entry names and declared sizes before extracting anything."""
        members: List[ArchiveMember] = []
        seen: Dict[str, str] = {}
        total = 0
        for info in zf.infolist():
            if info.is_dir():
                continue
            if info.flag_bits & 0x1:
                raise ArchiveInvalid(
                    f"Encrypted archive entries are not supported: "
                    f"{info.filename!r}"
                )
            path = safe_member_path(info.filename)
            if path in seen:
                raise ArchiveInvalid(f"Duplicate archive entry: {path!r}")
            seen[path] = info.filename
            total += info.file_size
            members.append(ArchiveMember(info=info, path=path))

        if len(members) > self.settings.max_archive_entries:
            raise ArchiveTooLarge(
                f"Archive has {len(members)} files, maximum is "
                f"{self.settings.max_archive_entries}",
                details={
                    "files": len(members),
                    "limit": self.settings.max_archive_entries,
                },
            )
        if total > self.settings.max_extracted_bytes:
            raise ArchiveTooLarge(
                f"Archive expands to {total} bytes, maximum is "
                f"{self.settings.max_extracted_bytes}",
                details={
                    "extractedSize": total,
                    "limit": self.settings.max_extracted_bytes,
                },
            )
        return members

    def _locate_manifest(
        self, members: List[ArchiveMember]
    ) -> Tuple[str, str]:
        """Return (manifest path, base directory) inside the archive.

        The manifest must sit at the root, or inside the only top-level
        folder (archives zipped from the parent directory).
        """
        for member in members:
            if member.path.lower() == MANIFEST_NAME:
                return member.path, ""

        nested = [
            member
            for member in members
            if member.path.count("/") == 1
            and member.path.split("/")[1].lower() == MANIFEST_NAME
            and not member.path.startswith("__MACOSX/")
        ]
        if len(nested) == 1:
            base_dir = nested[0].path.split("/")[0]
            return nested[0].path, base_dir

        raise ManifestMissing(
            f"No {MANIFEST_NAME} found at the package root",
            details={"candidates": [m.path for m in nested]},
        )

    def _verify_entry_points(
        self,
        descriptor: ManifestDescriptor,
        members: List[ArchiveMember],
        base_dir: str,
    ) -> None:
        paths = {member.path for member in members}
        missing = [
            item.entry_path
            for item in descriptor.content_objects
            if _package_path(base_dir, item.entry_path) not in paths
        ]
        if missing:
            raise ManifestInvalid(
                "Manifest references files missing from the archive: "
                + ", ".join(missing),
                details={"missing": missing},
            )

    # Extraction -------------------------------------------------------------
    async def _extract(
        self,
        zf: zipfile.ZipFile,
        members: List[ArchiveMember],
        prefix: str,
        manifest_path: str,
    ) -> bytes:
        """Write every member under ``prefix``; return the manifest bytes."""
        manifest_raw = b""
        written = 0
        for member in members:
            try:
                data = await asyncio.to_thread(zf.read, member.info)
            except (zipfile.BadZipFile, zlib.error, EOFError) as exc:
                raise ArchiveInvalid(
                    f"Corrupt archive entry {member.path!r}: {exc}"
                )
            written += len(data)
            if written > self.settings.max_extracted_bytes:
                raise ArchiveTooLarge(
                    "Archive expands beyond "
                    f"{self.settings.max_extracted_bytes} bytes"
                )
            await self.storage.put(f"{prefix}/{member.path}", data)
            if member.path == manifest_path:
                manifest_raw = data
        return manifest_raw

    async def _cleanup(self, prefix: str) -> None:
        try:
            await self.storage.delete(prefix)
        except StorageError as exc:
            logger.warning(
                "Cleanup of %s after failed ingestion failed: %s", prefix, exc
            )

    # Records ----------------------------------------------------------------
    def _build_records(
        self,
        descriptor: ManifestDescriptor,
        base_dir: str,
        *,
        prefix: str,
        tenant_id: str,
        uploaded_by: str,
        course_id: Optional[str],
        filename: Optional[str],
        archive_size: int,
    ) -> Tuple[PackageRecord, List[ContentObjectRecord]]:
        package = PackageRecord(
            tenant_id=tenant_id,
            course_id=course_id,
            uploaded_by=uploaded_by,
            title=descriptor.title[:255],
            identifier=descriptor.identifier,
            schema_version=descriptor.schema_version,
            storage_root=prefix,
            status="active",
            original_filename=filename,
            archive_size=archive_size,
        )
        content_objects = [
            ContentObjectRecord(
                package=package,
                identifier=item.identifier,
                title=item.title[:255],
                ordinal=item.ordinal,
                entry_path=_package_path(base_dir, item.entry_path),
                launch_parameters=item.launch_parameters,
                resource_identifier=item.resource_identifier,
                scorm_type=item.scorm_type,
                mastery_score=item.mastery_score,
                prerequisites=item.prerequisites,
            )
            for item in descriptor.content_objects
        ]
        return package, content_objects


def _package_path(base_dir: str, entry_path: str) -> str:
    return f"{base_dir}/{entry_path}" if base_dir else entry_path
