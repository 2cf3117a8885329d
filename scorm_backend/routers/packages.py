"""SCORM package router: upload, listing, inspection and soft delete.

Uploads are validated and extracted by the PackageIngestor; every failure is
raised as a ScormError and rendered by the application's error handler.
"""
from __future__ import annotations
import logging
import posixpath
from typing import Any, Dict, List, Optional

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Query,
    Request,
    UploadFile,
    status,
)
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
from scorm_backend.models.persisted_scorm import PackageRecord
from scorm_backend.repositories.package_repo import PackageRepository
from scorm_backend.services.exceptions import ArchiveTooLarge, PackageNotFound
from scorm_backend.services.package_ingestor import PackageIngestor
from scorm_backend.storage.base import AbstractStorage
from scorm_backend.storage.exceptions import StorageError
from scorm_backend.storage.factory import get_storage_provider

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scorm", tags=["SCORM Packages"])

# Multipart framing around the file part
MULTIPART_OVERHEAD = 64 * 1024
READ_CHUNK_SIZE = 1024 * 1024


class ContentObjectOut(BaseModel):
    id: int
    packageId: int
    identifier: str
    title: str
    ordinal: int
    entryPath: str
    launchParameters: Optional[str] = None
    resourceIdentifier: Optional[str] = None
    scormType: str
    masteryScore: Optional[float] = None
    prerequisites: Optional[str] = None


class PackageOut(BaseModel):
    id: int
    tenantId: str
    courseId: Optional[str] = None
    uploadedBy: str
    title: str
    identifier: Optional[str] = None
    schemaVersion: str
    storageRoot: str
    status: str
    originalFilename: Optional[str] = None
    archiveSize: int
    createdAt: Optional[str] = None
    deletedAt: Optional[str] = None


class PackageDetailOut(BaseModel):
    package: PackageOut
    contentObjects: List[ContentObjectOut]


class UploadOut(PackageDetailOut):
    success: bool = True


class CoursePackageOut(PackageOut):
    scoCount: int


class FileCheckOut(BaseModel):
    exists: bool
    size: Optional[int] = None
    path: str

# Helpers ------------------------------------------------------------------


async def _get_repo(
    session: AsyncSession = Depends(get_session),
) -> PackageRepository:
    return PackageRepository(session)


async def _load_package(
    repo: PackageRepository, package_id: int, caller: CallerIdentity
) -> PackageRecord:
    package = await repo.get(package_id)
    ensure_tenant_access(caller, package.tenant_id, f"package {package_id}")
    return package


async def _read_upload(
    request: Request, file: UploadFile, limit: int
) -> bytes:
    """Read the upload, refusing to buffer more than ``limit`` bytes."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit():
        if int(declared) > limit + MULTIPART_OVERHEAD:
            raise ArchiveTooLarge(
                f"Upload size ({declared} bytes) exceeds maximum allowed "
                f"size ({limit} bytes)",
                details={"size": int(declared), "limit": limit},
            )
    chunks = []
    total = 0
    while True:
        chunk = await file.read(READ_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > limit:
            raise ArchiveTooLarge(
                f"Archive exceeds maximum allowed size ({limit} bytes)",
                details={"limit": limit},
            )
        chunks.append(chunk)
    return b"".join(chunks)

# Routes -------------------------------------------------------------------


@router.post(
    "/packages",
    response_model=UploadOut,
    status_code=status.HTTP_201_CREATED,
    summary="Upload SCORM Package",
)
async def upload_package(
    request: Request,
    file: UploadFile = File(..., description="SCORM zip archive"),
    course_id: Optional[str] = Form(
        None, description="Course to associate with the package"
    ),
    tenant_id: Optional[str] = Form(
        None, description="Owning tenant (super_admin only)"
    ),
    caller: CallerIdentity = Depends(get_caller),
    session: AsyncSession = Depends(get_session),
    storage: AbstractStorage = Depends(get_storage_provider),
    settings: ScormSettings = Depends(get_settings),
) -> Dict[str, Any]:
    """Upload a SCORM package, extract it and register its content objects.

    The archive must contain ``imsmanifest.xml`` at its root (or inside its
    only top-level folder).
    """
    ensure_authoring_role(caller, "upload SCORM packages")
    owner_tenant = caller.tenant_id
    if tenant_id and tenant_id != caller.tenant_id:
        ensure_tenant_access(caller, tenant_id, "package upload")
        owner_tenant = tenant_id

    if not file.filename:
        raise HTTPException(status_code=400, detail="Filename is required")
    logger.info(
        "Starting SCORM upload: %s (tenant %s, user %s)",
        file.filename,
        owner_tenant,
        caller.user_id,
    )
    archive = await _read_upload(request, file, settings.max_archive_bytes)

    ingestor = PackageIngestor(session, storage, settings)
    package, content_objects = await ingestor.ingest(
        archive,
        tenant_id=owner_tenant,
        uploaded_by=caller.user_id,
        course_id=course_id,
        filename=file.filename,
    )
    return {
        "success": True,
        "package": package.to_dict(),
        "contentObjects": [c.to_dict() for c in content_objects],
    }


@router.get("/packages", response_model=List[PackageOut])
async def list_packages(
    include_deleted: bool = Query(False),
    tenant_id: Optional[str] = Query(None),
    caller: CallerIdentity = Depends(get_caller),
    repo: PackageRepository = Depends(_get_repo),
):
    tenant = caller.tenant_id
    if tenant_id and tenant_id != caller.tenant_id:
        ensure_tenant_access(caller, tenant_id, "package listing")
        tenant = tenant_id
    packages = await repo.list_for_tenant(tenant, include_deleted)
    return [p.to_dict() for p in packages]


@router.get("/packages/{package_id}", response_model=PackageDetailOut)
async def get_package(
    package_id: int,
    caller: CallerIdentity = Depends(get_caller),
    repo: PackageRepository = Depends(_get_repo),
):
    package = await _load_package(repo, package_id, caller)
    content_objects = await repo.list_content_objects(package.id)
    return {
        "package": package.to_dict(),
        "contentObjects": [c.to_dict() for c in content_objects],
    }


@router.get(
    "/packages/{package_id}/content-objects",
    response_model=List[ContentObjectOut],
)
async def list_content_objects(
    package_id: int,
    caller: CallerIdentity = Depends(get_caller),
    repo: PackageRepository = Depends(_get_repo),
):
    package = await _load_package(repo, package_id, caller)
    content_objects = await repo.list_content_objects(package.id)
    return [c.to_dict() for c in content_objects]


@router.get(
    "/courses/{course_id}/package", response_model=CoursePackageOut
)
async def get_course_package(
    course_id: str,
    caller: CallerIdentity = Depends(get_caller),
    repo: PackageRepository = Depends(_get_repo),
):
    package = await repo.latest_for_course(caller.tenant_id, course_id)
    if package is None:
        raise PackageNotFound(f"No SCORM package for course {course_id}")
    body = package.to_dict()
    body["scoCount"] = await repo.count_content_objects(package.id)
    return body


@router.get("/packages/{package_id}/verify-file", response_model=FileCheckOut)
async def verify_package_file(
    package_id: int,
    path: str = Query(..., min_length=1, description="Package-relative path"),
    caller: CallerIdentity = Depends(get_caller),
    repo: PackageRepository = Depends(_get_repo),
    storage: AbstractStorage = Depends(get_storage_provider),
):
    """Report whether a file exists under the package's storage root."""
    package = await _load_package(repo, package_id, caller)
    relative = posixpath.normpath(path.replace("\\", "/").lstrip("/"))
    if relative == ".." or relative.startswith("../"):
        raise HTTPException(status_code=400, detail="Invalid file path")
    key = f"{package.storage_root}/{relative}"
    exists = await storage.exists(key)
    return {
        "exists": exists,
        "size": await storage.size(key) if exists else None,
        "path": relative,
    }


@router.delete(
    "/packages/{package_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_package(
    package_id: int,
    caller: CallerIdentity = Depends(get_caller),
    repo: PackageRepository = Depends(_get_repo),
    storage: AbstractStorage = Depends(get_storage_provider),
):
    """Soft delete: flip status and try to remove the stored files.

    Attempts recorded against the package are kept for audit.
    """
    ensure_authoring_role(caller, "delete SCORM packages")
    package = await _load_package(repo, package_id, caller)
    if package.is_active:
        await repo.mark_deleted(package)
        logger.info(
            "Package %s deleted by %s (tenant %s)",
            package.id,
            caller.user_id,
            package.tenant_id,
        )
    try:
        await storage.delete(package.storage_root)
    except StorageError as exc:
        logger.warning(
            "Failed to remove files of deleted package %s: %s",
            package.id,
            exc,
        )
    return None
