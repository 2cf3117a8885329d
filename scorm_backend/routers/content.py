"""
Package content delivery

Serves extracted package files to the player. Requests are authorized by the
signed launch token in the URL path rather than by identity headers, because
the browser fetches the content's own assets (scripts, images, frames)
relative to the entry URL.
"""

import logging
import mimetypes
import posixpath

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response
from sqlalchemy.ext.asyncio import AsyncSession

from scorm_backend.config import ScormSettings, get_settings
from scorm_backend.db.config import get_session
from scorm_backend.repositories.package_repo import PackageRepository
from scorm_backend.services.exceptions import AccessDenied, PackageNotFound
from scorm_backend.storage.base import AbstractStorage
from scorm_backend.storage.exceptions import StorageFileNotFoundError
from scorm_backend.storage.factory import get_storage_provider
from scorm_backend.utils.launch_tokens import decode_launch_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/scorm/content", tags=["SCORM Content"])


@router.get("/{token}/{file_path:path}", summary="Serve Package File")
async def serve_content(
    token: str,
    file_path: str,
    session: AsyncSession = Depends(get_session),
    storage: AbstractStorage = Depends(get_storage_provider),
    settings: ScormSettings = Depends(get_settings),
) -> Response:
    claims = decode_launch_token(token, settings)

    relative = posixpath.normpath(file_path.replace("\\", "/").lstrip("/"))
    if relative in ("", ".") or relative == ".." or relative.startswith("../"):
        raise HTTPException(status_code=404, detail="File not found")

    package = await PackageRepository(session).get(int(claims["pkg"]))
    if package.tenant_id != claims["tnt"]:
        logger.warning(
            "Launch token for tenant %s used on package %s of tenant %s",
            claims["tnt"],
            package.id,
            package.tenant_id,
        )
        raise AccessDenied("Launch token does not grant this package")
    if not package.is_active:
        raise PackageNotFound(f"Package {package.id} has been deleted")

    try:
        content = await storage.get(f"{package.storage_root}/{relative}")
    except StorageFileNotFoundError:
        raise HTTPException(status_code=404, detail="File not found")

    media_type, _ = mimetypes.guess_type(relative)
    return Response(
        content=content,
        media_type=media_type or "application/octet-stream",
        headers={"Cache-Control": "private, max-age=300"},
    )
