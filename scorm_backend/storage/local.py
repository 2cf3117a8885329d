"""Local filesystem storage implementation."""

import asyncio
import shutil
from pathlib import Path

import aiofiles
import aiofiles.os

from scorm_backend.storage.base import AbstractStorage
from scorm_backend.storage.exceptions import (
    FileDeleteError,
    FileUploadError,
    InvalidStorageKeyError,
    StorageFileNotFoundError,
)


class LocalStorage(AbstractStorage):
    """Local filesystem storage provider."""

    def __init__(self, base_path: str) -> None:
        """Initialize local storage with base path.

        Args:
            base_path: Base directory path for storing files
        """
        self.base_path = Path(base_path).resolve()
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _get_full_path(self, key: str) -> Path:
        """Map a storage key to a path, refusing keys that escape the root."""
        path = (self.base_path / key.lstrip("/")).resolve()
        if path != self.base_path and self.base_path not in path.parents:
            raise InvalidStorageKeyError(f"Key escapes storage root: {key}")
        return path

    async def put(self, key: str, content: bytes) -> None:
        try:
            path = self._get_full_path(key)
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(content)
        except OSError as e:
            msg = f"Failed to write file locally: {key}"
            raise FileUploadError(msg) from e

    async def get(self, key: str) -> bytes:
        path = self._get_full_path(key)
        if not await aiofiles.os.path.isfile(path):
            msg = f"File not found: {key}"
            raise StorageFileNotFoundError(msg)
        async with aiofiles.open(path, "rb") as file_obj:
            return await file_obj.read()

    async def exists(self, key: str) -> bool:
        try:
            path = self._get_full_path(key)
        except InvalidStorageKeyError:
            return False
        return await aiofiles.os.path.isfile(path)

    async def size(self, key: str) -> int:
        path = self._get_full_path(key)
        if not await aiofiles.os.path.isfile(path):
            msg = f"File not found: {key}"
            raise StorageFileNotFoundError(msg)
        return await aiofiles.os.path.getsize(path)

    async def delete(self, prefix: str) -> None:
        try:
            path = self._get_full_path(prefix)
            if path == self.base_path:
                raise InvalidStorageKeyError("Refusing to delete storage root")
            if await aiofiles.os.path.isdir(path):
                await asyncio.to_thread(shutil.rmtree, path)
            elif await aiofiles.os.path.exists(path):
                await aiofiles.os.remove(path)
        except OSError as e:
            msg = f"Failed to delete locally: {prefix}"
            raise FileDeleteError(msg) from e
