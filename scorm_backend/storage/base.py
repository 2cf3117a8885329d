"""Abstract storage interface for package content."""

from abc import ABC, abstractmethod


class AbstractStorage(ABC):
    """Abstract base class for storage providers.

    Keys are ``/``-separated paths relative to the provider root, e.g.
    ``tenants/t1/scorm/<uuid>/index.html``.
    """

    @abstractmethod
    async def put(self, key: str, content: bytes) -> None:
        """Write ``content`` at ``key``, replacing any existing file.

        Raises
        ------
            FileUploadError: If the write fails.
        """
        raise NotImplementedError

    @abstractmethod
    async def get(self, key: str) -> bytes:
        """Return the bytes stored at ``key``.

        Raises
        ------
            StorageFileNotFoundError: If the file is not found.
        """
        raise NotImplementedError

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Return True if a file exists at ``key``."""
        raise NotImplementedError

    @abstractmethod
    async def size(self, key: str) -> int:
        """Return the size in bytes of the file at ``key``.

        Raises
        ------
            StorageFileNotFoundError: If the file is not found.
        """
        raise NotImplementedError

    @abstractmethod
    async def delete(self, prefix: str) -> None:
        """Delete every file under ``prefix`` (or the single file ``prefix``).

        Deleting a missing prefix is not an error.

        Raises
        ------
            FileDeleteError: If the deletion fails.
        """
        raise NotImplementedError
