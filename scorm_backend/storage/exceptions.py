"""Custom exceptions for the storage module."""


class StorageError(Exception):
    """Base exception for storage operations."""


class FileUploadError(StorageError):
    """Raised when a file upload fails."""


class FileDeleteError(StorageError):
    """Raised when a file or prefix delete fails."""


class StorageFileNotFoundError(StorageError):
    """Raised when a file is not found in storage."""


class InvalidStorageKeyError(StorageError):
    """Raised when a key would resolve outside the storage root."""
