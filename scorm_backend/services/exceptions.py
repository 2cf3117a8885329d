"""Error taxonomy for SCORM ingestion, launch and runtime tracking.

Every error carries the HTTP status it maps to and a stable ``code`` (the
class name) so clients can distinguish "doesn't exist" from "not yours" and
input problems from infrastructure problems. ``main.py`` renders them with
the common JSON error envelope.
"""
from __future__ import annotations
from typing import Any, Dict, Optional


class ScormError(Exception):
    """Base class for all SCORM subsystem errors."""

    status_code: int = 400

    def __init__(
        self, message: str, details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    @property
    def code(self) -> str:
        return type(self).__name__


# Input validation -----------------------------------------------------------
class ArchiveInvalid(ScormError):
    """Upload is not a readable zip archive or contains unsafe entries."""


class ArchiveTooLarge(ScormError):
    """Archive exceeds the configured size, extracted size or entry limits."""

    status_code = 413


class ManifestMissing(ScormError):
    """No imsmanifest.xml at the archive root (or single top-level folder)."""

    status_code = 422


class ManifestInvalid(ScormError):
    """Manifest is malformed or references unusable resources."""

    status_code = 422


class ManifestUnsupportedVersion(ScormError):
    """Manifest declares a schema version outside the supported set."""

    status_code = 422


class ManifestEmpty(ScormError):
    """Manifest declares no launchable items."""

    status_code = 422


class SuspendDataTooLarge(ScormError):
    """Suspend data exceeds the cap. The rest of the commit was applied."""

    status_code = 413

    def __init__(self, message: str, attempt: Any = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.attempt = attempt


# Authorization --------------------------------------------------------------
class AccessDenied(ScormError):
    status_code = 403


# Not found ------------------------------------------------------------------
class PackageNotFound(ScormError):
    status_code = 404


class ContentObjectNotFound(ScormError):
    status_code = 404


class AttemptNotFound(ScormError):
    status_code = 404


class ContentMissing(ScormError):
    """Entry file is gone from storage although the records still exist."""

    status_code = 410


# Transient ------------------------------------------------------------------
class IngestionTimeout(ScormError):
    status_code = 504
