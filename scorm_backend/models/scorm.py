"""
Pydantic models for SCORM runtime tracking
Status vocabulary and the runtime commit payload accepted from content players
"""

import hashlib
import json
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from scorm_backend.utils.scorm_time import parse_session_time


class AttemptStatus(str, Enum):
    NOT_ATTEMPTED = "not_attempted"
    INCOMPLETE = "incomplete"
    BROWSED = "browsed"
    FAILED = "failed"
    COMPLETED = "completed"
    PASSED = "passed"


# Priority order, low -> high. A reported status only replaces the stored one
# if it ranks at least as high (see commit_processor.merge_status).
STATUS_RANK: Dict[AttemptStatus, int] = {
    AttemptStatus.NOT_ATTEMPTED: 0,
    AttemptStatus.INCOMPLETE: 1,
    AttemptStatus.BROWSED: 2,
    AttemptStatus.FAILED: 3,
    AttemptStatus.COMPLETED: 4,
    AttemptStatus.PASSED: 5,
}

TERMINAL_STATUSES = frozenset(
    {AttemptStatus.COMPLETED, AttemptStatus.PASSED, AttemptStatus.FAILED}
)

_COMPLETION_VALUES = {"completed", "incomplete", "not_attempted"}
_SUCCESS_VALUES = {"passed", "failed"}


def normalize_status_token(value: Any) -> Optional[str]:
    """Lower-case a CMI status token; ``"not attempted"`` -> ``not_attempted``.

    ``unknown`` and empty strings mean "not reported".
    """
    if value is None:
        return None
    if isinstance(value, AttemptStatus):
        return value.value
    if not isinstance(value, str):
        raise ValueError("status must be a string")
    token = value.strip().lower().replace(" ", "_").replace("-", "_")
    if token in ("", "unknown"):
        return None
    return token


def _score_alias(suffix: str) -> AliasChoices:
    camel = "score" + suffix.capitalize()
    return AliasChoices(
        camel,
        f"score_{suffix}",
        f"cmi.core.score.{suffix}",
        f"cmi.score.{suffix}",
    )


class CommitPayload(BaseModel):
    """Partial runtime state sent by a running content object.

    Only the allow-listed keys below are recognised; anything else a player
    sends is ignored. Absent keys leave stored state untouched.
    """

    model_config = ConfigDict(
        extra="ignore", populate_by_name=True, allow_inf_nan=False
    )

    status: Optional[AttemptStatus] = Field(
        None,
        validation_alias=AliasChoices(
            "status", "lessonStatus", "lesson_status", "cmi.core.lesson_status"
        ),
    )
    completion_status: Optional[str] = Field(
        None,
        validation_alias=AliasChoices(
            "completionStatus", "completion_status", "cmi.completion_status"
        ),
    )
    success_status: Optional[str] = Field(
        None,
        validation_alias=AliasChoices(
            "successStatus", "success_status", "cmi.success_status"
        ),
    )
    score_raw: Optional[float] = Field(
        None,
        validation_alias=AliasChoices(
            "score",
            "scoreRaw",
            "score_raw",
            "cmi.core.score.raw",
            "cmi.score.raw",
        ),
    )
    score_min: Optional[float] = Field(None, validation_alias=_score_alias("min"))
    score_max: Optional[float] = Field(None, validation_alias=_score_alias("max"))
    session_time: Optional[float] = Field(
        None,
        validation_alias=AliasChoices(
            "sessionTime",
            "session_time",
            "session_time_seconds",
            "cmi.core.session_time",
            "cmi.session_time",
        ),
    )
    suspend_data: Optional[str] = Field(
        None,
        validation_alias=AliasChoices(
            "suspendData", "suspend_data", "cmi.suspend_data",
            "cmi.core.suspend_data",
        ),
    )
    lesson_location: Optional[str] = Field(
        None,
        max_length=1000,
        validation_alias=AliasChoices(
            "lessonLocation",
            "lesson_location",
            "location",
            "cmi.core.lesson_location",
            "cmi.location",
        ),
    )
    commit_id: Optional[str] = Field(
        None,
        max_length=128,
        validation_alias=AliasChoices("commitId", "commit_id"),
    )

    @field_validator("status", mode="before")
    @classmethod
    def _normalize_status(cls, value: Any) -> Optional[str]:
        return normalize_status_token(value)

    @field_validator("completion_status", mode="before")
    @classmethod
    def _normalize_completion(cls, value: Any) -> Optional[str]:
        token = normalize_status_token(value)
        if token is not None and token not in _COMPLETION_VALUES:
            raise ValueError(f"invalid completion status: {value!r}")
        return token

    @field_validator("success_status", mode="before")
    @classmethod
    def _normalize_success(cls, value: Any) -> Optional[str]:
        token = normalize_status_token(value)
        if token is not None and token not in _SUCCESS_VALUES:
            raise ValueError(f"invalid success status: {value!r}")
        return token

    @field_validator("score_raw", "score_min", "score_max", mode="before")
    @classmethod
    def _blank_score_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and value.strip() == "":
            return None
        return value

    @field_validator("session_time", mode="before")
    @classmethod
    def _parse_session_time(cls, value: Any) -> Optional[float]:
        if value is None:
            return None
        return parse_session_time(value)

    # Derived views ---------------------------------------------------------
    def reported_status(self) -> Optional[AttemptStatus]:
        """Single status reported by this commit, if any.

        SCORM 2004 splits state into success and completion; success wins
        when it is decided.
        """
        if self.status is not None:
            return self.status
        if self.success_status is not None:
            return AttemptStatus(self.success_status)
        if self.completion_status is not None:
            return AttemptStatus(self.completion_status)
        return None

    def has_score(self) -> bool:
        return bool(
            {"score_raw", "score_min", "score_max"} & self.model_fields_set
        )

    def digest(self) -> str:
        """Stable fingerprint used to detect duplicate submissions."""
        if self.commit_id:
            return f"id:{self.commit_id}"
        body = self.model_dump(
            mode="json", exclude_unset=True, exclude={"commit_id"}
        )
        encoded = json.dumps(body, sort_keys=True, separators=(",", ":"))
        return "sha256:" + hashlib.sha256(encoded.encode("utf-8")).hexdigest()
