"""Progress propagation contract.

When an attempt first enters a terminal status the commit processor notifies
the platform's generic progress/completion engine through this interface.
Delivery and retry are the engine's concern; failures raised here are logged
by the caller and never undo the attempt write.
"""

import logging
from dataclasses import asdict, dataclass
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LessonContext:
    tenant_id: str
    course_id: Optional[str]
    package_id: int
    content_object_id: int
    content_object_identifier: str


@dataclass(frozen=True)
class TerminalOutcome:
    status: str
    score: Optional[float]
    attempt_number: int


class ProgressNotifier(Protocol):
    """Receives first-time terminal transitions of SCORM attempts."""

    async def on_content_object_terminal(
        self,
        learner_id: str,
        lesson_context: LessonContext,
        outcome: TerminalOutcome,
    ) -> None:
        ...


class LoggingProgressNotifier:
    """Default notifier: records the transition in the application log."""

    async def on_content_object_terminal(
        self,
        learner_id: str,
        lesson_context: LessonContext,
        outcome: TerminalOutcome,
    ) -> None:
        logger.info(
            "Content object terminal: learner=%s context=%s outcome=%s",
            learner_id,
            asdict(lesson_context),
            asdict(outcome),
        )


_default_notifier = LoggingProgressNotifier()


def get_progress_notifier() -> ProgressNotifier:
    """FastAPI dependency; the platform overrides it with its own engine."""
    return _default_notifier
