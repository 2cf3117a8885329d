"""
Attempt history and cross-learner summaries

Read-only views over committed attempt rows: a learner's attempt timeline,
their best attempt, and per-content-object analytics for a tenant.
"""

from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from scorm_backend.models.persisted_scorm import AttemptRecord
from scorm_backend.models.scorm import TERMINAL_STATUSES, AttemptStatus
from scorm_backend.repositories.attempt_repo import AttemptRepository


def is_terminal(attempt: AttemptRecord) -> bool:
    return AttemptStatus(attempt.status) in TERMINAL_STATUSES


def select_best(attempts: Iterable[AttemptRecord]) -> Optional[AttemptRecord]:
    """Highest-scoring terminal attempt; later attempts win ties.

    Terminal attempts without a score rank below any scored one.
    """
    terminal = [a for a in attempts if is_terminal(a)]
    if not terminal:
        return None
    return max(
        terminal,
        key=lambda a: (
            a.score_raw is not None,
            a.score_raw if a.score_raw is not None else 0.0,
            a.attempt_number,
        ),
    )


def summarize(attempts: Sequence[AttemptRecord]) -> dict:
    """Cross-learner figures for one content object.

    ``completionRatio`` is terminal attempts over learners with any attempt,
    so retakes can push it above 1.0. ``learnerCompletionRatio`` is the
    share of those learners with at least one terminal attempt. Learners who
    never attempted are not counted at all.
    """
    by_learner: Dict[str, List[AttemptRecord]] = {}
    for attempt in attempts:
        by_learner.setdefault(attempt.learner_id, []).append(attempt)

    best_scores: List[float] = []
    learners_terminal = 0
    for learner_attempts in by_learner.values():
        best = select_best(learner_attempts)
        if best is None:
            continue
        learners_terminal += 1
        if best.score_raw is not None:
            best_scores.append(best.score_raw)

    terminal_attempts = [a for a in attempts if is_terminal(a)]
    terminal_scores = [
        a.score_raw for a in terminal_attempts if a.score_raw is not None
    ]
    learners_attempted = len(by_learner)

    return {
        "learnersAttempted": learners_attempted,
        "learnersTerminal": learners_terminal,
        "meanScore": (
            sum(best_scores) / len(best_scores) if best_scores else None
        ),
        "completionRatio": (
            len(terminal_attempts) / learners_attempted
            if learners_attempted
            else 0.0
        ),
        "learnerCompletionRatio": (
            learners_terminal / learners_attempted
            if learners_attempted
            else 0.0
        ),
        "attemptCount": len(attempts),
        "terminalAttemptCount": len(terminal_attempts),
        "minScore": min(terminal_scores) if terminal_scores else None,
        "maxScore": max(terminal_scores) if terminal_scores else None,
    }


class AttemptAggregator:
    def __init__(self, session: AsyncSession):
        self.attempts = AttemptRepository(session)

    async def list_attempts(
        self, learner_id: str, tenant_id: str, content_object_id: int
    ) -> Sequence[AttemptRecord]:
        return await self.attempts.list_for_learner(
            learner_id, tenant_id, content_object_id
        )

    async def best_attempt(
        self, learner_id: str, tenant_id: str, content_object_id: int
    ) -> Optional[AttemptRecord]:
        return select_best(
            await self.list_attempts(learner_id, tenant_id, content_object_id)
        )

    async def summary(self, content_object_id: int, tenant_id: str) -> dict:
        attempts = await self.attempts.list_for_content_object(
            content_object_id, tenant_id
        )
        result = summarize(attempts)
        result["contentObjectId"] = content_object_id
        result["tenantId"] = tenant_id
        return result
