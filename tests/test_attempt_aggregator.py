"""
Attempt history and summary tests
"""

import pytest

from scorm_backend.models.persisted_scorm import AttemptRecord
from scorm_backend.repositories.attempt_repo import AttemptRepository
from scorm_backend.services.attempt_aggregator import (
    AttemptAggregator,
    select_best,
    summarize,
)


def make_attempt(learner, number, status, score=None, co_id=1,
                 tenant="tenant-a") -> AttemptRecord:
    return AttemptRecord(
        learner_id=learner,
        tenant_id=tenant,
        content_object_id=co_id,
        attempt_number=number,
        status=status,
        score_raw=score,
        total_time_seconds=0.0,
        terminal_history=[],
    )


class TestSelectBest:
    def test_highest_terminal_score_wins(self):
        attempts = [
            make_attempt("l1", 1, "failed", 40),
            make_attempt("l1", 2, "passed", 90),
            make_attempt("l1", 3, "completed", 70),
        ]
        assert select_best(attempts).attempt_number == 2

    def test_non_terminal_attempts_are_ignored(self):
        attempts = [
            make_attempt("l1", 1, "completed", 50),
            make_attempt("l1", 2, "incomplete", 99),
        ]
        assert select_best(attempts).attempt_number == 1

    def test_later_attempt_wins_ties(self):
        attempts = [
            make_attempt("l1", 1, "passed", 80),
            make_attempt("l1", 2, "passed", 80),
        ]
        assert select_best(attempts).attempt_number == 2

    def test_scored_beats_unscored(self):
        attempts = [
            make_attempt("l1", 1, "completed", 0),
            make_attempt("l1", 2, "completed", None),
        ]
        assert select_best(attempts).attempt_number == 1

    def test_no_terminal_attempt(self):
        assert select_best([make_attempt("l1", 1, "incomplete", 10)]) is None
        assert select_best([]) is None


class TestSummarize:
    def test_cross_learner_figures(self):
        attempts = [
            make_attempt("l1", 1, "failed", 40),
            make_attempt("l1", 2, "passed", 90),
            make_attempt("l2", 1, "completed", 60),
            make_attempt("l3", 1, "incomplete", 10),
        ]

        summary = summarize(attempts)

        assert summary["learnersAttempted"] == 3
        assert summary["learnersTerminal"] == 2
        assert summary["meanScore"] == pytest.approx(75)
        assert summary["completionRatio"] == pytest.approx(1.0)
        assert summary["learnerCompletionRatio"] == pytest.approx(2 / 3)
        assert summary["attemptCount"] == 4
        assert summary["terminalAttemptCount"] == 3
        assert summary["minScore"] == 40
        assert summary["maxScore"] == 90

    def test_empty(self):
        summary = summarize([])
        assert summary["learnersAttempted"] == 0
        assert summary["completionRatio"] == 0.0
        assert summary["learnerCompletionRatio"] == 0.0
        assert summary["meanScore"] is None
        assert summary["minScore"] is None


class TestAttemptAggregator:
    @pytest.mark.asyncio
    async def test_summary_is_tenant_scoped(self, db_session, ingested_package):
        _, content_objects = ingested_package
        co_id = content_objects[0].id
        repo = AttemptRepository(db_session)
        for attempt in [
            make_attempt("l1", 1, "passed", 90, co_id),
            make_attempt("l2", 1, "incomplete", None, co_id),
            make_attempt("x1", 1, "passed", 10, co_id, tenant="tenant-b"),
        ]:
            await repo.add(attempt)

        summary = await AttemptAggregator(db_session).summary(
            co_id, "tenant-a"
        )

        assert summary["contentObjectId"] == co_id
        assert summary["tenantId"] == "tenant-a"
        assert summary["learnersAttempted"] == 2
        assert summary["learnersTerminal"] == 1
        assert summary["meanScore"] == 90
        assert summary["completionRatio"] == 0.5

    @pytest.mark.asyncio
    async def test_history_and_best(self, db_session, ingested_package):
        _, content_objects = ingested_package
        co_id = content_objects[0].id
        repo = AttemptRepository(db_session)
        for attempt in [
            make_attempt("l1", 2, "passed", 70, co_id),
            make_attempt("l1", 1, "failed", 30, co_id),
        ]:
            await repo.add(attempt)

        aggregator = AttemptAggregator(db_session)
        history = await aggregator.list_attempts("l1", "tenant-a", co_id)
        best = await aggregator.best_attempt("l1", "tenant-a", co_id)

        assert [a.attempt_number for a in history] == [1, 2]
        assert best.attempt_number == 2
        assert await aggregator.best_attempt("nobody", "tenant-a", co_id) is None
