"""
Launch resolution tests
"""

import pytest

from scorm_backend.dependencies import CallerIdentity, Role
from scorm_backend.models.scorm import CommitPayload
from scorm_backend.repositories.package_repo import PackageRepository
from scorm_backend.services.commit_processor import CommitProcessor
from scorm_backend.services.exceptions import (
    AccessDenied,
    ContentMissing,
    ContentObjectNotFound,
)
from scorm_backend.services.launch_resolver import LaunchResolver
from scorm_backend.utils.launch_tokens import decode_launch_token

LEARNER = CallerIdentity("learner-1", "tenant-a", Role.STUDENT)


@pytest.fixture
def resolver(db_session, storage, scorm_settings):
    return LaunchResolver(db_session, storage, scorm_settings)


async def _commit(session_factory, notifier, settings, co_id, body, number=1):
    async with session_factory() as session:
        processor = CommitProcessor(session, notifier, settings)
        await processor.commit(
            LEARNER.user_id,
            LEARNER.tenant_id,
            co_id,
            number,
            CommitPayload.model_validate(body),
        )


class TestLaunchConfiguration:
    @pytest.mark.asyncio
    async def test_first_launch(
        self, resolver, ingested_package, scorm_settings
    ):
        package, content_objects = ingested_package
        launch = await resolver.resolve(content_objects[1].id, LEARNER)

        assert launch["attemptNumber"] == 1
        assert launch["resume"] is None
        assert launch["packageId"] == package.id
        assert launch["title"] == "Part 1"
        assert launch["schemaVersion"] == "1.2"
        assert launch["contentRoot"].startswith("/api/v1/scorm/content/")
        assert launch["contentRoot"].endswith("/")
        assert launch["entryUrl"] == launch["contentRoot"] + "b/part1.html"

        token = launch["contentRoot"].split("/")[-2]
        claims = decode_launch_token(token, scorm_settings)
        assert claims["pkg"] == package.id
        assert claims["tnt"] == "tenant-a"
        assert claims["sub"] == "learner-1"

    @pytest.mark.asyncio
    async def test_non_terminal_attempt_is_resumed(
        self, resolver, ingested_package, session_factory, notifier,
        scorm_settings,
    ):
        _, content_objects = ingested_package
        co_id = content_objects[0].id
        await _commit(
            session_factory, notifier, scorm_settings, co_id,
            {"status": "incomplete", "lessonLocation": "slide-4",
             "suspendData": "state", "sessionTime": 60},
        )

        launch = await resolver.resolve(co_id, LEARNER)

        assert launch["attemptNumber"] == 1
        assert launch["resume"] == {
            "status": "incomplete",
            "lessonLocation": "slide-4",
            "suspendData": "state",
            "totalTimeSeconds": 60.0,
        }

    @pytest.mark.asyncio
    async def test_terminal_attempt_gets_fresh_number(
        self, resolver, ingested_package, session_factory, notifier,
        scorm_settings,
    ):
        _, content_objects = ingested_package
        co_id = content_objects[0].id
        await _commit(
            session_factory, notifier, scorm_settings, co_id,
            {"status": "completed"},
        )

        launch = await resolver.resolve(co_id, LEARNER)

        assert launch["attemptNumber"] == 2
        assert launch["resume"] is None


class TestLaunchFailures:
    @pytest.mark.asyncio
    async def test_deleted_entry_file_is_content_missing(
        self, resolver, ingested_package, storage
    ):
        package, content_objects = ingested_package
        await storage.delete(f"{package.storage_root}/a/index.html")

        with pytest.raises(ContentMissing):
            await resolver.resolve(content_objects[0].id, LEARNER)

    @pytest.mark.asyncio
    async def test_other_tenant_is_denied(self, resolver, ingested_package):
        _, content_objects = ingested_package
        outsider = CallerIdentity("learner-9", "tenant-b", Role.STUDENT)

        with pytest.raises(AccessDenied):
            await resolver.resolve(content_objects[0].id, outsider)

    @pytest.mark.asyncio
    async def test_super_admin_may_launch_any_tenant(
        self, resolver, ingested_package
    ):
        _, content_objects = ingested_package
        operator = CallerIdentity("root", "platform", Role.SUPER_ADMIN)

        launch = await resolver.resolve(content_objects[0].id, operator)
        assert launch["attemptNumber"] == 1

    @pytest.mark.asyncio
    async def test_deleted_package_cannot_be_launched(
        self, resolver, ingested_package, session_factory
    ):
        package, content_objects = ingested_package
        async with session_factory() as session:
            repo = PackageRepository(session)
            await repo.mark_deleted(await repo.get(package.id))

        with pytest.raises(ContentObjectNotFound):
            await resolver.resolve(content_objects[0].id, LEARNER)

    @pytest.mark.asyncio
    async def test_unknown_content_object(self, resolver, ingested_package):
        with pytest.raises(ContentObjectNotFound):
            await resolver.resolve(424242, LEARNER)
