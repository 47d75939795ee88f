"""Tests for the bulk mutation engine."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from newsdesk.database import create_engine
from newsdesk.errors import BackendUnavailable
from newsdesk.records import ARTICLES, POLLS, Article, Poll, to_timestamp
from newsdesk.services.bulk import ACTION_PATCHES, ACTIONS, BulkFailure, BulkSelection
from newsdesk.storage.gateway import PersistenceGateway
from newsdesk.storage.relational import RelationalBackend

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture
async def relational_gateway():
    gateway = PersistenceGateway(RelationalBackend(engine=create_engine("sqlite+aiosqlite:///:memory:")))
    await gateway.ensure_ready()
    yield gateway
    await gateway.close()


async def seed(gateway, count):
    return [
        await gateway.insert(ARTICLES, Article(title=f"h{i}", is_published=False))
        for i in range(1, count + 1)
    ]


class TestSelection:
    """Tests for selection bookkeeping."""

    def test_select_toggle_and_count(self, document_gateway):
        """Toggling adds or removes ids while keeping selection order."""
        selection = BulkSelection(document_gateway)
        selection.select(1)
        selection.select(2)
        selection.toggle(2)
        selection.toggle(3)
        selection.deselect(9)
        assert selection.selected_ids == [1, 3]
        assert selection.is_selected(3) is True
        assert selection.count() == 2

    def test_select_all_replaces_selection(self, document_gateway):
        """select_all replaces the selection and drops duplicates."""
        selection = BulkSelection(document_gateway)
        selection.select(9)
        selection.select_all([1, 2, 2, 3])
        assert selection.selected_ids == [1, 2, 3]
        selection.deselect_all()
        assert selection.count() == 0

    def test_action_names(self):
        """Every supported action is listed and publish stamps the publish time."""
        assert set(ACTIONS) == {
            "publish",
            "unpublish",
            "setBreaking",
            "unsetBreaking",
            "setFeatured",
            "unsetFeatured",
            "delete",
        }
        assert ACTION_PATCHES["publish"](NOW) == {
            "is_published": True,
            "published_at": to_timestamp(NOW),
        }


class TestValidation:
    """Validation failures never reach the backend."""

    @pytest.mark.asyncio
    async def test_empty_selection(self, document_gateway):
        """Running an action with nothing selected is a validation failure."""
        outcome = await BulkSelection(document_gateway).perform_action("publish")
        assert outcome.ok is False
        assert outcome.failure == BulkFailure.VALIDATION

    @pytest.mark.asyncio
    async def test_unknown_action(self, document_gateway):
        """Unknown actions are refused and the selection is kept."""
        selection = BulkSelection(document_gateway)
        selection.select("doc001")
        outcome = await selection.perform_action("archive")
        assert outcome.failure == BulkFailure.VALIDATION
        assert selection.selected_ids == ["doc001"]

    @pytest.mark.asyncio
    async def test_article_actions_rejected_for_other_collections(self, document_gateway):
        """Flag actions on polls are refused instead of reporting a silent no-op."""
        poll = await document_gateway.insert(POLLS, Poll(question="?"))
        selection = BulkSelection(document_gateway, POLLS)
        selection.select(poll.id)

        outcome = await selection.perform_action("setFeatured")

        assert outcome.failure == BulkFailure.VALIDATION
        assert selection.selected_ids == [poll.id]

    @pytest.mark.asyncio
    async def test_delete_allowed_for_other_collections(self, document_gateway):
        """Delete is the one bulk action every collection supports."""
        poll = await document_gateway.insert(POLLS, Poll(question="?"))
        selection = BulkSelection(document_gateway, POLLS)
        selection.select(poll.id)

        outcome = await selection.perform_action("delete", confirmed=True)

        assert outcome.ok is True
        assert await document_gateway.list_all(POLLS) == []

    @pytest.mark.asyncio
    async def test_delete_needs_confirmation(self, document_gateway, document_store):
        """Delete without confirmation names the count and deletes nothing."""
        records = await seed(document_gateway, 2)
        selection = BulkSelection(document_gateway)
        selection.select_all([r.id for r in records])

        outcome = await selection.perform_action("delete")

        assert outcome.failure == BulkFailure.VALIDATION
        assert "2" in outcome.message
        assert len(document_store.collections[ARTICLES]) == 2


class TestBatchBackends:
    """Actions on backends with an atomic batch write."""

    @pytest.mark.asyncio
    async def test_publish_on_relational(self, relational_gateway):
        """Publish on the relational backend changes exactly the selected rows."""
        records = await seed(relational_gateway, 4)
        selection = BulkSelection(relational_gateway)
        selection.select_all([r.id for r in records[:3]])

        outcome = await selection.perform_action("publish", now=NOW)

        assert outcome.ok is True
        assert outcome.affected_ids == [r.id for r in records[:3]]
        assert selection.count() == 0
        stored = await relational_gateway.list_all(ARTICLES)
        assert [a.is_published for a in stored] == [True, True, True, False]
        assert stored[0].published_at == to_timestamp(NOW)

    @pytest.mark.asyncio
    async def test_forced_failure_leaves_all_records_unchanged(self, document_gateway, document_store):
        """A failing commit over five records leaves all five as they were."""
        records = await seed(document_gateway, 5)
        document_store.fail_writes = True
        selection = BulkSelection(document_gateway)
        selection.select_all([r.id for r in records])

        outcome = await selection.perform_action("setFeatured")

        assert outcome.failure == BulkFailure.BACKEND
        assert selection.count() == 5
        assert not any(a.is_featured for a in await document_gateway.list_all(ARTICLES))

    @pytest.mark.asyncio
    async def test_forced_failure_on_delete_keeps_all_five(self, document_gateway, document_store):
        """A failing batch delete over five records deletes none of them."""
        records = await seed(document_gateway, 5)
        document_store.fail_writes = True
        selection = BulkSelection(document_gateway)
        selection.select_all([r.id for r in records])

        outcome = await selection.perform_action("delete", confirmed=True)

        assert outcome.failure == BulkFailure.BACKEND
        assert len(await document_gateway.list_all(ARTICLES)) == 5

    @pytest.mark.asyncio
    async def test_missing_record_fails_whole_action(self, relational_gateway):
        """One missing id rolls back the changes to the others."""
        records = await seed(relational_gateway, 3)
        selection = BulkSelection(relational_gateway)
        selection.select_all([records[0].id, 999])

        outcome = await selection.perform_action("setBreaking", now=NOW)

        assert outcome.failure == BulkFailure.BACKEND
        assert not any(a.is_breaking for a in await relational_gateway.list_all(ARTICLES))

    @pytest.mark.asyncio
    async def test_confirmed_delete(self, document_gateway):
        """A confirmed delete removes only the selected records."""
        records = await seed(document_gateway, 3)
        selection = BulkSelection(document_gateway)
        selection.select_all([records[0].id, records[2].id])

        outcome = await selection.perform_action("delete", confirmed=True)

        assert outcome.ok is True
        assert [a.id for a in await document_gateway.list_all(ARTICLES)] == [records[1].id]

    @pytest.mark.asyncio
    async def test_set_breaking_stamps_start(self, document_gateway):
        """setBreaking records when the breaking window started."""
        records = await seed(document_gateway, 1)
        selection = BulkSelection(document_gateway)
        selection.select(records[0].id)

        await selection.perform_action("setBreaking", now=NOW)

        article = await document_gateway.get_one(ARTICLES, records[0].id)
        assert article.breaking_started_at == to_timestamp(NOW)


class TestFlatFileBackend:
    """Actions on the flat-file backend, applied in memory then written once."""

    @pytest.mark.asyncio
    async def test_publish_writes_once(self, flatfile_gateway):
        """The flat-file backend gets one whole-collection write per action."""
        records = await seed(flatfile_gateway, 3)
        selection = BulkSelection(flatfile_gateway)
        selection.select_all([r.id for r in records])

        with patch.object(
            flatfile_gateway.backend, "replace_all", wraps=flatfile_gateway.backend.replace_all
        ) as replace_all:
            outcome = await selection.perform_action("publish", now=NOW)

        assert outcome.ok is True
        replace_all.assert_called_once()
        assert all(a.is_published for a in await flatfile_gateway.list_all(ARTICLES))

    @pytest.mark.asyncio
    async def test_write_failure_leaves_file_unchanged(self, flatfile_gateway):
        """A failed rewrite leaves every record as it was."""
        records = await seed(flatfile_gateway, 5)
        selection = BulkSelection(flatfile_gateway)
        selection.select_all([r.id for r in records])

        with patch.object(
            flatfile_gateway.backend,
            "replace_all",
            AsyncMock(side_effect=BackendUnavailable("disk full")),
        ):
            outcome = await selection.perform_action("setFeatured")

        assert outcome.failure == BulkFailure.BACKEND
        assert outcome.message == "disk full"
        assert not any(a.is_featured for a in await flatfile_gateway.list_all(ARTICLES))

    @pytest.mark.asyncio
    async def test_missing_id_writes_nothing(self, flatfile_gateway):
        """A missing id on the flat-file backend aborts before writing."""
        records = await seed(flatfile_gateway, 2)
        selection = BulkSelection(flatfile_gateway)
        selection.select_all([records[0].id, 42])

        outcome = await selection.perform_action("delete", confirmed=True)

        assert outcome.failure == BulkFailure.BACKEND
        assert len(await flatfile_gateway.list_all(ARTICLES)) == 2

    @pytest.mark.asyncio
    async def test_delete(self, flatfile_gateway):
        """Delete on the flat-file backend keeps the other records in order."""
        records = await seed(flatfile_gateway, 3)
        selection = BulkSelection(flatfile_gateway)
        selection.select(records[1].id)

        await selection.perform_action("delete", confirmed=True)

        assert [a.title for a in await flatfile_gateway.list_all(ARTICLES)] == ["h1", "h3"]
