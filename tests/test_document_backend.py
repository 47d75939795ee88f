"""Unit tests for the Firestore document backend with a mocked client."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from google.api_core.exceptions import ServiceUnavailable
from google.cloud import firestore

from newsdesk.errors import BackendUnavailable, PartialBulkFailure
from newsdesk.records import ARTICLES, Article
from newsdesk.storage.base import BackendKind
from newsdesk.storage.document import DocumentBackend


async def _aiter(items):
    for item in items:
        yield item


def make_snapshot(doc_id, data, exists=True):
    snapshot = MagicMock()
    snapshot.id = doc_id
    snapshot.exists = exists
    snapshot.to_dict.return_value = data if exists else None
    snapshot.reference = MagicMock(name=f"ref-{doc_id}")
    return snapshot


@pytest.fixture
def client():
    client = MagicMock()
    collection = client.collection.return_value
    # Queries are chainable
    for method in ("where", "order_by", "start_at", "start_after", "limit"):
        getattr(collection, method).return_value = collection
    batch = client.batch.return_value
    batch.commit = AsyncMock()
    return client


@pytest.fixture
def backend(client):
    return DocumentBackend(project="demo", client=client)


class TestDocumentBackend:
    """Tests for DocumentBackend."""

    def test_kind(self, backend):
        assert backend.kind == BackendKind.DOCUMENT
        assert backend.supports_batch is True

    @pytest.mark.asyncio
    async def test_get_one_decodes_camel_case(self, backend, client):
        """Snapshots decode into records with the document id."""
        ref = client.collection.return_value.document.return_value
        ref.get = AsyncMock(return_value=make_snapshot("abc", {"title": "Haber", "isFeatured": True}))

        article = await backend.get_one(ARTICLES, "abc")

        client.collection.assert_called_with(ARTICLES)
        assert article.id == "abc"
        assert article.is_featured is True

    @pytest.mark.asyncio
    async def test_get_one_missing(self, backend, client):
        """A missing document is None, not an error."""
        ref = client.collection.return_value.document.return_value
        ref.get = AsyncMock(return_value=make_snapshot("abc", None, exists=False))
        assert await backend.get_one(ARTICLES, "abc") is None

    @pytest.mark.asyncio
    async def test_insert_uses_generated_id(self, backend, client):
        """Inserts take the id Firestore generates."""
        ref = client.collection.return_value.document.return_value
        ref.id = "generated"
        ref.set = AsyncMock()

        stored = await backend.insert(ARTICLES, Article(title="Yeni"))

        assert stored.id == "generated"
        written = ref.set.call_args.args[0]
        assert written["title"] == "Yeni"
        assert "id" not in written

    @pytest.mark.asyncio
    async def test_unavailable_service(self, backend, client):
        """Firestore outages surface as BackendUnavailable."""
        ref = client.collection.return_value.document.return_value
        ref.get = AsyncMock(side_effect=ServiceUnavailable("down"))
        with pytest.raises(BackendUnavailable):
            await backend.get_one(ARTICLES, "abc")

    @pytest.mark.asyncio
    async def test_update_rewrites_merged_document(self, backend, client):
        """Updates write the merged record back with set()."""
        ref = client.collection.return_value.document.return_value
        ref.get = AsyncMock(return_value=make_snapshot("abc", {"title": "Eski", "excerpt": "özet"}))
        ref.set = AsyncMock()

        updated = await backend.update(ARTICLES, "abc", {"title": "Yeni"})

        assert updated.title == "Yeni"
        assert ref.set.call_args.args[0]["excerpt"] == "özet"

    @pytest.mark.asyncio
    async def test_batch_update_commits_once(self, backend, client):
        """A batch update is one commit for all records."""
        snapshots = [make_snapshot(i, {"title": i}) for i in ("a", "b")]
        client.get_all = MagicMock(return_value=_aiter(snapshots))

        updated = await backend.batch_update(ARTICLES, ["a", "b"], {"is_featured": True})

        assert [a.is_featured for a in updated] == [True, True]
        batch = client.batch.return_value
        assert batch.set.call_count == 2
        batch.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_batch_with_missing_record_writes_nothing(self, backend, client):
        """A missing document stops the batch before commit."""
        snapshots = [make_snapshot("a", {"title": "a"}), make_snapshot("b", None, exists=False)]
        client.get_all = MagicMock(return_value=_aiter(snapshots))

        with pytest.raises(PartialBulkFailure):
            await backend.batch_delete(ARTICLES, ["a", "b"])

        client.batch.return_value.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cursor_query_orders_by_document_name_for_id(self, backend, client):
        """Ordering by id uses the document name."""
        query = client.collection.return_value
        query.stream = MagicMock(return_value=_aiter([make_snapshot("a", {"title": "a"})]))
        marker = object()

        items = await backend.cursor_query(
            ARTICLES, order_by="id", limit=21, start_after=marker, filters={"category": "Spor"}
        )

        query.order_by.assert_called_once_with("__name__", direction=firestore.Query.ASCENDING)
        query.start_after.assert_called_once_with(marker)
        query.limit.assert_called_once_with(21)
        assert query.where.call_count == 1
        assert items[0].record.id == "a"
        assert items[0].marker.id == "a"

    @pytest.mark.asyncio
    async def test_cursor_query_maps_field_names(self, backend, client):
        """Filters and ordering use stored camelCase names."""
        query = client.collection.return_value
        query.stream = MagicMock(return_value=_aiter([]))

        await backend.cursor_query(ARTICLES, order_by="published_at", descending=True, limit=5)

        query.order_by.assert_called_once_with("publishedAt", direction=firestore.Query.DESCENDING)
        query.start_at.assert_not_called()
        query.start_after.assert_not_called()
