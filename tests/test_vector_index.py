"""Tests for the transactional vector index."""

import pytest
import pytest_asyncio

from doc_vector_index.models import CreateIndexConfig, IndexSnapshot, MetadataConfig
from doc_vector_index.storage import MemoryTransport
from doc_vector_index.vector.errors import (
    ConflictError,
    DuplicateIdError,
    IndexCreationError,
    IndexNotFoundError,
    NoUpdateError,
    PublishError,
)
from doc_vector_index.vector.index import VectorIndex


@pytest_asyncio.fixture
async def index(transport: MemoryTransport) -> VectorIndex:
    """A freshly created, empty index."""
    vector_index = VectorIndex(transport)
    await vector_index.create_index()
    return vector_index


class TestLifecycle:
    """Tests for creating, loading and deleting indexes."""

    @pytest.mark.asyncio
    async def test_create_index_publishes_empty_snapshot(self, transport: MemoryTransport) -> None:
        """A new index is published, loaded and empty."""
        index = VectorIndex(transport)
        assert not await index.is_index_created()

        handle = await index.create_index(CreateIndexConfig(version=3))

        assert index.index_name == handle.name
        assert index.loaded
        assert await index.is_index_created()
        stats = await index.get_index_stats()
        assert stats.version == 3
        assert stats.items == 0
        snapshot = IndexSnapshot.from_blob(await transport.fetch(handle.name))
        assert snapshot.items == []

    @pytest.mark.asyncio
    async def test_load_without_name_raises_not_found(self, transport: MemoryTransport) -> None:
        """Reading an index that was never created raises IndexNotFoundError."""
        with pytest.raises(IndexNotFoundError):
            await VectorIndex(transport).list_items()

    @pytest.mark.asyncio
    async def test_load_unknown_name_raises_not_found(self, transport: MemoryTransport) -> None:
        """Loading a name unknown to the transport raises IndexNotFoundError."""
        index = VectorIndex(transport, "k-missing")
        assert not await index.is_index_created()
        with pytest.raises(IndexNotFoundError) as exc_info:
            await index.get_index_stats()
        assert exc_info.value.index_name == "k-missing"

    @pytest.mark.asyncio
    async def test_create_failure_cleans_up(self, flaky_transport: MemoryTransport) -> None:
        """An unacknowledged initial publication removes the created key."""
        flaky_transport.acknowledge = False  # type: ignore[attr-defined]
        index = VectorIndex(flaky_transport)

        with pytest.raises(IndexCreationError):
            await index.create_index()

        assert flaky_transport.keys == {}
        assert flaky_transport.names == {}
        assert index.index_name is None
        assert not index.loaded

    @pytest.mark.asyncio
    async def test_delete_index(self, index: VectorIndex, transport: MemoryTransport) -> None:
        """Deleting removes the name and drops resident data."""
        name = index.index_name
        await index.delete_index()

        assert not await transport.exists(name or "")
        assert not index.loaded

    @pytest.mark.asyncio
    async def test_create_with_delete_if_exists(self, index: VectorIndex, transport: MemoryTransport) -> None:
        """delete_if_exists replaces the loaded index with a new one."""
        old_name = index.index_name
        await index.insert_item([1.0, 0.0])

        handle = await index.create_index(CreateIndexConfig(delete_if_exists=True))

        assert handle.name != old_name
        assert not await transport.exists(old_name or "")
        assert await index.list_items() == []

    @pytest.mark.asyncio
    async def test_load_is_cached_until_invalidated(self, index: VectorIndex, transport: MemoryTransport) -> None:
        """A second instance loads once and sees new commits only after invalidate()."""
        await index.insert_item([1.0, 0.0], id="a")
        reader = VectorIndex(transport, index.index_name)
        assert [item.id for item in await reader.list_items()] == ["a"]

        await index.insert_item([0.0, 1.0], id="b")
        assert [item.id for item in await reader.list_items()] == ["a"]

        reader.invalidate()
        assert [item.id for item in await reader.list_items()] == ["a", "b"]


class TestTransactions:
    """Tests for begin/end/cancel update."""

    @pytest.mark.asyncio
    async def test_begin_twice_raises_conflict(self, index: VectorIndex) -> None:
        """Only one update can be open at a time."""
        await index.begin_update()
        with pytest.raises(ConflictError):
            await index.begin_update()
        index.cancel_update()
        assert not index.update_in_progress

    @pytest.mark.asyncio
    async def test_end_without_begin_raises(self, index: VectorIndex) -> None:
        """end_update without begin_update raises NoUpdateError."""
        with pytest.raises(NoUpdateError):
            await index.end_update()

    @pytest.mark.asyncio
    async def test_cancel_leaves_committed_snapshot_unchanged(self, index: VectorIndex) -> None:
        """After cancel_update the committed snapshot is identical to before."""
        await index.insert_item([1.0, 2.0], id="keep", metadata={"lang": "en"})
        assert index.committed is not None
        before = index.committed.to_blob()

        await index.begin_update()
        await index.insert_item([3.0, 4.0], id="new")
        await index.upsert_item([9.0, 9.0], id="keep")
        await index.delete_item("keep")
        index.cancel_update()

        assert index.committed.to_blob() == before

    @pytest.mark.asyncio
    async def test_cancel_without_update_is_safe(self, index: VectorIndex) -> None:
        """cancel_update is a no-op when nothing is open."""
        index.cancel_update()
        assert not index.update_in_progress

    @pytest.mark.asyncio
    async def test_changes_are_invisible_until_commit(self, index: VectorIndex) -> None:
        """Reads see the committed snapshot while an update is open."""
        await index.begin_update()
        await index.insert_item([1.0, 0.0], id="a")
        assert await index.get_item("a") is None

        await index.end_update()
        assert await index.get_item("a") is not None

    @pytest.mark.asyncio
    async def test_unacknowledged_publish_is_not_committed(self, flaky_transport: MemoryTransport) -> None:
        """A publication without receipt raises PublishError and keeps old state."""
        index = VectorIndex(flaky_transport)
        await index.create_index()
        await index.insert_item([1.0, 0.0], id="a")

        flaky_transport.acknowledge = False  # type: ignore[attr-defined]
        await index.begin_update()
        await index.insert_item([0.0, 1.0], id="b")
        with pytest.raises(PublishError):
            await index.end_update()

        assert index.update_in_progress
        index.cancel_update()
        assert [item.id for item in await index.list_items()] == ["a"]

    @pytest.mark.asyncio
    async def test_failed_one_off_update_is_cancelled(self, flaky_transport: MemoryTransport) -> None:
        """A single mutation that fails to publish leaves no open update."""
        index = VectorIndex(flaky_transport)
        await index.create_index()
        flaky_transport.acknowledge = False  # type: ignore[attr-defined]

        with pytest.raises(PublishError):
            await index.insert_item([1.0, 0.0])

        assert not index.update_in_progress
        assert await index.list_items() == []


class TestMutations:
    """Tests for insert, upsert and delete."""

    @pytest.mark.asyncio
    async def test_insert_generates_id_and_norm(self, index: VectorIndex) -> None:
        """Items without id get a generated one and a cached norm."""
        item = await index.insert_item([3.0, 4.0])

        assert item.id
        assert item.norm == pytest.approx(5.0)
        stored = await index.get_item(item.id)
        assert stored is not None
        assert stored.vector == [3.0, 4.0]

    @pytest.mark.asyncio
    async def test_insert_requires_vector(self, index: VectorIndex) -> None:
        """An empty vector is rejected."""
        with pytest.raises(ValueError, match="Vector is required"):
            await index.insert_item([])
        assert not index.update_in_progress

    @pytest.mark.asyncio
    async def test_insert_duplicate_id_raises(self, index: VectorIndex) -> None:
        """Inserting an existing id raises DuplicateIdError."""
        await index.insert_item([1.0, 0.0], id="a")
        with pytest.raises(DuplicateIdError):
            await index.insert_item([0.0, 1.0], id="a")
        assert not index.update_in_progress

    @pytest.mark.asyncio
    async def test_insert_duplicate_within_update_raises(self, index: VectorIndex) -> None:
        """Duplicates are detected against the pending set too."""
        await index.begin_update()
        await index.insert_item([1.0, 0.0], id="a")
        with pytest.raises(DuplicateIdError):
            await index.insert_item([0.0, 1.0], id="a")
        index.cancel_update()

    @pytest.mark.asyncio
    async def test_upsert_replaces_in_place(self, index: VectorIndex) -> None:
        """Upsert replaces vector, norm and metadata without moving the item."""
        await index.insert_item([1.0, 0.0], id="a", metadata={"v": 1})
        await index.insert_item([0.0, 1.0], id="b")

        await index.upsert_item([0.0, 2.0], id="a", metadata={"v": 2})

        items = await index.list_items()
        assert [item.id for item in items] == ["a", "b"]
        assert items[0].vector == [0.0, 2.0]
        assert items[0].norm == pytest.approx(2.0)
        assert items[0].metadata == {"v": 2}

    @pytest.mark.asyncio
    async def test_delete_item_and_absent_id(self, index: VectorIndex) -> None:
        """Deleting removes the item; deleting an absent id is a no-op."""
        await index.insert_item([1.0, 0.0], id="a")
        await index.delete_item("a")
        await index.delete_item("never-existed")

        assert await index.list_items() == []

    @pytest.mark.asyncio
    async def test_metadata_allow_list(self, transport: MemoryTransport) -> None:
        """Only indexed metadata keys are kept when an allow-list is configured."""
        index = VectorIndex(transport)
        await index.create_index(CreateIndexConfig(metadata_config=MetadataConfig(indexed=["lang"])))

        item = await index.insert_item([1.0], metadata={"lang": "en", "secret": "x"})

        assert item.metadata == {"lang": "en"}

    @pytest.mark.asyncio
    async def test_returned_items_are_copies(self, index: VectorIndex) -> None:
        """Mutating returned items does not change the index."""
        await index.insert_item([1.0, 0.0], id="a", metadata={"lang": "en"})

        items = await index.list_items()
        items[0].metadata["lang"] = "nl"
        items.clear()

        stored = await index.get_item("a")
        assert stored is not None
        assert stored.metadata == {"lang": "en"}


class TestQuery:
    """Tests for exhaustive similarity queries."""

    @pytest_asyncio.fixture
    async def populated(self, index: VectorIndex) -> VectorIndex:
        await index.begin_update()
        await index.insert_item([1.0, 0.0], id="east", metadata={"lang": "en"})
        await index.insert_item([0.0, 1.0], id="north", metadata={"lang": "nl"})
        await index.insert_item([0.7, 0.7], id="northeast", metadata={"lang": "en"})
        await index.insert_item([-1.0, 0.0], id="west", metadata={"lang": "nl"})
        await index.insert_item([0.0, 0.0], id="zero", metadata={"lang": "en"})
        await index.end_update()
        return index

    @pytest.mark.asyncio
    async def test_results_sorted_descending(self, populated: VectorIndex) -> None:
        """Adjacent results never increase in score."""
        results = await populated.query_items([0.9, 0.1], top_k=10)

        assert results[0].item.id == "east"
        assert len(results) == 5
        for current, following in zip(results, results[1:]):
            assert current.score >= following.score

    @pytest.mark.asyncio
    async def test_top_k_limits_results(self, populated: VectorIndex) -> None:
        """At most top_k results are returned."""
        assert len(await populated.query_items([1.0, 1.0], top_k=2)) == 2
        assert await populated.query_items([1.0, 1.0], top_k=0) == []

    @pytest.mark.asyncio
    async def test_identical_vector_scores_one(self, populated: VectorIndex) -> None:
        """Querying with a stored vector ranks that item first with score 1."""
        results = await populated.query_items([0.7, 0.7], top_k=1)

        assert results[0].item.id == "northeast"
        assert results[0].score == pytest.approx(1.0)

    @pytest.mark.asyncio
    async def test_zero_vector_scores_zero(self, populated: VectorIndex) -> None:
        """The zero vector item scores 0 instead of failing."""
        results = await populated.query_items([1.0, 0.0], top_k=10)
        scores = {result.item.id: result.score for result in results}

        assert scores["zero"] == 0.0

    @pytest.mark.asyncio
    async def test_equal_scores_keep_index_order(self, index: VectorIndex) -> None:
        """Ties are broken by insertion order."""
        for name in ("first", "second", "third"):
            await index.insert_item([2.0, 2.0], id=name)

        results = await index.query_items([1.0, 1.0], top_k=3)

        assert [result.item.id for result in results] == ["first", "second", "third"]

    @pytest.mark.asyncio
    async def test_filter_applies_before_scoring(self, populated: VectorIndex) -> None:
        """Only items matching the filter are scored."""
        results = await populated.query_items([0.0, 1.0], top_k=10, filter={"lang": "en"})

        assert {result.item.id for result in results} == {"east", "northeast", "zero"}

    @pytest.mark.asyncio
    async def test_list_items_by_metadata(self, populated: VectorIndex) -> None:
        """Filtered listing keeps index order."""
        items = await populated.list_items_by_metadata({"lang": {"$in": ["nl"]}})

        assert [item.id for item in items] == ["north", "west"]
