"""Transactional vector index with exhaustive cosine similarity search.

The index keeps an ordered list of IndexItems in memory. The committed
snapshot is fetched from the transport at most once per instance (until
invalidate() is called); every mutation happens on a deep-copied pending
snapshot which is published as a whole and only swapped in once the
transport acknowledges it.

Classes:
    VectorIndex: Vector index bound to one transport name.

State machine::

    Uninitialized --load/create--> Loaded --begin_update--> UpdateOpen
    UpdateOpen --end_update/cancel_update--> Loaded
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping, Sequence
from typing import Any, TypeVar

from doc_vector_index.logging_config import get_logger
from doc_vector_index.models import (
    CreateIndexConfig,
    IndexHandle,
    IndexItem,
    IndexSnapshot,
    IndexStats,
    QueryResult,
)
from doc_vector_index.storage.base import IndexTransport
from doc_vector_index.telemetry import TelemetryService, traced
from doc_vector_index.vector.errors import (
    ConflictError,
    DuplicateIdError,
    IndexCreationError,
    IndexNotFoundError,
    NoDataError,
    NoUpdateError,
    PublishError,
    VectorIndexError,
)
from doc_vector_index.vector.similarity import (
    MetadataFilter,
    cosine_similarity,
    normalize,
    select_by_metadata,
)

logger = get_logger(__name__)

T = TypeVar("T")


class VectorIndex:
    """Vector index published through an IndexTransport.

    Mutating methods join an open update if there is one; otherwise they
    open, commit and (on failure) cancel a one-off update around the single
    change. Only one update may be open at a time.

    Attributes:
        transport: Collaborator used to fetch and publish snapshots.

    Example:
        >>> index = VectorIndex(MemoryTransport())
        >>> await index.create_index()
        >>> await index.insert_item([0.1, 0.9], metadata={"lang": "en"})
        >>> results = await index.query_items([0.1, 0.8], top_k=3)
    """

    def __init__(self, transport: IndexTransport, index_name: str | None = None) -> None:
        """Initialize without touching the transport.

        Args:
            transport: Snapshot transport.
            index_name: Name of an existing index. Leave empty and call
                create_index() to provision a new one.
        """
        self.transport = transport
        self._index_name = index_name
        self._handle: IndexHandle | None = None
        self._data: IndexSnapshot | None = None
        self._update: IndexSnapshot | None = None
        self._loaded = False

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def index_name(self) -> str | None:
        """Name of the index, from the constructor or create_index()."""
        if self._index_name:
            return self._index_name
        return self._handle.name if self._handle else None

    @property
    def loaded(self) -> bool:
        """True once a committed snapshot is resident."""
        return self._loaded

    @property
    def update_in_progress(self) -> bool:
        """True while an update is open."""
        return self._update is not None

    @property
    def pending(self) -> IndexSnapshot | None:
        """The open pending snapshot, for owners extending the transaction."""
        return self._update

    @property
    def committed(self) -> IndexSnapshot | None:
        """The resident committed snapshot (not a copy; do not mutate)."""
        return self._data

    def invalidate(self) -> None:
        """Drop the resident snapshot so the next access refetches it.

        Raises:
            ConflictError: If an update is open.
        """
        if self._update is not None:
            raise ConflictError()
        self._data = None
        self._loaded = False

    async def is_index_created(self, name: str | None = None) -> bool:
        """Return True if the transport has a snapshot published under the name.

        Args:
            name: Name to check, defaults to this index's name.
        """
        name = name or self.index_name
        if not name:
            return False
        return await self.transport.exists(name)

    async def load_index_data(self) -> None:
        """Fetch the committed snapshot once per instance.

        Raises:
            IndexNotFoundError: If no name is configured or the transport
                does not know the name.
            VectorIndexError: If the fetched blob cannot be parsed.
        """
        if self._loaded:
            return

        name = self.index_name
        if not name:
            raise IndexNotFoundError(None)
        if not await self.is_index_created(name):
            raise IndexNotFoundError(name)

        blob = await self.transport.fetch(name)
        try:
            self._data = IndexSnapshot.from_blob(blob)
        except ValueError as e:
            raise VectorIndexError(f"Failed to load index data for '{name}': {e}") from e

        if self._handle is None:
            self._handle = IndexHandle(name=name)
        self._loaded = True
        logger.debug("Loaded index '%s' with %d items", name, len(self._data.items))

    def _require_data(self) -> IndexSnapshot:
        if self._data is None:
            raise NoDataError()
        return self._data

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def create_index(self, config: CreateIndexConfig | None = None) -> IndexHandle:
        """Provision and publish a new, empty index.

        On failure any partially created index is removed (best effort)
        before IndexCreationError is raised.

        Args:
            config: Version, metadata allow-list and delete_if_exists flag.

        Returns:
            The handle of the new index.
        """
        config = config or CreateIndexConfig()
        if self._update is not None:
            raise ConflictError()
        if config.delete_if_exists and self.index_name:
            await self.delete_index()
            self._handle = None
            self._index_name = None

        try:
            handle = await self.transport.create(config)
            self._handle = handle
            snapshot = IndexSnapshot(version=config.version, metadata_config=config.metadata_config)
            receipt = await self.transport.publish(handle, snapshot.to_blob())
            if receipt is None:
                raise PublishError(handle.name, "publication was not acknowledged")
        except Exception as e:
            logger.error("Creating index failed, cleaning up: %s", e)
            await self._delete_quietly()
            raise IndexCreationError(str(e)) from e

        self._index_name = handle.name
        self._data = snapshot
        self._loaded = True
        logger.info("Created index '%s'", handle.name)
        return handle

    async def delete_index(self) -> None:
        """Remove the index's name record and key, and drop resident data."""
        name = self.index_name
        handle = self._handle or (IndexHandle(name=name) if name else None)
        if handle is not None:
            await self.transport.remove(handle)
            logger.info("Deleted index '%s'", handle.name)
        self._data = None
        self._update = None
        self._loaded = False

    async def _delete_quietly(self) -> None:
        try:
            await self.delete_index()
        except Exception as e:
            logger.warning("Cleanup of partially created index failed: %s", e)
        self._handle = None

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    async def begin_update(self) -> None:
        """Open an update on a deep copy of the committed snapshot.

        Raises:
            ConflictError: If an update is already open.
        """
        if self._update is not None:
            raise ConflictError()
        await self.load_index_data()
        self._update = self._require_data().model_copy(deep=True)

    def cancel_update(self) -> None:
        """Discard the open update, if any."""
        self._update = None

    @traced("vector_index.end_update")
    async def end_update(self) -> None:
        """Publish the pending snapshot and make it the committed one.

        Raises:
            NoUpdateError: If no update is open.
            NoDataError: If no committed snapshot exists.
            PublishError: If the transport fails or does not acknowledge.
                The pending update is kept so the caller can cancel it.
        """
        if self._update is None:
            raise NoUpdateError()
        self._require_data()

        name = self.index_name
        handle = self._handle or IndexHandle(name=name or "")
        try:
            receipt = await self.transport.publish(handle, self._update.to_blob())
        except VectorIndexError:
            raise
        except Exception as e:
            raise PublishError(name, str(e)) from e
        if receipt is None:
            raise PublishError(name, "publication was not acknowledged")

        self._data = self._update
        self._update = None
        TelemetryService.get_instance().count("vector_index.updates.committed")
        logger.info(
            "Published index '%s' (%d items, content %s)",
            name,
            len(self._data.items),
            receipt.content_id,
        )

    async def _in_update(self, change: Callable[[IndexSnapshot], T]) -> T:
        """Apply ``change`` to the pending snapshot, opening a one-off update if needed."""
        if self._update is not None:
            return change(self._update)

        await self.begin_update()
        try:
            pending = self._update
            if pending is None:
                raise NoUpdateError()
            result = change(pending)
            await self.end_update()
        except Exception:
            self.cancel_update()
            raise
        return result

    # -------------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------------

    async def insert_item(
        self,
        vector: Sequence[float],
        id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> IndexItem:
        """Add a new item.

        Args:
            vector: Embedding vector (required).
            id: Item id; a UUID is generated when omitted.
            metadata: Item metadata, filtered by the metadata allow-list.

        Returns:
            A copy of the stored item.

        Raises:
            ValueError: If no vector is given.
            DuplicateIdError: If the id already exists.
        """
        return await self._in_update(
            lambda update: self._add_item_to_update(update, vector, id, metadata, unique=True)
        )

    async def upsert_item(
        self,
        vector: Sequence[float],
        id: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> IndexItem:
        """Add an item or replace the vector and metadata of an existing one."""
        return await self._in_update(
            lambda update: self._add_item_to_update(update, vector, id, metadata, unique=False)
        )

    async def delete_item(self, id: str) -> None:
        """Remove an item; absent ids are ignored."""

        def remove(update: IndexSnapshot) -> None:
            for position, item in enumerate(update.items):
                if item.id == id:
                    del update.items[position]
                    return

        await self._in_update(remove)

    @staticmethod
    def _add_item_to_update(
        update: IndexSnapshot,
        vector: Sequence[float] | None,
        id: str | None,
        metadata: Mapping[str, Any] | None,
        unique: bool,
    ) -> IndexItem:
        if vector is None or len(vector) == 0:
            raise ValueError("Vector is required")

        item_id = id or str(uuid.uuid4())
        existing = next((item for item in update.items if item.id == item_id), None)
        if unique and existing is not None:
            raise DuplicateIdError("item", item_id)

        indexed = update.metadata_config.indexed
        if indexed and metadata:
            kept = {key: metadata[key] for key in indexed if key in metadata}
        else:
            kept = dict(metadata or {})

        new_item = IndexItem(
            id=item_id,
            vector=list(vector),
            norm=normalize(vector),
            metadata=kept,
        )

        if existing is not None:
            existing.vector = new_item.vector
            existing.norm = new_item.norm
            existing.metadata = new_item.metadata
            return existing.model_copy(deep=True)

        update.items.append(new_item)
        return new_item.model_copy(deep=True)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_index_stats(self) -> IndexStats:
        """Return version, metadata config and item count."""
        await self.load_index_data()
        data = self._require_data()
        return IndexStats(
            version=data.version,
            metadata_config=data.metadata_config.model_copy(deep=True),
            items=len(data.items),
        )

    async def get_item(self, id: str) -> IndexItem | None:
        """Return a copy of the item with ``id``, or None."""
        await self.load_index_data()
        for item in self._require_data().items:
            if item.id == id:
                return item.model_copy(deep=True)
        return None

    async def list_items(self) -> list[IndexItem]:
        """Return copies of all committed items in index order."""
        await self.load_index_data()
        return [item.model_copy(deep=True) for item in self._require_data().items]

    async def list_items_by_metadata(self, filter: MetadataFilter) -> list[IndexItem]:
        """Return copies of committed items whose metadata matches ``filter``."""
        await self.load_index_data()
        return [
            item.model_copy(deep=True)
            for item in self._require_data().items
            if select_by_metadata(item.metadata, filter)
        ]

    @traced("vector_index.query_items")
    async def query_items(
        self,
        vector: Sequence[float],
        top_k: int,
        filter: MetadataFilter | None = None,
    ) -> list[QueryResult]:
        """Find the ``top_k`` committed items most similar to ``vector``.

        Every surviving item is scored; there is no approximate structure.
        Results are sorted by descending score and equal scores keep index
        order.

        Args:
            vector: Query vector.
            top_k: Maximum number of results.
            filter: Optional metadata filter applied before scoring.

        Returns:
            Scored copies of the best matching items.
        """
        await self.load_index_data()
        items = self._require_data().items
        if filter:
            items = [item for item in items if select_by_metadata(item.metadata, filter)]
        if top_k <= 0 or not items:
            return []

        query_norm = normalize(vector)
        scores = [cosine_similarity(vector, query_norm, item.vector, item.norm) for item in items]
        # sorted() is stable, also with reverse=True
        ranked = sorted(range(len(items)), key=lambda position: scores[position], reverse=True)

        TelemetryService.get_instance().count("vector_index.items.scanned", len(items))
        return [
            QueryResult(item=items[position].model_copy(deep=True), score=scores[position])
            for position in ranked[:top_k]
        ]
