"""Abstract collaborators for publishing snapshots and storing document text.

The vector index never touches storage directly. It hands serialized
snapshots to an IndexTransport, which publishes them under a stable name,
and document text goes to a ContentStore, which returns a content id.

Classes:
    IndexTransport: Abstract name-addressed snapshot transport.
    ContentStore: Abstract content-addressed text store.
"""

from abc import ABC, abstractmethod

from doc_vector_index.models import CreateIndexConfig, IndexHandle, PublishReceipt


class IndexTransport(ABC):
    """Abstract transport for publishing and fetching index snapshots.

    Implementations must be safe to call from a single asyncio task and
    must never raise from exists() for an unknown name.
    """

    @abstractmethod
    async def create(self, config: CreateIndexConfig) -> IndexHandle:
        """Provision addressing and key material for a new index."""

    @abstractmethod
    async def publish(self, handle: IndexHandle, blob: str) -> PublishReceipt | None:
        """Durably publish ``blob`` under ``handle.name``.

        Returns:
            A receipt on success, or None if the publication was not acknowledged.
        """

    @abstractmethod
    async def fetch(self, name: str) -> str:
        """Fetch the latest blob published under ``name``.

        Raises:
            IndexNotFoundError: If nothing is published under the name.
        """

    @abstractmethod
    async def exists(self, name: str) -> bool:
        """Return True if something is published under ``name``."""

    @abstractmethod
    async def remove(self, handle: IndexHandle) -> None:
        """Remove the name record and key material for ``handle``."""


class ContentStore(ABC):
    """Abstract content-addressed store for document text."""

    @abstractmethod
    async def upload(self, text: str) -> str | None:
        """Store ``text`` and return its content id (None on failure)."""

    @abstractmethod
    async def download(self, content_id: str) -> str:
        """Return the text stored under ``content_id``.

        Raises:
            ContentNotFoundError: If the id is unknown.
        """
