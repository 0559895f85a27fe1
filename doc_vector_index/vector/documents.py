"""Document index built on top of the vector index.

A document is split into chunks, every chunk is embedded and stored as one
vector index item tagged with the document id, and a catalog maps document
uris to document ids. The catalog travels inside the index snapshot, so
chunk writes and catalog changes are published together or not at all.

Classes:
    DocumentIdentityResolver: Protocol for external uri <-> id registries.
    DocumentIndexConfig: Collaborators and options of a DocumentIndex.
    DocumentIndex: Document-level upsert, delete, list and query.
    Document: Handle to a stored document with lazily loaded text.
    DocumentResult: A document with its matching chunks and score.

Functions:
    batch_chunks: Group chunks into batches under a token ceiling.
    collapse_newlines: Replace line breaks with spaces before embedding.
"""

from __future__ import annotations

import math
import re
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field, replace
from typing import Any, Protocol, TypeVar, runtime_checkable

from doc_vector_index.logging_config import get_logger
from doc_vector_index.models import (
    CatalogStats,
    CreateIndexConfig,
    DocumentCatalog,
    DocumentSection,
    IndexHandle,
    QueryResult,
    TextChunk,
)
from doc_vector_index.storage.base import ContentStore, IndexTransport
from doc_vector_index.telemetry import TelemetryService, traced
from doc_vector_index.vector.chunking import SimpleTokenizer, TextSplitter, TextSplitterConfig, Tokenizer
from doc_vector_index.vector.embeddings import EmbeddingsModel
from doc_vector_index.vector.errors import (
    DocumentOperationError,
    DuplicateIdError,
    EmbeddingError,
    NoDataError,
    NoUpdateError,
    NotConfiguredError,
    UploadError,
)
from doc_vector_index.vector.index import VectorIndex
from doc_vector_index.vector.similarity import MetadataFilter

logger = get_logger(__name__)

T = TypeVar("T")

DOCUMENT_ID_KEY = "documentId"
START_POS_KEY = "startPos"
END_POS_KEY = "endPos"
CHUNK_METADATA_KEYS = (DOCUMENT_ID_KEY, START_POS_KEY, END_POS_KEY)

DEFAULT_MAX_DOCUMENTS = 10
DEFAULT_MAX_CHUNKS = 50
LISTING_SCORE = 1.0
MAX_ENCODED_LENGTH = 40_000  # chars; longer texts are estimated at 4 chars per token

_NEWLINES = re.compile(r"\r?\n")


def collapse_newlines(text: str) -> str:
    """Replace every line break with a single space."""
    return _NEWLINES.sub(" ", text)


def batch_chunks(chunks: list[TextChunk], max_tokens: int) -> list[list[TextChunk]]:
    """Group chunks into embedding batches of at most ``max_tokens`` tokens.

    A chunk is never split: a chunk larger than the ceiling gets a batch of
    its own. Batches are never empty.

    Example:
        >>> [len(b) for b in batch_chunks(chunks_of_3000_tokens_x3, 8000)]
        [2, 1]
    """
    batches: list[list[TextChunk]] = []
    current: list[TextChunk] = []
    total = 0
    for chunk in chunks:
        tokens = len(chunk.tokens)
        if current and total + tokens > max_tokens:
            batches.append(current)
            current = []
            total = 0
        current.append(chunk)
        total += tokens
    if current:
        batches.append(current)
    return batches


@runtime_checkable
class DocumentIdentityResolver(Protocol):
    """External registry mapping document uris to stored content ids."""

    async def resolve_id(self, uri: str) -> str | None: ...

    async def resolve_uri(self, document_id: str) -> str | None: ...


@dataclass
class DocumentIndexConfig:
    """Collaborators and options for a DocumentIndex.

    Attributes:
        index_name: Name of an existing index; None until create_index().
        embeddings: Embeddings model; required for upsert and query.
        tokenizer: Token counter; defaults to SimpleTokenizer.
        chunking: Text splitter options; ``doc_type`` is set per document.
        identity_resolver: External uri <-> id registry; the catalog is used if None.
        content_store: Store for document text; defaults to the transport
            when it implements ContentStore.
    """

    index_name: str | None = None
    embeddings: EmbeddingsModel | None = None
    tokenizer: Tokenizer = field(default_factory=SimpleTokenizer)
    chunking: TextSplitterConfig = field(default_factory=TextSplitterConfig)
    identity_resolver: DocumentIdentityResolver | None = None
    content_store: ContentStore | None = None


class Document:
    """Handle to a stored document.

    The text is not kept by the index; it is fetched from the content store
    the first time it is needed and cached on the handle.
    """

    def __init__(self, index: DocumentIndex, id: str, uri: str, text: str | None = None) -> None:
        self.index = index
        self.id = id
        self.uri = uri
        self._text = text

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, uri={self.uri!r})"

    async def load_text(self) -> str:
        """Return the document text, downloading it on first use."""
        if self._text is None:
            self._text = await self.index.load_document_text(self.id)
        return self._text

    async def get_length(self) -> int:
        """Return the document length in tokens (estimated for very long texts)."""
        text = await self.load_text()
        if len(text) <= MAX_ENCODED_LENGTH:
            return len(self.index.tokenizer.encode(text))
        return math.ceil(len(text) / 4)


class DocumentResult(Document):
    """A document paired with the chunks that matched a query.

    Attributes:
        chunks: Matching chunks, highest score first.
        score: Best chunk score; documents are ranked by it.
    """

    def __init__(self, index: DocumentIndex, id: str, uri: str, chunks: list[QueryResult]) -> None:
        super().__init__(index, id, uri)
        self.chunks = chunks

    @property
    def document_id(self) -> str:
        return self.id

    @property
    def score(self) -> float:
        return max((chunk.score for chunk in self.chunks), default=0.0)

    def _count(self, text: str) -> int:
        return len(self.index.tokenizer.encode(text))

    def _truncate(self, text: str, max_tokens: int) -> str:
        """Longest prefix of ``text`` within ``max_tokens`` tokens."""
        if self._count(text) <= max_tokens:
            return text
        low, high = 0, len(text)
        while low < high:
            middle = (low + high + 1) // 2
            if self._count(text[:middle]) <= max_tokens:
                low = middle
            else:
                high = middle - 1
        return text[:low]

    async def render_all_sections(self, max_tokens: int) -> list[DocumentSection]:
        """Render the matched chunks as sections in document order.

        Neighbouring chunks are merged while the merged span fits in
        ``max_tokens``; a section's score is the mean of its chunk scores.
        """
        text = await self.load_text()
        ordered = sorted(self.chunks, key=lambda chunk: int(chunk.item.metadata[START_POS_KEY]))

        sections: list[DocumentSection] = []
        start = end = 0
        scores: list[float] = []

        def flush() -> None:
            body = self._truncate(text[start:end], max_tokens)
            if body.strip():
                sections.append(
                    DocumentSection(
                        text=body,
                        token_count=self._count(body),
                        score=sum(scores) / len(scores),
                    )
                )

        for chunk in ordered:
            chunk_start = int(chunk.item.metadata[START_POS_KEY])
            chunk_end = int(chunk.item.metadata[END_POS_KEY])
            if scores:
                merged_end = max(end, chunk_end)
                if self._count(text[start:merged_end]) <= max_tokens:
                    end = merged_end
                    scores.append(chunk.score)
                    continue
                flush()
            start, end, scores = chunk_start, chunk_end, [chunk.score]
        if scores:
            flush()
        return sections

    async def render_sections(self, max_tokens: int, max_sections: int = 1) -> list[DocumentSection]:
        """Return the ``max_sections`` best scoring sections."""
        sections = await self.render_all_sections(max_tokens)
        sections.sort(key=lambda section: section.score, reverse=True)
        return sections[:max_sections]


class DocumentIndex:
    """Document index composed over a VectorIndex.

    The catalog commit is tied to the vector index commit: end_update()
    publishes the pending catalog inside the pending snapshot and swaps it
    in only when that publication succeeds.

    Example:
        >>> index = DocumentIndex(transport, DocumentIndexConfig(embeddings=BedrockEmbeddings()))
        >>> await index.create_index()
        >>> await index.upsert_document("notes/intro.md", text)
        >>> results = await index.query_documents("how do transactions work?")
    """

    def __init__(self, transport: IndexTransport, config: DocumentIndexConfig | None = None) -> None:
        self.config = config or DocumentIndexConfig()
        self.index = VectorIndex(transport, self.config.index_name)
        self.embeddings = self.config.embeddings
        self.tokenizer = self.config.tokenizer
        self.identity_resolver = self.config.identity_resolver
        if self.config.content_store is not None:
            self.content_store: ContentStore | None = self.config.content_store
        elif isinstance(transport, ContentStore):
            self.content_store = transport
        else:
            self.content_store = None
        self._pending_catalog: DocumentCatalog | None = None

    @property
    def index_name(self) -> str | None:
        return self.index.index_name

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def is_index_created(self) -> bool:
        return await self.index.is_index_created()

    async def create_index(self, config: CreateIndexConfig | None = None) -> IndexHandle:
        """Create the underlying vector index and load it.

        Chunk metadata keys are always retained, also when the config
        restricts the indexed metadata keys.
        """
        config = config or CreateIndexConfig()
        indexed = config.metadata_config.indexed
        if indexed:
            extra = [key for key in CHUNK_METADATA_KEYS if key not in indexed]
            config = config.model_copy(deep=True)
            config.metadata_config.indexed = [*indexed, *extra]
        handle = await self.index.create_index(config)
        await self._load_catalog()
        return handle

    async def delete_index(self) -> None:
        self._pending_catalog = None
        await self.index.delete_index()

    def invalidate(self) -> None:
        """Drop resident data so the next access refetches the snapshot and catalog."""
        self.index.invalidate()

    async def _load_catalog(self) -> DocumentCatalog:
        """Return the committed catalog, or an empty one if none was published yet."""
        await self.index.load_index_data()
        data = self.index.committed
        if data is None:
            raise NoDataError()
        return data.catalog if data.catalog is not None else DocumentCatalog()

    async def _active_catalog(self) -> DocumentCatalog:
        if self._pending_catalog is not None:
            return self._pending_catalog
        return await self._load_catalog()

    # -------------------------------------------------------------------------
    # Transactions
    # -------------------------------------------------------------------------

    @property
    def update_in_progress(self) -> bool:
        return self.index.update_in_progress

    async def begin_update(self) -> None:
        """Open a vector index update and shadow the catalog."""
        await self.index.begin_update()
        self._pending_catalog = (await self._load_catalog()).model_copy(deep=True)

    def cancel_update(self) -> None:
        """Discard the pending snapshot and pending catalog together."""
        self.index.cancel_update()
        self._pending_catalog = None

    async def end_update(self) -> None:
        """Commit the vector index update, then the catalog.

        The pending catalog rides in the pending snapshot, so the vector
        index commit publishes both. If it fails both pending copies are
        discarded before the error propagates.

        Raises:
            NoUpdateError: If no update is open.
        """
        pending = self.index.pending
        if pending is None or self._pending_catalog is None:
            raise NoUpdateError()

        pending.catalog = self._pending_catalog.model_copy(deep=True)
        try:
            await self.index.end_update()
        except Exception:
            self.cancel_update()
            raise
        self._pending_catalog = None

    async def _in_document_update(
        self, action: str, uri: str, change: Callable[[DocumentCatalog], Awaitable[T]]
    ) -> T:
        """Run ``change`` inside an update, opening a one-off one if needed."""
        if self._pending_catalog is not None:
            return await change(self._pending_catalog)

        await self.begin_update()
        try:
            catalog = self._pending_catalog
            if catalog is None:
                raise NoUpdateError()
            result = await change(catalog)
            await self.end_update()
        except Exception as e:
            self.cancel_update()
            raise DocumentOperationError(action, uri, e) from e
        return result

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    async def get_document_id(self, uri: str) -> str | None:
        """Resolve a uri to its document id, or None if unknown."""
        if self.identity_resolver is not None:
            return await self.identity_resolver.resolve_id(uri)
        return (await self._active_catalog()).uri_to_id.get(uri)

    async def get_document_uri(self, document_id: str) -> str | None:
        """Resolve a document id to its uri, or None if unknown."""
        if self.identity_resolver is not None:
            return await self.identity_resolver.resolve_uri(document_id)
        return (await self._active_catalog()).id_to_uri.get(document_id)

    async def load_document_text(self, document_id: str) -> str:
        if self.content_store is None:
            raise NotConfiguredError("Content store")
        return await self.content_store.download(document_id)

    # -------------------------------------------------------------------------
    # Documents
    # -------------------------------------------------------------------------

    @staticmethod
    def _infer_doc_type(uri: str) -> str | None:
        """Lower-cased extension of the last path segment of ``uri``."""
        name = uri.split("?", 1)[0].split("#", 1)[0].rsplit("/", 1)[-1]
        if "." not in name:
            return None
        return name.rsplit(".", 1)[1].lower() or None

    async def _embed_chunks(self, embeddings_model: EmbeddingsModel, chunks: list[TextChunk]) -> list[list[float]]:
        batches = batch_chunks(chunks, embeddings_model.max_tokens)
        embeddings: list[list[float]] = []
        for number, batch in enumerate(batches, start=1):
            logger.debug("Embedding batch %d/%d (%d chunks)", number, len(batches), len(batch))
            response = await embeddings_model.create_embeddings(
                [collapse_newlines(chunk.text) for chunk in batch]
            )
            if response.status != "success":
                raise EmbeddingError(response.message or response.status, response.status)
            if response.output is None or len(response.output) != len(batch):
                returned = 0 if response.output is None else len(response.output)
                raise EmbeddingError(f"expected {len(batch)} embeddings, got {returned}")
            embeddings.extend(response.output)
        return embeddings

    def _pending_chunk_ids(self, document_id: str) -> list[str]:
        """Ids of pending chunks belonging to ``document_id``."""
        pending = self.index.pending
        if pending is None:
            raise NoUpdateError()
        return [item.id for item in pending.items if item.metadata.get(DOCUMENT_ID_KEY) == document_id]

    @traced("document_index.upsert_document")
    async def upsert_document(
        self,
        uri: str,
        text: str,
        doc_type: str | None = None,
        metadata: Mapping[str, Any] | None = None,
    ) -> Document:
        """Add a document, replacing any document already stored under ``uri``.

        The text is uploaded to the content store (its content id becomes
        the document id), split, embedded in token-bounded batches and then
        written in one update that also removes the previous chunks and
        updates the catalog.

        Args:
            uri: Document uri.
            text: Document text.
            doc_type: Splitter document type; inferred from the uri extension if None.
            metadata: Extra metadata stored on every chunk. The reserved keys
                documentId, startPos and endPos are always set from the chunk
                and take precedence over caller values.

        Returns:
            Handle to the stored document.

        Raises:
            NotConfiguredError: If no embeddings model or content store is configured.
            UploadError: If the content store returns no id.
            DuplicateIdError: If the same content is catalogued under another uri.
            EmbeddingError: If the embeddings model does not succeed.
            DocumentOperationError: If the update fails; it has been cancelled.
        """
        embeddings_model = self.embeddings
        if embeddings_model is None:
            raise NotConfiguredError("Embeddings model")
        if self.content_store is None:
            raise NotConfiguredError("Content store")

        previous_id = await self.get_document_id(uri)

        document_id = await self.content_store.upload(text)
        if not document_id:
            raise UploadError(f'content store returned no id for "{uri}"')

        owner = (await self._active_catalog()).id_to_uri.get(document_id)
        if owner is not None and owner != uri:
            raise DuplicateIdError("document", document_id, f'same content is catalogued as "{owner}"')

        doc_type = doc_type or self._infer_doc_type(uri)
        splitter = TextSplitter(
            replace(self.config.chunking, doc_type=doc_type, tokenizer=self.tokenizer)
        )
        chunks = splitter.split(text)
        embeddings = await self._embed_chunks(embeddings_model, chunks)
        extra = dict(metadata or {})

        async def write(catalog: DocumentCatalog) -> None:
            # the resolver and the catalog may disagree; drop chunks of both
            stale_ids = {previous_id, catalog.remove(uri)} - {None}
            for stale_id in sorted(stale_ids):
                for chunk_id in self._pending_chunk_ids(stale_id):
                    await self.index.delete_item(chunk_id)
            for chunk, vector in zip(chunks, embeddings, strict=True):
                await self.index.insert_item(
                    vector,
                    metadata={
                        **extra,
                        DOCUMENT_ID_KEY: document_id,
                        START_POS_KEY: chunk.start_pos,
                        END_POS_KEY: chunk.end_pos,
                    },
                )
            catalog.add(uri, document_id)

        await self._in_document_update("adding", uri, write)

        TelemetryService.get_instance().count("document_index.documents.upserted")
        logger.info("Indexed document '%s' (%d chunks, id %s)", uri, len(chunks), document_id)
        return Document(self, document_id, uri, text)

    @traced("document_index.delete_document")
    async def delete_document(self, uri: str) -> None:
        """Remove a document's chunks and catalog entry; unknown uris are ignored.

        The catalog entry for ``uri`` is consulted when the identity resolver
        does not know it.

        Raises:
            DocumentOperationError: If the update fails; it has been cancelled.
        """
        document_id = await self.get_document_id(uri)
        if document_id is None:
            document_id = (await self._active_catalog()).uri_to_id.get(uri)
        if document_id is None:
            logger.debug("Document '%s' not found, nothing to delete", uri)
            return

        async def remove(catalog: DocumentCatalog) -> int:
            stale_ids = {document_id, catalog.remove(uri)} - {None}
            chunk_ids = [
                chunk_id for stale_id in sorted(stale_ids) for chunk_id in self._pending_chunk_ids(stale_id)
            ]
            for chunk_id in chunk_ids:
                await self.index.delete_item(chunk_id)
            return len(chunk_ids)

        removed = await self._in_document_update("deleting", uri, remove)
        logger.info("Deleted document '%s' (%d chunks)", uri, removed)

    async def _group_results(self, results: list[QueryResult]) -> list[DocumentResult]:
        groups: dict[str, list[QueryResult]] = {}
        for result in results:
            document_id = str(result.item.metadata.get(DOCUMENT_ID_KEY, ""))
            if document_id:
                groups.setdefault(document_id, []).append(result)

        documents: list[DocumentResult] = []
        for document_id, chunks in groups.items():
            uri = await self.get_document_uri(document_id)
            if uri is None:
                logger.warning("No uri for document id %s, skipping %d chunks", document_id, len(chunks))
                continue
            documents.append(DocumentResult(self, document_id, uri, chunks))
        return documents

    async def list_documents(self) -> list[DocumentResult]:
        """Return every stored document with all of its chunks (score 1.0 each)."""
        items = await self.index.list_items()
        return await self._group_results(
            [QueryResult(item=item, score=LISTING_SCORE) for item in items]
        )

    @traced("document_index.query_documents")
    async def query_documents(
        self,
        query: str,
        max_documents: int = DEFAULT_MAX_DOCUMENTS,
        max_chunks: int = DEFAULT_MAX_CHUNKS,
        filter: MetadataFilter | None = None,
    ) -> list[DocumentResult]:
        """Find the documents whose chunks best match ``query``.

        Args:
            query: Query text.
            max_documents: Maximum number of documents returned.
            max_chunks: Number of chunks retrieved before grouping.
            filter: Optional chunk metadata filter.

        Returns:
            Documents ranked by their best chunk score.

        Raises:
            NotConfiguredError: If no embeddings model is configured.
            EmbeddingError: If embedding the query fails.
        """
        if self.embeddings is None:
            raise NotConfiguredError("Embeddings model")

        response = await self.embeddings.create_embeddings(collapse_newlines(query))
        if response.status != "success":
            raise EmbeddingError(response.message or response.status, response.status)
        if not response.output:
            raise EmbeddingError("no embedding returned for query")

        results = await self.index.query_items(response.output[0], max_chunks, filter)
        documents = await self._group_results(results)
        documents.sort(key=lambda document: document.score, reverse=True)
        return documents[:max_documents]

    async def get_catalog_stats(self) -> CatalogStats:
        """Return catalog version, document and chunk counts and metadata config."""
        stats = await self.index.get_index_stats()
        catalog = await self._load_catalog()
        return CatalogStats(
            version=catalog.version,
            documents=catalog.count,
            chunks=stats.items,
            metadata_config=stats.metadata_config,
        )
