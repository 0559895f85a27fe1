"""Data models for doc-vector-index.

This module provides Pydantic v2 models for the vector index snapshot,
the document catalog, query results and persisted settings.

Models:
    IndexItem: A stored vector with cached norm and metadata.
    MetadataConfig: Metadata allow-list configuration.
    DocumentCatalog: Bidirectional uri <-> document id mapping.
    IndexSnapshot: Unit of persistence for a vector index.
    QueryResult: An item paired with its similarity score.
    IndexStats: Summary of a vector index.
    CatalogStats: Summary of a document index.
    DocumentSection: Rendered text section of a document result.
    TextChunk: A span of source text produced by the splitter.
    EmbeddingsResponse: Result of an embeddings model call.
    IndexHandle: Transport addressing for a published index.
    PublishReceipt: Transport acknowledgement of a publication.
    CreateIndexConfig: Options for provisioning a new index.
    Settings: Persisted CLI settings.
"""

from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator, model_validator

MetadataValue = str | int | float | bool
"""Scalar types allowed as metadata values."""

SNAPSHOT_FORMAT_VERSION = 1
CATALOG_VERSION = 1

# =============================================================================
# Vector Index
# =============================================================================


class IndexItem(BaseModel):
    """A vector stored in the index.

    Attributes:
        id: Unique item id.
        vector: Embedding vector.
        norm: Cached Euclidean norm of ``vector``.
        metadata: Scalar metadata used for filtering.
    """

    id: str = Field(description="Unique item id")
    vector: list[float] = Field(description="Embedding vector")
    norm: float = Field(default=0.0, description="Cached Euclidean norm of vector")
    metadata: dict[str, MetadataValue] = Field(default_factory=dict, description="Item metadata")


class MetadataConfig(BaseModel):
    """Metadata configuration for an index.

    When ``indexed`` is a non-empty list only those keys are kept on insert;
    otherwise metadata is stored verbatim.
    """

    indexed: list[str] | None = Field(default=None, description="Metadata keys to retain")


class DocumentCatalog(BaseModel):
    """Bidirectional mapping between document uris and document ids.

    Invariant: ``count == len(uri_to_id) == len(id_to_uri)`` and the two maps
    are inverses of each other. Use add()/remove() to keep it that way.
    """

    version: int = Field(default=CATALOG_VERSION, description="Catalog format version")
    count: int = Field(default=0, description="Number of catalogued documents")
    uri_to_id: dict[str, str] = Field(default_factory=dict, description="uri -> document id")
    id_to_uri: dict[str, str] = Field(default_factory=dict, description="document id -> uri")

    @model_validator(mode="after")
    def validate_consistency(self) -> "DocumentCatalog":
        """Reject catalogs whose maps and count disagree."""
        if not (self.count == len(self.uri_to_id) == len(self.id_to_uri)):
            raise ValueError(
                f"Catalog count {self.count} does not match entries "
                f"({len(self.uri_to_id)} uris, {len(self.id_to_uri)} ids)"
            )
        for uri, document_id in self.uri_to_id.items():
            if self.id_to_uri.get(document_id) != uri:
                raise ValueError(f"Catalog entry for '{uri}' is not mirrored by its id")
        return self

    def add(self, uri: str, document_id: str) -> None:
        """Register a document in both directions.

        Any entry previously held by ``uri`` or by ``document_id`` is
        dropped first so the two maps stay inverses.
        """
        self.remove(uri)
        old_uri = self.id_to_uri.pop(document_id, None)
        if old_uri is not None:
            self.uri_to_id.pop(old_uri, None)
        self.uri_to_id[uri] = document_id
        self.id_to_uri[document_id] = uri
        self.count = len(self.uri_to_id)

    def remove(self, uri: str) -> str | None:
        """Remove the document catalogued under ``uri`` and return its id, if any."""
        document_id = self.uri_to_id.pop(uri, None)
        if document_id is not None:
            self.id_to_uri.pop(document_id, None)
        self.count = len(self.uri_to_id)
        return document_id


class IndexSnapshot(BaseModel):
    """Complete state of a vector index at a point in time.

    This is the unit of persistence: snapshots are serialized wholesale and
    published through the transport. ``catalog`` is only set by a document
    index, which keeps its catalog in the same blob as the chunk vectors.
    """

    format_version: int = Field(default=SNAPSHOT_FORMAT_VERSION, description="Blob format version")
    version: int = Field(default=1, description="Index version supplied at creation")
    metadata_config: MetadataConfig = Field(default_factory=MetadataConfig)
    items: list[IndexItem] = Field(default_factory=list)
    catalog: DocumentCatalog | None = Field(default=None, description="Document catalog, if any")

    @field_validator("items")
    @classmethod
    def validate_unique_ids(cls, v: list[IndexItem]) -> list[IndexItem]:
        """Item ids must be unique within a snapshot."""
        seen: set[str] = set()
        for item in v:
            if item.id in seen:
                raise ValueError(f"Duplicate item id in snapshot: {item.id}")
            seen.add(item.id)
        return v

    def to_blob(self) -> str:
        """Serialize to the JSON blob handed to the transport."""
        return self.model_dump_json()

    @classmethod
    def from_blob(cls, blob: str | bytes) -> "IndexSnapshot":
        """Parse a blob fetched from the transport."""
        return cls.model_validate_json(blob)


class QueryResult(BaseModel):
    """An item paired with its cosine similarity score (higher is closer)."""

    item: IndexItem
    score: float


class IndexStats(BaseModel):
    """Summary returned by VectorIndex.get_index_stats()."""

    version: int
    metadata_config: MetadataConfig
    items: int


class CatalogStats(BaseModel):
    """Summary returned by DocumentIndex.get_catalog_stats()."""

    version: int
    documents: int
    chunks: int
    metadata_config: MetadataConfig


class DocumentSection(BaseModel):
    """A rendered span of document text built from one or more retrieved chunks."""

    text: str
    token_count: int
    score: float


class CreateIndexConfig(BaseModel):
    """Options for provisioning a new index.

    Attributes:
        version: Index version recorded in the snapshot.
        metadata_config: Metadata allow-list.
        delete_if_exists: Remove an already loaded index before creating.
    """

    version: int = Field(default=1, ge=1)
    metadata_config: MetadataConfig = Field(default_factory=MetadataConfig)
    delete_if_exists: bool = False


# =============================================================================
# Collaborators
# =============================================================================


class TextChunk(BaseModel):
    """A chunk of source text with its tokens and ``[start_pos, end_pos)`` offsets."""

    text: str
    tokens: list[Any] = Field(default_factory=list)
    start_pos: int = Field(ge=0)
    end_pos: int = Field(ge=0)


class EmbeddingsResponse(BaseModel):
    """Outcome of an embeddings model call.

    ``output`` is set on success and positionally aligned with the inputs;
    ``message`` describes a rate limit or error.
    """

    status: Literal["success", "rate_limited", "error"]
    output: list[list[float]] | None = None
    message: str | None = None


class IndexHandle(BaseModel):
    """Transport addressing for an index.

    Attributes:
        name: Public, resolvable index name.
        key: Private key material the transport needs to publish under the name.
    """

    name: str
    key: str | None = None


class PublishReceipt(BaseModel):
    """Acknowledgement that a blob has been durably published under a name."""

    name: str
    content_id: str


# =============================================================================
# Settings
# =============================================================================


class Settings(BaseModel):
    """Persisted settings for the doc-vector-index CLI.

    Example:
        >>> settings = Settings(default_index="k51qzi5uqu5d", chunk_size=256)
    """

    default_index: str | None = Field(default=None, description="Index used when none is given")
    chunk_size: int = Field(default=512, gt=0, description="Tokens per chunk")
    chunk_overlap: int = Field(default=0, ge=0, description="Overlap tokens between chunks")
    embedding_model: str = Field(
        default="amazon.titan-embed-text-v2:0", description="Bedrock embedding model id"
    )
    aws_region: str | None = Field(default=None, description="AWS region for Bedrock")

    @model_validator(mode="after")
    def validate_overlap(self) -> "Settings":
        """Overlap must leave room for new content in each chunk."""
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap ({self.chunk_overlap}) must be less than "
                f"chunk_size ({self.chunk_size})"
            )
        return self

