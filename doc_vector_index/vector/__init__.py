"""Vector and document index for doc-vector-index.

This module provides a transactional vector index with exhaustive cosine
similarity search and a document index on top of it that chunks, embeds
and catalogs whole documents.

Classes:
    VectorIndex: Transactional vector index bound to one transport name.
    DocumentIndex: Document-level upsert, delete, list and query.
    DocumentIndexConfig: Collaborators and options of a DocumentIndex.
    Document: Handle to a stored document.
    DocumentResult: A document with its matching chunks and score.
    BedrockEmbeddings: AWS Bedrock embedding client.
    EmbeddingStats: Statistics from embedding generation (tokens, cost).
    SimpleTokenizer: Default regex tokenizer.
    TextSplitter: Recursive separator text splitter.
    TextSplitterConfig: Text splitter options.

Exceptions:
    VectorIndexError: Base exception for index operations.
    (see doc_vector_index.vector.errors for the full taxonomy)

Functions:
    normalize: Euclidean norm of a vector.
    cosine_similarity: Cosine similarity from precomputed norms.
    select_by_metadata: Evaluate a metadata filter.
    batch_chunks: Group chunks into embedding batches.
"""

from doc_vector_index.vector.chunking import (
    SimpleTokenizer,
    TextSplitter,
    TextSplitterConfig,
    Tokenizer,
)
from doc_vector_index.vector.documents import (
    Document,
    DocumentIdentityResolver,
    DocumentIndex,
    DocumentIndexConfig,
    DocumentResult,
    batch_chunks,
    collapse_newlines,
)
from doc_vector_index.vector.embeddings import (
    EMBEDDING_MODEL_ID,
    BedrockEmbeddings,
    EmbeddingsModel,
    EmbeddingStats,
)
from doc_vector_index.vector.errors import (
    ChunkingError,
    ConflictError,
    ContentNotFoundError,
    DocumentOperationError,
    DuplicateIdError,
    EmbeddingError,
    IndexCreationError,
    IndexNotFoundError,
    NoDataError,
    NotConfiguredError,
    NoUpdateError,
    PublishError,
    UploadError,
    VectorIndexError,
)
from doc_vector_index.vector.index import VectorIndex
from doc_vector_index.vector.similarity import (
    MetadataFilter,
    cosine_similarity,
    normalize,
    select_by_metadata,
)

__all__ = [
    # Classes
    "BedrockEmbeddings",
    "Document",
    "DocumentIdentityResolver",
    "DocumentIndex",
    "DocumentIndexConfig",
    "DocumentResult",
    "EmbeddingStats",
    "EmbeddingsModel",
    "MetadataFilter",
    "SimpleTokenizer",
    "TextSplitter",
    "TextSplitterConfig",
    "Tokenizer",
    "VectorIndex",
    # Constants
    "EMBEDDING_MODEL_ID",
    # Functions
    "batch_chunks",
    "collapse_newlines",
    "cosine_similarity",
    "normalize",
    "select_by_metadata",
    # Exceptions
    "ChunkingError",
    "ConflictError",
    "ContentNotFoundError",
    "DocumentOperationError",
    "DuplicateIdError",
    "EmbeddingError",
    "IndexCreationError",
    "IndexNotFoundError",
    "NoDataError",
    "NoUpdateError",
    "NotConfiguredError",
    "PublishError",
    "UploadError",
    "VectorIndexError",
]
