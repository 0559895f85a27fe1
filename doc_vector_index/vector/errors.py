"""Error classes for the vector and document index.

Every exception carries an actionable message and inherits from
VectorIndexError so callers can catch the whole family at once.

Exceptions:
    VectorIndexError: Base exception for index operations.
    ConflictError: An update is already in progress.
    NoUpdateError: Commit requested without an open update.
    NoDataError: Commit requested before any snapshot was loaded.
    DuplicateIdError: Item or document id already present.
    IndexNotFoundError: Index name unknown to the transport.
    IndexCreationError: Provisioning a new index failed.
    NotConfiguredError: A required collaborator is missing.
    UploadError: Content store returned no content id.
    PublishError: Transport did not acknowledge a snapshot.
    EmbeddingError: Embeddings model returned a non-success response.
    ChunkingError: Invalid text splitter configuration.
    DocumentOperationError: Failure inside a document transaction.
    ContentNotFoundError: Content id unknown to the content store.
"""


class VectorIndexError(Exception):
    """Base exception for vector index operations.

    Example:
        >>> try:
        ...     await index.query_items(vector, 5)
        ... except VectorIndexError as e:
        ...     print(f"Query failed: {e}")
    """

    pass


class ConflictError(VectorIndexError):
    """Raised when begin_update is called while an update is open."""

    def __init__(self) -> None:
        super().__init__(
            "Update already in progress. "
            "Call end_update() to commit or cancel_update() to discard it first."
        )


class NoUpdateError(VectorIndexError):
    """Raised when end_update is called without a matching begin_update."""

    def __init__(self) -> None:
        super().__init__("No update in progress. Call begin_update() before end_update().")


class NoDataError(VectorIndexError):
    """Raised when committing before any snapshot has been loaded or created."""

    def __init__(self) -> None:
        super().__init__(
            "No index data loaded. Create the index with create_index() "
            "or point the instance at an existing index name."
        )


class DuplicateIdError(VectorIndexError):
    """Raised when inserting an id that already exists.

    Example:
        >>> raise DuplicateIdError("item", "c1a7")
    """

    def __init__(self, entity_type: str, entity_id: str, detail: str | None = None) -> None:
        """Initialize with the duplicated id.

        Args:
            entity_type: Kind of entity ("item" or "document").
            entity_id: The id that already exists.
            detail: Optional extra context.
        """
        self.entity_type = entity_type
        self.entity_id = entity_id
        message = f"{entity_type.capitalize()} with id {entity_id} already exists"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(f"{message}. Use upsert to replace it or choose a different id.")


class IndexNotFoundError(VectorIndexError):
    """Raised when loading an index that does not exist.

    Example:
        >>> raise IndexNotFoundError("k51qzi5uqu5d")
    """

    def __init__(self, index_name: str | None) -> None:
        """Initialize with the missing index name.

        Args:
            index_name: Name that was not found, or None if no index was configured.
        """
        self.index_name = index_name
        if index_name is None:
            message = (
                "Index has not been created. "
                "Create one with create_index() or pass an existing index name."
            )
        else:
            message = (
                f"Index '{index_name}' does not exist. "
                f"Check the name or create a new index with create_index()."
            )
        super().__init__(message)


class IndexCreationError(VectorIndexError):
    """Raised when create_index fails; partial state has been cleaned up."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Error creating index: {message}")


class NotConfiguredError(VectorIndexError):
    """Raised when an operation needs a collaborator that was not configured.

    Example:
        >>> raise NotConfiguredError("Embeddings model")
    """

    def __init__(self, collaborator: str) -> None:
        """Initialize with the missing collaborator name.

        Args:
            collaborator: Human readable collaborator name.
        """
        self.collaborator = collaborator
        super().__init__(
            f"{collaborator} not configured. Pass it in DocumentIndexConfig when creating the index."
        )


class UploadError(VectorIndexError):
    """Raised when the content store does not return a content id."""

    def __init__(self, message: str) -> None:
        super().__init__(f"Failed to upload content: {message}")


class PublishError(VectorIndexError):
    """Raised when the transport does not acknowledge a published snapshot.

    The pending update is left in place so the caller can cancel it.
    """

    def __init__(self, index_name: str | None, message: str) -> None:
        self.index_name = index_name
        super().__init__(f"Error publishing index '{index_name}': {message}")


class EmbeddingError(VectorIndexError):
    """Raised when the embeddings model returns a non-success response.

    Attributes:
        status: Response status reported by the model ("rate_limited" or "error").

    Example:
        >>> raise EmbeddingError("The embeddings API returned a rate limit error.", "rate_limited")
    """

    def __init__(self, message: str, status: str = "error") -> None:
        """Initialize with the model's message.

        Args:
            message: Error description from the embeddings model.
            status: Response status reported by the model.
        """
        self.status = status
        super().__init__(f"Error generating embeddings: {message}")


class ChunkingError(VectorIndexError):
    """Raised for invalid text splitter parameters.

    Example:
        >>> raise ChunkingError("chunk_overlap must be less than chunk_size")
    """

    def __init__(self, message: str) -> None:
        super().__init__(f"Chunking error: {message}")


class DocumentOperationError(VectorIndexError):
    """Failure while mutating a document inside an index transaction.

    The transaction has already been cancelled when this is raised; the
    original exception is available as ``cause`` and ``__cause__``.
    """

    def __init__(self, action: str, uri: str, cause: BaseException) -> None:
        """Initialize with operation context.

        Args:
            action: Operation verb ("adding" or "deleting").
            uri: Document uri involved.
            cause: Underlying exception.
        """
        self.action = action
        self.uri = uri
        self.cause = cause
        super().__init__(f'Error {action} document "{uri}": {cause}')


class ContentNotFoundError(VectorIndexError):
    """Raised when the content store has no content for an id."""

    def __init__(self, content_id: str) -> None:
        self.content_id = content_id
        super().__init__(f"Content '{content_id}' not found in content store.")
