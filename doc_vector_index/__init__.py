"""doc-vector-index: retrieval-augmented document search.

Ingests text documents, splits them into chunks, embeds each chunk and keeps
the vectors in a transactional, exhaustively scanned vector index whose
snapshots are published through a pluggable transport.
"""

__version__ = "0.1.0"
