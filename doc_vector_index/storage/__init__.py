"""Storage module for doc-vector-index.

Classes:
    IndexTransport: Abstract snapshot transport.
    ContentStore: Abstract content-addressed text store.
    MemoryTransport: In-memory transport and content store.
    FileTransport: Local directory transport and content store.

Functions:
    get_config_dir: Get the main configuration directory.
    get_settings_path: Get the path to settings.json.
    get_store_dir: Get the local file transport root.
    ensure_config_dir: Create all required directories.
"""

from doc_vector_index.storage.base import ContentStore, IndexTransport
from doc_vector_index.storage.paths import (
    ensure_config_dir,
    get_config_dir,
    get_settings_path,
    get_store_dir,
)
from doc_vector_index.storage.transport import (
    FileTransport,
    MemoryTransport,
    content_id_for,
)

__all__ = [
    # Transports
    "ContentStore",
    "FileTransport",
    "IndexTransport",
    "MemoryTransport",
    # Functions
    "content_id_for",
    "ensure_config_dir",
    "get_config_dir",
    "get_settings_path",
    "get_store_dir",
]
