"""Path management for doc-vector-index.

All persistent data lives under ``~/.config/doc-vector-index/`` unless the
``DOC_VECTOR_INDEX_HOME`` environment variable points somewhere else.

Functions:
    get_config_dir: Get the main configuration directory.
    get_settings_path: Get the path to settings.json.
    get_store_dir: Get the root of the local file transport.
    ensure_config_dir: Create all required directories if they don't exist.
"""

import os
from pathlib import Path

HOME_ENV_VAR = "DOC_VECTOR_INDEX_HOME"


def get_config_dir() -> Path:
    """Get the configuration directory for doc-vector-index.

    Returns:
        Path to $DOC_VECTOR_INDEX_HOME or ~/.config/doc-vector-index/

    Example:
        >>> str(get_config_dir()).endswith("doc-vector-index")
        True
    """
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "doc-vector-index"


def get_settings_path() -> Path:
    """Get the path to the settings file.

    Returns:
        Path to <config dir>/settings.json
    """
    return get_config_dir() / "settings.json"


def get_store_dir() -> Path:
    """Get the directory used by the local file transport.

    The store holds content-addressed blobs, name records and the key ring.

    Returns:
        Path to <config dir>/store/
    """
    return get_config_dir() / "store"


def ensure_config_dir() -> Path:
    """Create the configuration and store directories.

    Returns:
        Path to the configuration directory.
    """
    config_dir = get_config_dir()
    config_dir.mkdir(parents=True, exist_ok=True)
    get_store_dir().mkdir(parents=True, exist_ok=True)
    return config_dir
