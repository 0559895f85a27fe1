"""Settings management for doc-vector-index.

Settings persist across CLI sessions as JSON in the configuration
directory: the default index, chunking parameters and the embedding model.

Functions:
    load_settings: Load settings from disk.
    save_settings: Save settings to disk.
    get_default_index: Get the default index name.
    set_default_index: Set the default index name.
    clear_default_index: Clear the default index setting.
"""

from __future__ import annotations

import json

from pydantic import ValidationError

from doc_vector_index.logging_config import get_logger
from doc_vector_index.models import Settings
from doc_vector_index.storage.paths import get_settings_path

logger = get_logger(__name__)


def load_settings() -> Settings:
    """Load settings from disk.

    Returns:
        Settings object. Defaults are returned when the file is missing or
        cannot be read.

    Example:
        >>> settings = load_settings()
        >>> print(settings.chunk_size)
    """
    settings_path = get_settings_path()

    if not settings_path.exists():
        return Settings()

    try:
        with open(settings_path, encoding="utf-8") as f:
            data = json.load(f)
        return Settings(**data)
    except (OSError, json.JSONDecodeError, TypeError, ValidationError) as e:
        logger.warning("Failed to load settings from %s: %s", settings_path, e)
        return Settings()


def save_settings(settings: Settings) -> None:
    """Save settings to disk.

    Args:
        settings: Settings object to save.
    """
    settings_path = get_settings_path()
    settings_path.parent.mkdir(parents=True, exist_ok=True)

    with open(settings_path, "w", encoding="utf-8") as f:
        json.dump(settings.model_dump(), f, indent=2)

    logger.debug("Saved settings to %s", settings_path)


def get_default_index() -> str | None:
    """Get the default index name, or None if not set."""
    return load_settings().default_index


def set_default_index(index_name: str) -> None:
    """Set the default index name.

    Args:
        index_name: Name of the index to use when none is given.

    Example:
        >>> set_default_index("k51qzi5uqu5d")
    """
    settings = load_settings()
    settings.default_index = index_name
    save_settings(settings)
    logger.info("Set default index to '%s'", index_name)


def clear_default_index() -> None:
    settings = load_settings()
    settings.default_index = None
    save_settings(settings)
    logger.info("Cleared default index")
