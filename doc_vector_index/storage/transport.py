"""Transport and content store implementations.

Both implementations here use content addressing (sha256 of the payload)
for blobs and a mutable name record pointing at the latest blob, the same
shape as IPFS content ids plus IPNS names.

Classes:
    MemoryTransport: In-process implementation of both.
    FileTransport: Local directory implementation of both.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import os
import secrets
from datetime import datetime
from pathlib import Path

from doc_vector_index.logging_config import get_logger
from doc_vector_index.models import CreateIndexConfig, IndexHandle, PublishReceipt
from doc_vector_index.storage.base import ContentStore, IndexTransport
from doc_vector_index.vector.errors import ContentNotFoundError, IndexNotFoundError

logger = get_logger(__name__)


def content_id_for(payload: str) -> str:
    """Content address of a text payload (hex sha256)."""
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()


def _generate_handle() -> IndexHandle:
    return IndexHandle(name=f"k{secrets.token_hex(16)}", key=secrets.token_urlsafe(24))


class MemoryTransport(IndexTransport, ContentStore):
    """In-memory transport and content store.

    Useful for tests and for embedding the index in a process that handles
    durability elsewhere.

    Example:
        >>> transport = MemoryTransport()
        >>> index = VectorIndex(transport)
        >>> await index.create_index()
    """

    def __init__(self) -> None:
        self.blobs: dict[str, str] = {}
        self.names: dict[str, str] = {}
        self.keys: dict[str, str] = {}

    async def create(self, config: CreateIndexConfig) -> IndexHandle:
        handle = _generate_handle()
        self.keys[handle.name] = handle.key or ""
        logger.debug("Created in-memory index key for %s", handle.name)
        return handle

    async def publish(self, handle: IndexHandle, blob: str) -> PublishReceipt | None:
        key = self.keys.get(handle.name)
        if key is None or (handle.key is not None and handle.key != key):
            logger.warning("Refusing to publish to '%s': key not owned by this transport", handle.name)
            return None
        content_id = content_id_for(blob)
        self.blobs[content_id] = blob
        self.names[handle.name] = content_id
        return PublishReceipt(name=handle.name, content_id=content_id)

    async def fetch(self, name: str) -> str:
        content_id = self.names.get(name)
        if content_id is None:
            raise IndexNotFoundError(name)
        return self.blobs[content_id]

    async def exists(self, name: str) -> bool:
        return name in self.names

    async def remove(self, handle: IndexHandle) -> None:
        self.keys.pop(handle.name, None)
        self.names.pop(handle.name, None)

    async def upload(self, text: str) -> str | None:
        content_id = content_id_for(text)
        self.blobs[content_id] = text
        return content_id

    async def download(self, content_id: str) -> str:
        try:
            return self.blobs[content_id]
        except KeyError:
            raise ContentNotFoundError(content_id) from None


class FileTransport(IndexTransport, ContentStore):
    """Transport and content store backed by a local directory.

    Layout::

        <root>/blobs/<sha256>       content-addressed payloads
        <root>/names/<name>.json    {"content_id": ..., "published_at": ...}
        <root>/keys.json            {name: key} key ring

    Writes go through a temporary file and os.replace so a crash never
    leaves a half-written name record. Disk IO runs in a worker thread.

    Example:
        >>> transport = FileTransport(get_store_dir())
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    @property
    def _blobs_dir(self) -> Path:
        return self.root / "blobs"

    @property
    def _names_dir(self) -> Path:
        return self.root / "names"

    @property
    def _keys_path(self) -> Path:
        return self.root / "keys.json"

    def _name_path(self, name: str) -> Path:
        if not name or "/" in name or "\\" in name or name.startswith("."):
            raise IndexNotFoundError(name)
        return self._names_dir / f"{name}.json"

    @staticmethod
    def _write_atomic(path: Path, data: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.{secrets.token_hex(4)}.tmp")
        tmp_path.write_text(data, encoding="utf-8")
        os.replace(tmp_path, path)

    def _load_keys(self) -> dict[str, str]:
        if not self._keys_path.exists():
            return {}
        with open(self._keys_path, encoding="utf-8") as f:
            data: dict[str, str] = json.load(f)
        return data

    def _save_keys(self, keys: dict[str, str]) -> None:
        self._write_atomic(self._keys_path, json.dumps(keys, indent=2))

    def _write_blob(self, payload: str) -> str:
        content_id = content_id_for(payload)
        blob_path = self._blobs_dir / content_id
        if not blob_path.exists():
            self._write_atomic(blob_path, payload)
        return content_id

    def _create_sync(self) -> IndexHandle:
        handle = _generate_handle()
        keys = self._load_keys()
        keys[handle.name] = handle.key or ""
        self._save_keys(keys)
        logger.debug("Created index key for %s in %s", handle.name, self.root)
        return handle

    def _publish_sync(self, handle: IndexHandle, blob: str) -> PublishReceipt | None:
        key = self._load_keys().get(handle.name)
        if key is None or (handle.key is not None and handle.key != key):
            logger.warning("Refusing to publish to '%s': key not found in %s", handle.name, self._keys_path)
            return None
        content_id = self._write_blob(blob)
        record = {"content_id": content_id, "published_at": datetime.now().isoformat()}
        self._write_atomic(self._name_path(handle.name), json.dumps(record, indent=2))
        return PublishReceipt(name=handle.name, content_id=content_id)

    def _fetch_sync(self, name: str) -> str:
        name_path = self._name_path(name)
        if not name_path.exists():
            raise IndexNotFoundError(name)
        with open(name_path, encoding="utf-8") as f:
            record = json.load(f)
        blob_path = self._blobs_dir / record["content_id"]
        if not blob_path.exists():
            raise IndexNotFoundError(name)
        return blob_path.read_text(encoding="utf-8")

    def _exists_sync(self, name: str) -> bool:
        try:
            return self._name_path(name).exists()
        except IndexNotFoundError:
            return False

    def _remove_sync(self, handle: IndexHandle) -> None:
        keys = self._load_keys()
        if keys.pop(handle.name, None) is not None:
            self._save_keys(keys)
        self._name_path(handle.name).unlink(missing_ok=True)

    def _download_sync(self, content_id: str) -> str:
        blob_path = self._blobs_dir / content_id
        if "/" in content_id or not blob_path.exists():
            raise ContentNotFoundError(content_id)
        return blob_path.read_text(encoding="utf-8")

    async def create(self, config: CreateIndexConfig) -> IndexHandle:
        return await asyncio.to_thread(self._create_sync)

    async def publish(self, handle: IndexHandle, blob: str) -> PublishReceipt | None:
        return await asyncio.to_thread(self._publish_sync, handle, blob)

    async def fetch(self, name: str) -> str:
        return await asyncio.to_thread(self._fetch_sync, name)

    async def exists(self, name: str) -> bool:
        return await asyncio.to_thread(self._exists_sync, name)

    async def remove(self, handle: IndexHandle) -> None:
        await asyncio.to_thread(self._remove_sync, handle)

    async def upload(self, text: str) -> str | None:
        return await asyncio.to_thread(self._write_blob, text)

    async def download(self, content_id: str) -> str:
        return await asyncio.to_thread(self._download_sync, content_id)
