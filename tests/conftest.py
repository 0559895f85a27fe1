"""Shared fixtures for doc-vector-index tests."""

import hashlib
from collections.abc import Generator

import numpy as np
import pytest

from doc_vector_index.models import EmbeddingsResponse, IndexHandle, PublishReceipt
from doc_vector_index.storage import MemoryTransport
from doc_vector_index.telemetry import TelemetryService

EMBEDDING_DIMENSIONS = 16


class FakeEmbeddings:
    """Deterministic embeddings model: equal texts get equal vectors."""

    def __init__(self, max_tokens: int = 8000) -> None:
        self.max_tokens = max_tokens
        self.calls: list[list[str]] = []
        self.status = "success"
        self.drop_last = False

    @staticmethod
    def vector_for(text: str) -> list[float]:
        seed = int(hashlib.sha256(text.encode("utf-8")).hexdigest()[:8], 16)
        return np.random.default_rng(seed).normal(size=EMBEDDING_DIMENSIONS).tolist()

    async def create_embeddings(self, inputs: str | list[str]) -> EmbeddingsResponse:
        texts = [inputs] if isinstance(inputs, str) else list(inputs)
        self.calls.append(texts)
        if self.status != "success":
            return EmbeddingsResponse(status=self.status, message=f"fake {self.status}")  # type: ignore[arg-type]
        vectors = [self.vector_for(text) for text in texts]
        if self.drop_last:
            vectors = vectors[:-1]
        return EmbeddingsResponse(status="success", output=vectors)


class UnacknowledgedTransport(MemoryTransport):
    """Memory transport whose publications can be switched to unacknowledged."""

    def __init__(self) -> None:
        super().__init__()
        self.acknowledge = True
        self.publish_calls = 0

    async def publish(self, handle: IndexHandle, blob: str) -> PublishReceipt | None:
        self.publish_calls += 1
        if not self.acknowledge:
            return None
        return await super().publish(handle, blob)


@pytest.fixture(autouse=True)
def reset_telemetry() -> Generator[None]:
    """Each test starts with a fresh, uninitialized telemetry service."""
    TelemetryService.reset()
    yield
    TelemetryService.reset()


@pytest.fixture
def transport() -> MemoryTransport:
    return MemoryTransport()


@pytest.fixture
def flaky_transport() -> UnacknowledgedTransport:
    return UnacknowledgedTransport()


@pytest.fixture
def embeddings() -> FakeEmbeddings:
    return FakeEmbeddings()
