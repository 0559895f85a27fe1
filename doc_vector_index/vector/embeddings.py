"""Embeddings models for document indexing.

The document index talks to embeddings through the EmbeddingsModel
protocol and only ever sees a terminal EmbeddingsResponse: retries and
rate-limit backoff live here, not in the index.

Classes:
    EmbeddingsModel: Protocol for embeddings collaborators.
    EmbeddingStats: Token usage and estimated cost.
    BedrockEmbeddings: AWS Bedrock Titan v2 embeddings client.

Model:
    amazon.titan-embed-text-v2:0
    - Dimensions: 256, 512 or 1024 (default 1024)
    - Max input tokens: 8192 per text
    - Price: $0.00002 per 1000 input tokens
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import boto3
from botocore.exceptions import BotoCoreError, ClientError, NoCredentialsError, ProfileNotFound

from doc_vector_index.logging_config import get_logger
from doc_vector_index.models import EmbeddingsResponse
from doc_vector_index.telemetry import TelemetryService

logger = get_logger(__name__)

EMBEDDING_MODEL_ID = "amazon.titan-embed-text-v2:0"
EMBEDDING_DIMENSIONS = 1024
SUPPORTED_DIMENSIONS = (256, 512, 1024)
MAX_INPUT_TOKENS = 8192
MAX_BATCH_TOKENS = 8000
PRICE_PER_1000_TOKENS = 0.00002  # USD
DEFAULT_RETRY_POLICY = (2.0, 5.0)  # seconds between throttled attempts

THROTTLING_CODES = {"ThrottlingException", "TooManyRequestsException", "ServiceQuotaExceededException"}


@runtime_checkable
class EmbeddingsModel(Protocol):
    """Embeddings collaborator used by the document index.

    Attributes:
        max_tokens: Token ceiling for the inputs of one create_embeddings call.
    """

    max_tokens: int

    async def create_embeddings(self, inputs: str | list[str]) -> EmbeddingsResponse: ...


@dataclass
class EmbeddingStats:
    """Statistics from embedding generation.

    Attributes:
        total_tokens: Total number of input tokens processed.
        total_cost: Total cost in USD.
        num_texts: Number of texts embedded.
    """

    total_tokens: int = 0
    total_cost: float = 0.0
    num_texts: int = 0

    def add(self, tokens: int, texts: int = 1) -> None:
        """Record usage for ``texts`` embedded texts."""
        self.total_tokens += tokens
        self.num_texts += texts
        self.total_cost = (self.total_tokens / 1000) * PRICE_PER_1000_TOKENS


class _ThrottledError(Exception):
    pass


class BedrockEmbeddings:
    """AWS Bedrock embeddings client using the Titan v2 model.

    Uses the standard boto3 credential chain (env vars, AWS profile, IAM
    role). Throttled calls are retried following ``retry_policy``; once it
    is exhausted the response status is ``rate_limited``. Any other failure
    is reported as ``error`` rather than raised.

    Attributes:
        model_id: Bedrock model identifier.
        dimensions: Embedding vector dimensions.
        max_tokens: Token ceiling per create_embeddings call.
        stats: Accumulated token usage.

    Example:
        >>> embeddings = BedrockEmbeddings(region="eu-central-1")
        >>> response = await embeddings.create_embeddings(["first", "second"])
        >>> response.status
        'success'
    """

    def __init__(
        self,
        model_id: str = EMBEDDING_MODEL_ID,
        dimensions: int = EMBEDDING_DIMENSIONS,
        region: str | None = None,
        retry_policy: Sequence[float] = DEFAULT_RETRY_POLICY,
        max_concurrency: int = 4,
        client: Any = None,
    ) -> None:
        """Initialize Bedrock embeddings client.

        Args:
            model_id: Bedrock embedding model id.
            dimensions: Output dimensions (256, 512 or 1024).
            region: AWS region; defaults to the boto3 session region.
            retry_policy: Delays in seconds before each retry of a throttled call.
            max_concurrency: Parallel Bedrock calls per batch.
            client: Pre-built bedrock-runtime client (mainly for tests).

        Raises:
            ValueError: If dimensions is not supported.
        """
        if dimensions not in SUPPORTED_DIMENSIONS:
            raise ValueError(
                f"Unsupported dimensions {dimensions}. Choose one of {list(SUPPORTED_DIMENSIONS)}."
            )
        self.model_id = model_id
        self.dimensions = dimensions
        self.max_tokens = MAX_BATCH_TOKENS
        self.retry_policy = list(retry_policy)
        self.stats = EmbeddingStats()
        self._region = region
        self._client = client
        self._semaphore = asyncio.Semaphore(max_concurrency)

    def _get_client(self) -> Any:
        """Get or create the boto3 bedrock-runtime client."""
        if self._client is None:
            session = boto3.Session(region_name=self._region)
            self._client = session.client("bedrock-runtime")
            logger.debug("Created Bedrock client in region: %s", session.region_name)
        return self._client

    def _invoke(self, text: str) -> tuple[list[float], int]:
        """Embed one text synchronously; returns (embedding, input token count)."""
        # Titan rejects inputs over its token limit (~4.7 chars per token)
        max_chars = int(MAX_INPUT_TOKENS * 4.7)
        if len(text) > max_chars:
            logger.warning("Text truncated from %d to %d chars for embedding", len(text), max_chars)
            text = text[:max_chars]

        try:
            response = self._get_client().invoke_model(
                modelId=self.model_id,
                body=json.dumps(
                    {"inputText": text, "dimensions": self.dimensions, "normalize": True}
                ),
                contentType="application/json",
                accept="application/json",
            )
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in THROTTLING_CODES:
                raise _ThrottledError(str(e)) from e
            raise

        body = json.loads(response["body"].read())
        return list(body["embedding"]), int(body.get("inputTextTokenCount", 0))

    async def _embed_one(self, text: str) -> tuple[list[float], int]:
        attempt = 0
        while True:
            try:
                async with self._semaphore:
                    return await asyncio.to_thread(self._invoke, text)
            except _ThrottledError:
                if attempt >= len(self.retry_policy):
                    raise
                delay = self.retry_policy[attempt]
                attempt += 1
                logger.info("Bedrock throttled, retry %d in %.1fs", attempt, delay)
                await asyncio.sleep(delay)

    async def _embed_all(self, texts: list[str]) -> list[tuple[list[float], int]]:
        """Embed every text; the first failure cancels the remaining requests."""
        tasks = [asyncio.create_task(self._embed_one(text)) for text in texts]
        try:
            return await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    async def create_embeddings(self, inputs: str | list[str]) -> EmbeddingsResponse:
        """Embed one text or a batch of texts.

        Args:
            inputs: Text or list of texts; output order matches input order.

        Returns:
            EmbeddingsResponse with status success, rate_limited or error.
        """
        texts = [inputs] if isinstance(inputs, str) else list(inputs)
        if not texts:
            return EmbeddingsResponse(status="success", output=[])
        if any(not text.strip() for text in texts):
            return EmbeddingsResponse(status="error", message="Input text cannot be empty")

        try:
            results = await self._embed_all(texts)
        except _ThrottledError:
            return EmbeddingsResponse(
                status="rate_limited",
                message="The embeddings API returned a rate limit error.",
            )
        except (NoCredentialsError, ProfileNotFound) as e:
            return EmbeddingsResponse(
                status="error",
                message=f"AWS credentials not configured: {e}. "
                "Set AWS_PROFILE or AWS_ACCESS_KEY_ID/AWS_SECRET_ACCESS_KEY.",
            )
        except (ClientError, BotoCoreError) as e:
            return EmbeddingsResponse(
                status="error",
                message=f"The embeddings API returned an error: {e}",
            )

        tokens = sum(count for _, count in results)
        self.stats.add(tokens, len(texts))
        TelemetryService.get_instance().count("embeddings.tokens", tokens)
        logger.debug("Embedded %d texts (%d tokens)", len(texts), tokens)
        return EmbeddingsResponse(status="success", output=[vector for vector, _ in results])
