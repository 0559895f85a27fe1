"""Similarity engine: vector norms, cosine similarity and metadata filters.

Functions:
    normalize: Euclidean norm of a vector.
    cosine_similarity: Cosine similarity from precomputed norms.
    select_by_metadata: Evaluate a metadata filter against an item's metadata.

Metadata filters follow a small Mongo-style language:

    {"documentId": "abc"}                         equality
    {"year": {"$gte": 2020, "$lt": 2024}}         comparisons
    {"lang": {"$in": ["en", "nl"]}}               set membership
    {"$or": [{"a": 1}, {"b": {"$ne": 2}}]}        boolean composition

Absent fields, unknown operators and incomparable values never raise;
they simply do not match.
"""

from __future__ import annotations

import math
import operator
from collections.abc import Callable, Mapping, Sequence
from typing import Any

import numpy as np

from doc_vector_index.logging_config import get_logger

logger = get_logger(__name__)

MetadataFilter = Mapping[str, Any]

_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "$eq": operator.eq,
    "$ne": operator.ne,
    "$gt": operator.gt,
    "$gte": operator.ge,
    "$lt": operator.lt,
    "$lte": operator.le,
}


def normalize(vector: Sequence[float]) -> float:
    """Return the Euclidean norm ``sqrt(sum(v_i ** 2))`` of a vector."""
    if len(vector) == 0:
        return 0.0
    return float(np.linalg.norm(np.asarray(vector, dtype=np.float64)))


def cosine_similarity(
    vector_a: Sequence[float],
    norm_a: float,
    vector_b: Sequence[float],
    norm_b: float,
) -> float:
    """Cosine similarity of two vectors given their precomputed norms.

    Returns 0.0 when either norm is zero or the vectors differ in length.

    Example:
        >>> v = [3.0, 4.0]
        >>> round(cosine_similarity(v, normalize(v), v, normalize(v)), 6)
        1.0
    """
    if norm_a == 0 or norm_b == 0:
        return 0.0
    if len(vector_a) != len(vector_b):
        logger.debug("Dimension mismatch: %d vs %d", len(vector_a), len(vector_b))
        return 0.0
    dot = float(np.dot(np.asarray(vector_a, dtype=np.float64), np.asarray(vector_b, dtype=np.float64)))
    score = dot / (norm_a * norm_b)
    if math.isnan(score):
        return 0.0
    # Rounding can push identical vectors slightly past 1
    return max(-1.0, min(1.0, score))


def select_by_metadata(metadata: Mapping[str, Any], filter: MetadataFilter | None) -> bool:
    """Return True if ``metadata`` satisfies ``filter``.

    An empty or missing filter matches everything.
    """
    if not filter:
        return True

    for key, condition in filter.items():
        if key == "$and":
            if not _is_filter_list(condition):
                return False
            if not all(select_by_metadata(metadata, sub) for sub in condition):
                return False
        elif key == "$or":
            if not _is_filter_list(condition):
                return False
            if not any(select_by_metadata(metadata, sub) for sub in condition):
                return False
        elif key.startswith("$"):
            # Unknown top-level operator
            return False
        else:
            if key not in metadata:
                return False
            if not _match_condition(metadata[key], condition):
                return False
    return True


def _is_filter_list(value: Any) -> bool:
    return isinstance(value, list | tuple) and all(isinstance(v, Mapping) for v in value)


def _match_condition(value: Any, condition: Any) -> bool:
    """Match one metadata value against a literal or an operator dict."""
    if not isinstance(condition, Mapping):
        return bool(value == condition)

    for op, expected in condition.items():
        if op in _COMPARISONS:
            try:
                if not _COMPARISONS[op](value, expected):
                    return False
            except TypeError:
                return False
        elif op == "$in":
            if not isinstance(expected, list | tuple | set) or value not in expected:
                return False
        elif op == "$nin":
            if not isinstance(expected, list | tuple | set) or value in expected:
                return False
        else:
            return False
    return True
