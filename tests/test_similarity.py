"""Tests for vector norms, cosine similarity and metadata filters."""

import math

import pytest

from doc_vector_index.vector.similarity import cosine_similarity, normalize, select_by_metadata


class TestNormalize:
    """Tests for the Euclidean norm."""

    def test_normalize_pythagorean_vector(self) -> None:
        """The norm of [3, 4] is 5."""
        assert normalize([3.0, 4.0]) == pytest.approx(5.0)

    def test_normalize_zero_and_empty_vectors(self) -> None:
        """Zero and empty vectors have norm 0."""
        assert normalize([0.0, 0.0, 0.0]) == 0.0
        assert normalize([]) == 0.0


class TestCosineSimilarity:
    """Tests for cosine similarity with precomputed norms."""

    @pytest.mark.parametrize(
        "vector",
        [[1.0, 0.0], [0.3, -2.5, 7.1], [1e-3, 1e-3, 1e-3, 1e-3], [-4.0, -4.0]],
    )
    def test_self_similarity_is_one(self, vector: list[float]) -> None:
        """A vector is maximally similar to itself."""
        norm = normalize(vector)
        assert cosine_similarity(vector, norm, vector, norm) == pytest.approx(1.0)

    @pytest.mark.parametrize(
        ("a", "b"),
        [
            ([1.0, 2.0, 3.0], [-3.0, 0.5, 2.0]),
            ([1.0, 0.0], [-1.0, 0.0]),
            ([0.1, 0.1], [100.0, 100.0]),
            ([5.0, -1.0, 0.0], [0.0, 0.0, 9.0]),
        ],
    )
    def test_similarity_in_range(self, a: list[float], b: list[float]) -> None:
        """Scores of non-zero vectors are within [-1, 1]."""
        score = cosine_similarity(a, normalize(a), b, normalize(b))
        assert -1.0 <= score <= 1.0

    def test_opposite_and_orthogonal_vectors(self) -> None:
        """Opposite vectors score -1 and orthogonal vectors score 0."""
        assert cosine_similarity([1.0, 0.0], 1.0, [-1.0, 0.0], 1.0) == pytest.approx(-1.0)
        assert cosine_similarity([1.0, 0.0], 1.0, [0.0, 1.0], 1.0) == pytest.approx(0.0)

    def test_zero_norm_fails_closed(self) -> None:
        """A zero vector scores 0 instead of dividing by zero."""
        zero = [0.0, 0.0]
        score = cosine_similarity(zero, normalize(zero), [1.0, 1.0], normalize([1.0, 1.0]))
        assert score == 0.0
        assert not math.isnan(score)

    def test_dimension_mismatch_scores_zero(self) -> None:
        """Vectors of different length are not comparable."""
        assert cosine_similarity([1.0, 0.0], 1.0, [1.0, 0.0, 0.0], 1.0) == 0.0


class TestSelectByMetadata:
    """Tests for the metadata filter language."""

    METADATA = {"lang": "en", "year": 2021, "draft": False, "title": "Transactions"}

    def test_empty_filter_matches(self) -> None:
        """No filter means every item matches."""
        assert select_by_metadata(self.METADATA, None)
        assert select_by_metadata(self.METADATA, {})

    def test_plain_values_are_equality(self) -> None:
        """A plain value compares for equality."""
        assert select_by_metadata(self.METADATA, {"lang": "en"})
        assert not select_by_metadata(self.METADATA, {"lang": "nl"})
        assert select_by_metadata(self.METADATA, {"lang": "en", "draft": False})

    @pytest.mark.parametrize(
        ("condition", "expected"),
        [
            ({"$eq": 2021}, True),
            ({"$ne": 2021}, False),
            ({"$gt": 2020}, True),
            ({"$gte": 2021}, True),
            ({"$lt": 2021}, False),
            ({"$lte": 2021}, True),
            ({"$gte": 2020, "$lt": 2022}, True),
            ({"$in": [2019, 2021]}, True),
            ({"$nin": [2019, 2021]}, False),
        ],
    )
    def test_comparison_operators(self, condition: dict[str, object], expected: bool) -> None:
        """Operator dicts compare the field against the operand."""
        assert select_by_metadata(self.METADATA, {"year": condition}) is expected

    def test_boolean_composition(self) -> None:
        """$and and $or combine sub-filters."""
        assert select_by_metadata(
            self.METADATA, {"$and": [{"lang": "en"}, {"year": {"$gte": 2020}}]}
        )
        assert not select_by_metadata(self.METADATA, {"$and": [{"lang": "en"}, {"year": 1999}]})
        assert select_by_metadata(self.METADATA, {"$or": [{"lang": "nl"}, {"draft": False}]})
        assert not select_by_metadata(self.METADATA, {"$or": [{"lang": "nl"}, {"year": 1999}]})

    def test_absent_field_is_non_match(self) -> None:
        """Filtering on a field the item lacks does not match and does not raise."""
        assert not select_by_metadata(self.METADATA, {"author": "someone"})
        assert not select_by_metadata(self.METADATA, {"author": {"$ne": "someone"}})

    def test_unknown_operator_is_non_match(self) -> None:
        """Unknown operators do not match."""
        assert not select_by_metadata(self.METADATA, {"year": {"$near": 2021}})
        assert not select_by_metadata(self.METADATA, {"$nor": [{"lang": "nl"}]})

    def test_incomparable_types_are_non_match(self) -> None:
        """Ordering a string against a number does not raise."""
        assert not select_by_metadata(self.METADATA, {"title": {"$gt": 5}})
