"""Tests de la similarité cosinus, des index vectoriels et du retriever."""

from __future__ import annotations

import numpy as np
import pytest

from curator.domain.errors import ConfigurationError, DimensionMismatchError
from curator.domain.retriever import SimilarityRetriever
from curator.domain.similarity import SimilarItem, cosine_similarity, rank
from curator.infra.vecstores.exact_index import ExactVectorIndex
from curator.infra.vecstores.faiss_index import FaissIVFIndex
from tests.fakes import FakeProvider


def test_cosine_reference_values() -> None:
    assert cosine_similarity([1, 0], [2, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 3]) == pytest.approx(0.0)
    assert cosine_similarity([1, 1], [-1, -1]) == pytest.approx(-1.0)


def test_symmetric_and_bounded() -> None:
    rng = np.random.default_rng(7)
    for _ in range(20):
        a, b = rng.normal(size=16), rng.normal(size=16)
        s = cosine_similarity(a, b)
        assert s == pytest.approx(cosine_similarity(b, a))
        assert -1.0 <= s <= 1.0


def test_cosine_zero_vector() -> None:
    assert cosine_similarity([0, 0], [1, 2]) == 0.0


def test_cosine_dimension_mismatch() -> None:
    with pytest.raises(ValueError):
        cosine_similarity([1, 2, 3], [1, 2])


def test_rank_breaks_ties_by_id() -> None:
    results = [
        SimilarItem("b-1", "news", 0.5),
        SimilarItem("a-1", "news", 0.5),
        SimilarItem("c-1", "news", 0.9),
    ]
    assert [r.item_id for r in rank(results, 2)] == ["c-1", "a-1"]


def _index(cls=ExactVectorIndex, **kwargs):
    index = cls(3, **kwargs)
    index.add("news-1", [1.0, 0.0, 0.0], "news")
    index.add("news-2", [0.9, 0.1, 0.0], "news")
    index.add("music-1", [0.95, 0.0, 0.05], "music")
    index.add("recipes-1", [0.0, 0.0, 1.0], "recipes")
    return index


def test_search_orders_by_similarity() -> None:
    hits = _index().search([1.0, 0.0, 0.0], k=3)
    assert [h.item_id for h in hits] == ["news-1", "music-1", "news-2"]
    assert hits[0].similarity == pytest.approx(1.0)


def test_domain_filter() -> None:
    hits = _index().search([1.0, 0.0, 0.0], k=5, domain="news")
    assert {h.domain for h in hits} == {"news"}
    assert len(hits) == 2


def test_add_replaces_vector() -> None:
    index = _index()
    index.add("news-1", [0.0, 1.0, 0.0], "news")
    assert index.size() == 4
    assert index.get("news-1") == [0.0, 1.0, 0.0]


def test_index_dimension_mismatch() -> None:
    with pytest.raises(DimensionMismatchError):
        _index().search([1.0, 0.0])


def test_small_index_uses_exact_search() -> None:
    index = _index(FaissIVFIndex, nlist=4)
    hits = index.search([1.0, 0.0, 0.0], k=2)
    assert [h.item_id for h in hits] == ["news-1", "music-1"]
    assert index.trained is False


def test_domain_filter_falls_back_to_full_scan() -> None:
    index = _index(FaissIVFIndex, nlist=4)
    hits = index.search([1.0, 0.0, 0.0], k=1, domain="recipes")
    assert [h.item_id for h in hits] == ["recipes-1"]


def test_trains_ivf_once_enough_vectors() -> None:
    rng = np.random.default_rng(0)
    vectors = rng.normal(size=(40, 8)).astype("float32")
    index = FaissIVFIndex(8, nlist=4, nprobe=4, train_size=20)
    for i, v in enumerate(vectors):
        index.add(f"news-{i}", v.tolist(), "news")
    hits = index.search(vectors[5].tolist(), k=3)
    assert index.trained is True
    assert hits[0].item_id == "news-5"
    assert hits[0].similarity == pytest.approx(1.0, abs=1e-4)
    # ajout après entraînement: visible sans reconstruction
    index.add("news-new", vectors[5].tolist(), "news")
    ids = [h.item_id for h in index.search(vectors[5].tolist(), k=2)]
    assert set(ids) == {"news-5", "news-new"}


def test_similar_to_item_excludes_itself() -> None:
    retriever = SimilarityRetriever(_index())
    hits = retriever.similar_to_item("news-1", k=2)
    assert [h.item_id for h in hits] == ["music-1", "news-2"]


def test_unknown_item() -> None:
    with pytest.raises(KeyError):
        SimilarityRetriever(_index()).similar_to_item("news-404")


def test_invalid_k() -> None:
    with pytest.raises(ValueError):
        SimilarityRetriever(_index()).similar_to_vector([1.0, 0.0, 0.0], k=0)


def test_text_query_uses_provider() -> None:
    retriever = SimilarityRetriever(_index(), FakeProvider(dimensions=3))
    assert len(retriever.similar_to_text("climate", k=2)) == 2


def test_text_query_without_provider() -> None:
    with pytest.raises(ConfigurationError):
        SimilarityRetriever(_index()).similar_to_text("climate")


def test_provider_dimensions_must_match() -> None:
    with pytest.raises(DimensionMismatchError):
        SimilarityRetriever(_index(), FakeProvider(dimensions=4))
