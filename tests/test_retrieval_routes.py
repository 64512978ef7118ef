"""Tests de l'API HTTP (santé et recherche par similarité)."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from curator.app.main import app
from curator.core.container import container
from curator.core.settings import Settings
from curator.domain.retriever import SimilarityRetriever
from curator.infra.vecstores.exact_index import ExactVectorIndex
from tests.fakes import FakeProvider


@pytest.fixture
def client(monkeypatch):
    index = ExactVectorIndex(4)
    index.add("news-1", [1.0, 0.0, 0.0, 0.0], "news")
    index.add("news-2", [0.8, 0.2, 0.0, 0.0], "news")
    index.add("music-1", [0.9, 0.0, 0.1, 0.0], "music")
    retriever = SimilarityRetriever(index, FakeProvider(dimensions=4))
    # court-circuite la construction paresseuse du retriever
    monkeypatch.setitem(container.__dict__, "retriever", retriever)
    return TestClient(app)


def _post(client, **body):
    return client.post("/internal/retrieval/similar", json=body)


def test_health(client) -> None:
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_metrics_exposed(client) -> None:
    r = client.get("/metrics")
    assert r.status_code == 200
    assert "retrieval_requests_total" in r.text


def test_similar_by_vector(client) -> None:
    r = _post(client, vector=[1.0, 0.0, 0.0, 0.0], k=2)
    assert r.status_code == 200
    ids = [h["item_id"] for h in r.json()["results"]]
    assert ids == ["news-1", "music-1"]


def test_similar_by_vector_with_domain(client) -> None:
    r = _post(client, vector=[1.0, 0.0, 0.0, 0.0], k=5, domain="news")
    assert {h["domain"] for h in r.json()["results"]} == {"news"}


def test_similar_by_item_excludes_item(client) -> None:
    r = _post(client, item_id="news-1", k=5)
    assert r.status_code == 200
    assert "news-1" not in [h["item_id"] for h in r.json()["results"]]


def test_similar_by_text(client) -> None:
    r = _post(client, text="climate", k=1)
    assert r.status_code == 200
    assert len(r.json()["results"]) == 1


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"vector": [1.0, 0.0, 0.0, 0.0], "text": "both"},
        {"vector": [1.0, 0.0, 0.0, 0.0], "k": 0},
        {"vector": [1.0, 0.0, 0.0, 0.0], "k": 51},
        {"vector": [1.0, 0.0, 0.0, 0.0], "domain": "sports"},
        {"vector": [1.0, 0.0]},
    ],
)
def test_bad_requests(client, body) -> None:
    assert _post(client, **body).status_code == 400


def test_unknown_item(client) -> None:
    assert _post(client, item_id="news-404").status_code == 404


def test_provider_failure(client, monkeypatch) -> None:
    monkeypatch.setattr(container.retriever.provider, "fail", True)
    assert _post(client, text="climate").status_code == 502


@pytest.fixture
def lazy_container(monkeypatch):
    """Conteneur dont le retriever sera construit à la requête, sur un index vide."""
    for key in ("retriever", "provider"):
        monkeypatch.delitem(container.__dict__, key, raising=False)
    monkeypatch.setitem(container.__dict__, "index", ExactVectorIndex(4))

    def configure(**overrides):
        monkeypatch.setattr(container, "settings", Settings(_env_file=None, **overrides))
        return TestClient(app)

    return configure


def test_missing_provider_key_is_bad_gateway(lazy_container) -> None:
    client = lazy_container(EMBEDDINGS_PROVIDER="openai", OPENAI_API_KEY=None)
    assert _post(client, text="jazz", k=3).status_code == 502
    assert "retriever" not in container.__dict__


def test_provider_dimension_mismatch_is_bad_request(lazy_container) -> None:
    # fournisseur local en 384 dimensions face à un index en 4
    client = lazy_container(EMBEDDINGS_PROVIDER="local", EMBEDDINGS_DIMENSIONS=384)
    assert _post(client, text="jazz", k=3).status_code == 400


def test_bad_request_messages_are_english(client) -> None:
    r = _post(client, vector=[1.0, 0.0, 0.0, 0.0], k=0)
    assert r.json()["detail"] == "k must be between 1 and 50"
    r = _post(client, vector=[1.0, 0.0, 0.0, 0.0], domain="sports")
    assert r.json()["detail"] == "unknown domain 'sports'"
