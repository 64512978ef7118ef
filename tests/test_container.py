"""Tests du conteneur de dépendances et des scripts qui s'appuient dessus."""

from __future__ import annotations

import pytest

from curator.core.container import Container
from curator.core.settings import Settings
from curator.domain.items import validate_item
from curator.infra.embeddings.local_embedder import LocalEmbedder
from curator.infra.queue.embedding_queue import EmbeddingJob, InMemoryQueueStore
from curator.infra.repo.db import session_scope
from curator.infra.repo.item_repo import ItemRepository
from curator.infra.vecstores.exact_index import ExactVectorIndex
from curator.infra.vecstores.faiss_index import FaissIVFIndex
from curator.scripts import backfill_embeddings, run_embedding_worker
from tests.fakes import news_payload


def _settings(**overrides) -> Settings:
    base = {
        "DATABASE_URL": "sqlite+pysqlite:///:memory:",
        "REDIS_URL": None,
        "EMBEDDINGS_PROVIDER": "local",
        "EMBEDDINGS_DIMENSIONS": 16,
        "VECTOR_BACKEND": "memory",
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)


def test_local_defaults() -> None:
    c = Container(_settings())
    assert isinstance(c.queue.store, InMemoryQueueStore)
    assert isinstance(c.provider, LocalEmbedder)
    assert c.provider.get_dimensions() == 16
    assert isinstance(c.index, ExactVectorIndex)
    assert c.retriever.index is c.index


def test_pgvector_falls_back_outside_postgres() -> None:
    c = Container(_settings(VECTOR_BACKEND="pgvector"))
    assert isinstance(c.index, ExactVectorIndex)


def test_faiss_backend() -> None:
    c = Container(_settings(VECTOR_BACKEND="faiss", FAISS_NLIST=4))
    assert isinstance(c.index, FaissIVFIndex)


def test_unknown_backend() -> None:
    with pytest.raises(ValueError):
        Container(_settings(VECTOR_BACKEND="annoy")).index


def test_index_loads_stored_embeddings() -> None:
    c = Container(_settings())
    with session_scope(c.engine) as session:
        repo = ItemRepository(session, 16)
        repo.save(validate_item(news_payload()))
        repo.set_embedding("news-abc123", [1.0] + [0.0] * 15)
    assert c.index.size() == 1
    assert c.retriever.similar_to_text("climate", k=1)[0].item_id == "news-abc123"


def test_resolve_secret_prefers_environment(monkeypatch) -> None:
    c = Container(_settings(NEWS_API_KEY="from-settings"))
    monkeypatch.delenv("NEWS_API_KEY", raising=False)
    assert c.resolve_secret("NEWS_API_KEY") == "from-settings"
    monkeypatch.setenv("NEWS_API_KEY", "from-env")
    assert c.resolve_secret("NEWS_API_KEY") == "from-env"
    assert c.resolve_secret("UNKNOWN_SECRET") == ""


@pytest.fixture
def seeded_container() -> Container:
    c = Container(_settings())
    with session_scope(c.engine) as session:
        repo = ItemRepository(session)
        repo.save(validate_item(news_payload("news-1")))
        repo.save(validate_item(news_payload("news-2")))
    return c


def test_backfill_enqueues_low_priority_jobs(seeded_container, monkeypatch, capsys) -> None:
    monkeypatch.setattr(backfill_embeddings, "container", seeded_container)
    assert backfill_embeddings.main(["--domain", "news"]) == 0
    job = seeded_container.queue.dequeue()
    assert job.priority == "low"
    assert "enqueued 2 jobs" in capsys.readouterr().out


def test_backfill_dry_run(seeded_container, monkeypatch) -> None:
    monkeypatch.setattr(backfill_embeddings, "container", seeded_container)
    assert backfill_embeddings.main(["--dry-run"]) == 0
    assert seeded_container.queue.size() == 0


def test_backfill_immediate_writes_vectors(seeded_container, monkeypatch) -> None:
    monkeypatch.setattr(backfill_embeddings, "container", seeded_container)
    assert backfill_embeddings.main(["--immediate", "--batch-size", "1"]) == 0
    with session_scope(seeded_container.engine) as session:
        coverage = ItemRepository(session).embedding_coverage()
    assert coverage["news"]["pct"] == 100.0


def test_worker_once(seeded_container, monkeypatch, capsys) -> None:
    monkeypatch.setattr(run_embedding_worker, "container", seeded_container)
    seeded_container.queue.enqueue(
        EmbeddingJob(item_id="news-1", text="climate summit", domain="news")
    )
    assert run_embedding_worker.main(["--once"]) == 0
    assert "completed=1" in capsys.readouterr().out
    with session_scope(seeded_container.engine) as session:
        assert len(ItemRepository(session).get_embedding("news-1")) == 16
