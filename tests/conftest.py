"""Configuration de test pour pytest.

Ajoute la racine du projet au sys.path et fournit les fixtures partagées:
payloads d'exemple, moteur de règles qualité, file mémoire et base SQLite.
"""

import os
import sys

import pytest
import structlog

# Ensure project root is on sys.path so that imports like `from curator...` resolve.
CURRENT_DIR = os.path.dirname(__file__)
PROJECT_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

from curator.core.settings import DEFAULT_QUALITY_RULES_PATH  # noqa: E402
from curator.domain.quality_rules import QualityRulesEngine  # noqa: E402
from curator.infra.queue.embedding_queue import EmbeddingQueue, InMemoryQueueStore  # noqa: E402
from curator.infra.repo.db import get_engine  # noqa: E402
from curator.infra.repo.models import Base  # noqa: E402
from tests.fakes import news_payload  # noqa: E402


@pytest.fixture
def sample_news() -> dict:
    return news_payload()


@pytest.fixture(scope="session")
def quality_engine() -> QualityRulesEngine:
    return QualityRulesEngine.from_file(DEFAULT_QUALITY_RULES_PATH)


@pytest.fixture
def memory_queue() -> EmbeddingQueue:
    return EmbeddingQueue(InMemoryQueueStore())


@pytest.fixture
def sqlite_engine():
    engine = get_engine("sqlite+pysqlite:///:memory:")
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(autouse=True)
def _reset_structlog(monkeypatch):
    # Scripts under test call setup_logging(), which binds structlog to the
    # stderr captured by pytest for that test. Keep module-level loggers from
    # caching that stream and restore defaults afterwards.
    configure = structlog.configure

    def _configure(*args, **kwargs):
        kwargs["cache_logger_on_first_use"] = False
        configure(*args, **kwargs)

    monkeypatch.setattr(structlog, "configure", _configure)
    yield
    structlog.reset_defaults()
