"""Tests du runner d'ingestion: budget d'erreurs, dry run, isolation, qualité."""

from __future__ import annotations

import pytest

from curator.domain.errors import NetworkError
from curator.domain.ingestion import FetchResult
from curator.services.ingestion_metrics import IngestionMetricsTracker
from curator.services.ingestion_runner import IngestionRunner, RunnerConfig
from curator.services.retry import RetryConfig
from tests.fakes import FakeConnector, FakeSink, news_payload


def _valid_page(start: int, size: int = 20) -> list[dict]:
    return [news_payload(f"news-{i}") for i in range(start, start + size)]


def _invalid(i: int) -> dict:
    payload = news_payload(f"news-bad{i}")
    del payload["metadata"]["publication"]
    return payload


def _runner(**kwargs) -> IngestionRunner:
    config = kwargs.pop("config", None) or RunnerConfig(rate_limit_rps=1000)
    sleeps: list[float] = []
    return IngestionRunner(config, sleep=sleeps.append, **kwargs)


@pytest.fixture
def metrics() -> IngestionMetricsTracker:
    return IngestionMetricsTracker()


def test_all_valid_items_are_accepted(metrics) -> None:
    sink = FakeSink()
    conn = FakeConnector([_valid_page(0), _valid_page(20, 5)])
    result = _runner(metrics=metrics, sink=sink).run(conn)
    assert result.success is True
    assert result.items_fetched == 25
    assert result.items_mapped == 25
    assert result.items_accepted == 25
    assert len(sink.saved) == 25
    assert conn.fetch_calls == [(None, 20), ("1", 20)]


def test_schema_error_budget_aborts_run(metrics) -> None:
    pages = [[_invalid(i) for i in range(20)], _valid_page(100)]
    conn = FakeConnector(pages)
    result = _runner(metrics=metrics).run(conn)
    assert result.success is False
    assert result.schema_errors == 20
    assert result.errors[-1].type == "budget"
    assert "budget" in (result.reason or "").lower()
    # la deuxième page n'est jamais demandée
    assert len(conn.fetch_calls) == 1


def test_budget_is_inclusive(metrics) -> None:
    pages = [_valid_page(i * 20) for i in range(4)]
    pages.append(_valid_page(80, 19) + [_invalid(0)])
    result = _runner(metrics=metrics).run(FakeConnector(pages))
    assert result.items_fetched == 100
    assert result.schema_errors == 1
    assert result.schema_error_rate == pytest.approx(1.0)
    assert result.success is True


def test_budget_is_cumulative_across_pages(metrics) -> None:
    pages = [_valid_page(0, 19) + [_invalid(0)], _valid_page(40)]
    conn = FakeConnector(pages)
    result = _runner(metrics=metrics).run(conn)
    assert result.success is False
    assert len(conn.fetch_calls) == 1


def test_validation_error_records_field() -> None:
    config = RunnerConfig(rate_limit_rps=1000, schema_error_budget_pct=100)
    result = _runner(config=config).run(FakeConnector([[_invalid(1)]]))
    error = result.errors[0]
    assert error.type == "validation"
    assert error.field == "metadata.publication"
    assert error.item_id == "news-bad1"


def test_mapping_failures_do_not_count_as_schema_errors(metrics) -> None:
    page = _valid_page(0, 19) + [{"_mapping_error": True, "id": "raw-1"}]
    result = _runner(metrics=metrics).run(FakeConnector([page]))
    assert result.success is True
    assert result.items_failed == 1
    assert result.schema_errors == 0
    assert result.errors[0].type == "mapping"
    assert result.errors[0].item_id == "raw-1"


def test_dry_run_caps_items_and_skips_persistence() -> None:
    sink = FakeSink()
    config = RunnerConfig(rate_limit_rps=1000, dry_run=True)
    conn = FakeConnector([_valid_page(i * 20) for i in range(5)])
    result = _runner(config=config, sink=sink).run(conn)
    assert result.dry_run is True
    assert result.items_fetched == 50
    assert [limit for _, limit in conn.fetch_calls] == [20, 20, 10]
    assert sink.saved == []


def test_max_pages() -> None:
    config = RunnerConfig(rate_limit_rps=1000, max_pages=2)
    conn = FakeConnector([_valid_page(i * 20) for i in range(5)])
    result = _runner(config=config).run(conn)
    assert result.items_fetched == 40


def test_authentication_failure_stops_before_fetch(metrics) -> None:
    conn = FakeConnector([_valid_page(0)], auth_ok=False)
    result = _runner(metrics=metrics).run(conn)
    assert result.success is False
    assert result.errors[0].type == "auth"
    assert conn.fetch_calls == []


def test_transient_fetch_errors_are_retried(metrics) -> None:
    conn = FakeConnector(
        [_valid_page(0, 3)], fetch_errors=[NetworkError("reset"), NetworkError("reset")]
    )
    result = _runner(metrics=metrics).run(conn)
    assert result.success is True
    assert len(conn.fetch_calls) == 3
    assert result.items_fetched == 3


def test_fetch_failure_after_retries(metrics) -> None:
    conn = FakeConnector([_valid_page(0)], fetch_errors=[NetworkError("down")] * 4)
    result = _runner(metrics=metrics).run(conn)
    assert result.success is False
    assert result.errors[0].type == "fetch"
    assert len(conn.fetch_calls) == 4


def test_run_all_isolates_failures(metrics) -> None:
    broken = FakeConnector(source="broken", fetch_errors=[RuntimeError("boom")])
    healthy = FakeConnector([_valid_page(0, 2)], source="healthy")
    runner = _runner(metrics=metrics)
    results = runner.run_all([broken, healthy])
    assert [r.success for r in results] == [False, True]
    assert metrics.get("broken").failed_runs == 1
    assert metrics.get("healthy").successful_runs == 1


def test_quality_decisions_route_items(metrics, quality_engine, memory_queue) -> None:
    sink = FakeSink()
    good = news_payload("news-good")
    spam = news_payload(
        "news-spam",
        title="You won't believe this one weird trick!",
        source={"name": "Unknown Blog", "id": "spam", "reputation_score": 35},
    )
    blocked = news_payload(
        "news-blocked", source={"name": "fakenews.example", "id": "b", "reputation_score": 90}
    )
    runner = _runner(metrics=metrics, quality=quality_engine, sink=sink, queue=memory_queue)
    result = runner.run(FakeConnector([[good, spam, blocked]]))
    assert (result.items_accepted, result.items_quarantined, result.items_rejected) == (1, 1, 1)
    assert [item.id for item, _ in sink.saved] == ["news-good"]
    job = memory_queue.dequeue()
    assert job.item_id == "news-good"
    assert job.priority == "normal"
    assert memory_queue.dequeue() is None


def test_print_summary(metrics, capsys) -> None:
    runner = _runner(metrics=metrics)
    runner.run(FakeConnector([_valid_page(0, 2)], source="news"))
    runner.print_summary()
    out = capsys.readouterr().out
    assert "Ingestion summary" in out
    assert "news" in out and "OK" in out


def test_config_from_settings_keeps_retry_in_sync() -> None:
    from curator.core.settings import Settings

    settings = Settings(_env_file=None, INGEST_MAX_RETRIES=5, INGEST_BATCH_SIZE=10)
    config = RunnerConfig.from_settings(settings, dry_run=True)
    assert config.retry.max_retries == 5
    assert config.batch_size == 10
    assert config.dry_run_item_cap == 50


class OversizedPageConnector(FakeConnector):
    """Source qui ignore `limit` et renvoie une page plus grande que demandé."""

    def fetch(self, cursor: str | None = None, limit: int = 20) -> FetchResult:
        self.fetch_calls.append((cursor, limit))
        return FetchResult(items=_valid_page(0, 30), next_cursor=None, has_more=False)


def test_oversized_page_is_fully_processed() -> None:
    sink = FakeSink()
    result = _runner(sink=sink).run(OversizedPageConnector())
    assert result.items_fetched == 30
    assert len(sink.saved) == 30


def test_dry_run_still_truncates_oversized_page() -> None:
    config = RunnerConfig(rate_limit_rps=1000, dry_run=True, dry_run_item_cap=10)
    result = _runner(config=config).run(OversizedPageConnector())
    assert result.items_fetched == 10


def test_caller_retry_config_is_kept_and_not_mutated() -> None:
    shared = RetryConfig(max_retries=5)
    assert RunnerConfig(retry=shared).retry.max_retries == 5
    config = RunnerConfig(max_retries=2, retry=shared)
    assert config.retry.max_retries == 2
    assert config.max_retries == 2
    assert shared.max_retries == 5
