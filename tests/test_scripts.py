"""Tests des commandes en ligne (codes de sortie)."""

from __future__ import annotations

import json

from curator.core.container import container
from curator.core.settings import Settings
from curator.scripts import ingest_content, quality_check
from tests.fakes import news_payload


def test_all_allowed(tmp_path, capsys) -> None:
    (tmp_path / "items.json").write_text(json.dumps([news_payload("news-1"), news_payload("news-2")]))
    assert quality_check.main([str(tmp_path)]) == 0
    out = capsys.readouterr().out
    assert "[ALLOW]" in out
    assert "Total: 2" in out


def test_quarantine_fails(tmp_path) -> None:
    spam = news_payload(
        "news-spam",
        title="You won't believe this one weird trick!",
        source={"name": "Unknown Blog", "id": "spam", "reputation_score": 35},
    )
    (tmp_path / "spam.json").write_text(json.dumps(spam))
    assert quality_check.main([str(tmp_path), "-v"]) == 1


def test_invalid_item_fails(tmp_path) -> None:
    payload = news_payload()
    del payload["metadata"]["publication"]
    (tmp_path / "bad.json").write_text(json.dumps(payload))
    (tmp_path / "broken.json").write_text("{not json")
    assert quality_check.main([str(tmp_path)]) == 1


def test_empty_directory(tmp_path) -> None:
    assert quality_check.main([str(tmp_path)]) == 0


def test_missing_directory(tmp_path) -> None:
    assert quality_check.main([str(tmp_path / "absent")]) == 1


def test_invalid_rules(tmp_path) -> None:
    rules = tmp_path / "rules.yaml"
    rules.write_text("version: [")
    assert quality_check.main([str(tmp_path), "--rules", str(rules)]) == 1


def test_ingest_without_credentials_fails(monkeypatch, capsys) -> None:
    settings = Settings(_env_file=None, NEWS_API_KEY=None)
    monkeypatch.setattr(container, "settings", settings)
    assert ingest_content.main(["--source", "news", "--dry-run"]) == 1
    out = capsys.readouterr().out
    assert "FAILED" in out
    assert "NEWS_API_KEY" in out
