"""
Ingestion des sources externes vers le stockage et la file d'embeddings.

Usage:
    python -m curator.scripts.ingest_content --source news
    python -m curator.scripts.ingest_content --source all --dry-run

Les identifiants sont lus dans l'environnement (SPOTIFY_CLIENT_ID,
SPOTIFY_CLIENT_SECRET, NEWS_API_KEY, YOUTUBE_API_KEY, SPOONACULAR_API_KEY,
EVENTBRITE_TOKEN). Une source sans identifiants produit un run en échec.
Code de sortie 1 si au moins un run a échoué.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

# Permet l'exécution du script en direct (python curator/scripts/ingest_content.py)
SYS_ROOT = Path(__file__).resolve().parents[2]
if str(SYS_ROOT) not in sys.path:
    sys.path.append(str(SYS_ROOT))

from curator.core.container import container  # noqa: E402
from curator.core.logging import setup_logging  # noqa: E402
from curator.domain.errors import ConfigurationError  # noqa: E402
from curator.domain.ingestion import IngestionResult, RunRecorder  # noqa: E402
from curator.infra.connectors import SUPPORTED_SOURCES  # noqa: E402
from curator.infra.repo.item_repo import SqlItemSink  # noqa: E402
from curator.services.ingestion_runner import IngestionRunner, RunnerConfig  # noqa: E402


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Ingestion des sources de contenu")
    parser.add_argument(
        "--source",
        required=True,
        choices=[*SUPPORTED_SOURCES, "all"],
        help="Source à ingérer, ou 'all' pour toutes (séquentiellement)",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Récupère et évalue sans persister ni mettre en file (50 éléments max)",
    )
    parser.add_argument("--limit-pages", type=int, default=None, help="Nombre maximal de pages")
    return parser.parse_args(argv)


def _credentials_failure(source: str, error: ConfigurationError, dry_run: bool) -> IngestionResult:
    rec = RunRecorder(source=source, dry_run=dry_run)
    rec.error("auth", str(error))
    return rec.finalize(False, 0.0, str(error))


def main(argv: list[str] | None = None) -> int:
    """Point d'entrée: exécute les runs et affiche le résumé par source."""
    args = _parse_args(argv)
    settings = container.settings
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    config = RunnerConfig.from_settings(settings, dry_run=args.dry_run, max_pages=args.limit_pages)
    config.embedding_dimensions = settings.EMBEDDINGS_DIMENSIONS
    runner = IngestionRunner(
        config,
        quality=container.quality,
        sink=None if args.dry_run else SqlItemSink(container.engine),
        queue=None if args.dry_run else container.queue,
    )

    sources = list(SUPPORTED_SOURCES) if args.source == "all" else [args.source]
    results: list[IngestionResult] = []
    for source in sources:
        try:
            connector = container.connector(source)
        except ConfigurationError as exc:
            result = _credentials_failure(source, exc, args.dry_run)
            runner.metrics.record(result)
            results.append(result)
            continue
        try:
            results.append(runner.run(connector))
        finally:
            connector.close()

    print(f"\n[ingest] {'DRY RUN ' if args.dry_run else ''}results")
    for r in results:
        status = "OK" if r.success else "FAILED"
        print(
            f"  {r.source:<12} {status:<6} fetched={r.items_fetched} mapped={r.items_mapped} "
            f"failed={r.items_failed} schema_errors={r.schema_errors} "
            f"accepted={r.items_accepted} quarantined={r.items_quarantined} "
            f"rejected={r.items_rejected} ({r.duration_ms:.0f}ms)"
        )
        if r.reason:
            print(f"    reason: {r.reason}")
    print()
    runner.print_summary()
    return 0 if all(r.success for r in results) else 1


if __name__ == "__main__":
    sys.exit(main())
