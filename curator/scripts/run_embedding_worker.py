"""
Worker d'embeddings (processus long).

Usage:
    python -m curator.scripts.run_embedding_worker --batch-size 20
    python -m curator.scripts.run_embedding_worker --once

SIGINT/SIGTERM déclenchent un arrêt propre: le lot courant est terminé.
"""

from __future__ import annotations

import argparse
import signal
import sys
from pathlib import Path

SYS_ROOT = Path(__file__).resolve().parents[2]
if str(SYS_ROOT) not in sys.path:
    sys.path.append(str(SYS_ROOT))

from curator.core.container import container  # noqa: E402
from curator.core.logging import setup_logging  # noqa: E402
from curator.infra.repo.item_repo import SqlEmbeddingSink  # noqa: E402
from curator.services.embedding_worker import EmbeddingWorker  # noqa: E402


def build_worker(batch_size: int | None = None, poll_interval: float | None = None) -> EmbeddingWorker:
    settings = container.settings
    provider = container.provider
    return EmbeddingWorker(
        container.queue,
        provider,
        SqlEmbeddingSink(container.engine, provider.get_dimensions()),
        batch_size=batch_size or settings.WORKER_BATCH_SIZE,
        poll_interval_s=poll_interval if poll_interval is not None else settings.WORKER_POLL_INTERVAL_S,
        max_attempts=settings.WORKER_MAX_ATTEMPTS,
    )


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Worker de la file d'embeddings")
    parser.add_argument("--batch-size", type=int, default=None)
    parser.add_argument("--poll-interval", type=float, default=None, help="Secondes")
    parser.add_argument("--once", action="store_true", help="Traite un seul lot puis sort")
    args = parser.parse_args(argv)

    settings = container.settings
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    worker = build_worker(args.batch_size, args.poll_interval)

    if args.once:
        try:
            outcome = worker.run_once()
        finally:
            worker.close()
        print(
            f"[worker] completed={outcome.completed} requeued={outcome.requeued} "
            f"dead_lettered={outcome.dead_lettered}"
        )
        return 0

    def _shutdown(signum, _frame) -> None:
        worker.stop()

    signal.signal(signal.SIGINT, _shutdown)
    signal.signal(signal.SIGTERM, _shutdown)
    worker.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
