"""
Rattrapage des embeddings manquants.

Usage:
    python -m curator.scripts.backfill_embeddings --domain news --limit 500
    python -m curator.scripts.backfill_embeddings --immediate --batch-size 50
    python -m curator.scripts.backfill_embeddings --dry-run

Mode par défaut: mise en file des jobs (priorité `--priority`, low par défaut).
`--immediate`: vectorisation par lots et écriture directe, sans passer par la file.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

SYS_ROOT = Path(__file__).resolve().parents[2]
if str(SYS_ROOT) not in sys.path:
    sys.path.append(str(SYS_ROOT))

from curator.core.constants import DOMAINS  # noqa: E402
from curator.core.container import container  # noqa: E402
from curator.core.logging import setup_logging  # noqa: E402
from curator.domain.errors import CuratorError  # noqa: E402
from curator.domain.items import UnifiedItem, embedding_text  # noqa: E402
from curator.infra.queue.embedding_queue import EmbeddingJob, Priority  # noqa: E402
from curator.infra.repo.db import session_scope  # noqa: E402
from curator.infra.repo.item_repo import ItemRepository, SqlEmbeddingSink  # noqa: E402


def _chunks(items: list[UnifiedItem], size: int) -> list[list[UnifiedItem]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Rattrapage des embeddings manquants")
    parser.add_argument("--domain", choices=DOMAINS, default=None)
    parser.add_argument("--limit", type=int, default=None)
    parser.add_argument("--batch-size", type=int, default=50)
    parser.add_argument("--dry-run", action="store_true", help="Compte sans rien modifier")
    parser.add_argument("--immediate", action="store_true", help="Vectorise sans passer par la file")
    parser.add_argument(
        "--priority", choices=[p.value for p in Priority], default=Priority.LOW.value
    )
    args = parser.parse_args(argv)

    settings = container.settings
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)

    with session_scope(container.engine) as session:
        items = list(ItemRepository(session).iter_missing_embeddings(args.domain, args.limit))

    scope = args.domain or "all domains"
    print(f"[backfill] {len(items)} items without embedding ({scope})")
    if args.dry_run or not items:
        return 0

    if not args.immediate:
        jobs = [
            EmbeddingJob(
                item_id=item.id,
                text=embedding_text(item),
                domain=item.domain,
                priority=args.priority,
            )
            for item in items
        ]
        n = container.queue.enqueue_batch(jobs)
        print(f"[backfill] enqueued {n} jobs (priority={args.priority})")
        return 0

    provider = container.provider
    sink = SqlEmbeddingSink(container.engine, provider.get_dimensions())
    written = failed = 0
    for chunk in _chunks(items, max(1, args.batch_size)):
        try:
            result = provider.embed_batch([embedding_text(item) for item in chunk])
        except CuratorError as exc:
            failed += len(chunk)
            print(f"[backfill] batch failed: {exc}")
            continue
        for item, vector in zip(chunk, result.vectors, strict=True):
            if sink.set_embedding(item.id, vector):
                written += 1
            else:
                failed += 1
        print(f"[backfill] progress {written + failed}/{len(items)}")
    print(f"[backfill] written={written} failed={failed}")
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
