"""
Contrôle de pertinence de la recherche par similarité.

Exécute un jeu de requêtes prédéfini par domaine et affiche les meilleurs
résultats, puis des statistiques du corpus (éléments par domaine, couverture
des embeddings).

Usage:
    python -m curator.scripts.relevance_check --k 5
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

SYS_ROOT = Path(__file__).resolve().parents[2]
if str(SYS_ROOT) not in sys.path:
    sys.path.append(str(SYS_ROOT))

from curator.core.container import container  # noqa: E402
from curator.core.logging import setup_logging  # noqa: E402
from curator.infra.repo.db import session_scope  # noqa: E402
from curator.infra.repo.item_repo import ItemRepository  # noqa: E402

QUERIES: dict[str, list[str]] = {
    "music": ["upbeat electronic dance tracks", "calm acoustic folk songs"],
    "news": ["climate change policy", "artificial intelligence breakthroughs"],
    "recipes": ["quick vegetarian dinner", "gluten-free dessert"],
    "learning": ["python programming for beginners", "machine learning course"],
    "events": ["live jazz concert", "tech networking meetup"],
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Contrôle de pertinence de la recherche")
    parser.add_argument("--k", type=int, default=5)
    args = parser.parse_args(argv)

    settings = container.settings
    setup_logging(settings.LOG_LEVEL, settings.LOG_JSON)
    retriever = container.retriever

    for domain, queries in QUERIES.items():
        print(f"\n== {domain} ==")
        for query in queries:
            hits = retriever.similar_to_text(query, args.k, domain)
            print(f"  '{query}': {len(hits)} results")
            for hit in hits:
                print(f"    {hit.similarity:6.3f}  {hit.item_id}")

    with session_scope(container.engine) as session:
        coverage = ItemRepository(session).embedding_coverage()
    print("\n== corpus ==")
    if not coverage:
        print("  (empty)")
    for domain, stats in sorted(coverage.items()):
        print(
            f"  {domain:<10} items={stats['total']} embedded={stats['embedded']} "
            f"({stats['pct']:.1f}%)"
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())
