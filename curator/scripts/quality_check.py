"""
Vérification qualité d'éléments JSON.

Usage:
    python -m curator.scripts.quality_check samples/items --context featured -v

Chaque fichier `*.json` du répertoire contient un élément ou une liste
d'éléments. Code de sortie 1 si un élément est rejeté, mis en quarantaine ou
invalide; les simples signalements (flag) ne font pas échouer la commande.
"""

from __future__ import annotations

import argparse
import json
import sys
from collections import Counter
from pathlib import Path
from typing import Any

SYS_ROOT = Path(__file__).resolve().parents[2]
if str(SYS_ROOT) not in sys.path:
    sys.path.append(str(SYS_ROOT))

from curator.core.settings import get_settings  # noqa: E402
from curator.domain.errors import QualityRulesError, ValidationError  # noqa: E402
from curator.domain.items import validate_item  # noqa: E402
from curator.domain.quality import QualityAction, QualityContext  # noqa: E402
from curator.domain.quality_rules import QualityRulesEngine  # noqa: E402

_ICONS = {"allow": "[ALLOW]", "flag": "[FLAG]", "quarantine": "[QUAR]", "reject": "[REJECT]"}


def _load_payloads(directory: Path) -> list[tuple[str, Any]]:
    payloads: list[tuple[str, Any]] = []
    for path in sorted(directory.glob("*.json")):
        if not path.is_file():
            continue
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            print(f"[quality] cannot parse {path.name}: {exc}")
            payloads.append((path.name, None))
            continue
        for entry in data if isinstance(data, list) else [data]:
            payloads.append((path.name, entry))
    return payloads


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Valide des éléments contre les règles qualité")
    parser.add_argument("directory", type=Path, help="Répertoire de fichiers JSON")
    parser.add_argument(
        "--context", choices=[c.value for c in QualityContext], default="ingest"
    )
    parser.add_argument("--rules", type=str, default=None, help="Fichier de règles YAML")
    parser.add_argument("-v", "--verbose", action="store_true", help="Détail des violations")
    args = parser.parse_args(argv)

    if not args.directory.is_dir():
        print(f"[quality] directory not found: {args.directory}")
        return 1
    try:
        engine = QualityRulesEngine.from_file(args.rules or get_settings().QUALITY_RULES_PATH)
    except QualityRulesError as exc:
        print(f"[quality] invalid rules: {exc}")
        return 1

    print("\nQuality Check Report")
    print("=" * 60)
    print(f"Directory: {args.directory}")
    print(f"Context:   {args.context}\n")

    payloads = _load_payloads(args.directory)
    if not payloads:
        print("No items found to check\n")
        return 0

    counts: Counter[str] = Counter()
    for filename, payload in payloads:
        if payload is None:
            counts["invalid"] += 1
            continue
        try:
            item = validate_item(payload)
        except ValidationError as exc:
            counts["invalid"] += 1
            print(f"[INVALID] {filename}: {exc}")
            continue
        decision = engine.check(item, args.context)
        counts[decision.action.value] += 1
        print(f"{_ICONS[decision.action.value]} {item.title}")
        print(f"   ID: {item.id}")
        print(f"   Source: {item.source.name} ({item.domain})")
        print(
            f"   Score: {decision.score:.1f} | Tier: {decision.tier.value} "
            f"| Action: {decision.action.value}"
        )
        if decision.violations:
            print(f"   Violations: {len(decision.violations)}")
            if args.verbose:
                for v in decision.violations:
                    print(f"     [{v.type}/{v.severity.value}] {v.message}")
                    if v.field:
                        suffix = f" = {v.value}" if v.value is not None else ""
                        print(f"        Field: {v.field}{suffix}")
                    if v.recommendation:
                        print(f"        Hint: {v.recommendation}")
        print()

    total = sum(counts.values())
    print("=" * 60)
    print(f"Total: {total}")
    for key in ("allow", "flag", "quarantine", "reject", "invalid"):
        print(f"  {key:<11} {counts[key]}")
    failed = (
        counts[QualityAction.REJECT.value]
        + counts[QualityAction.QUARANTINE.value]
        + counts["invalid"]
    )
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
