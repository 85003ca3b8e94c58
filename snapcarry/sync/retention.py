"""Retention and consistency sweeps over a destination store.

Both sweeps are idempotent and safe to run after any run outcome:
- Pairing sweep: remove payloads without a bundle, bundles without a
  payload, and partial copies left by an interrupted transfer
- Retention sweep: keep the newest ``keep`` revisions of every name and
  delete the rest, both halves of each pair
"""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path

from snapcarry.config import validate_retention
from snapcarry.inventory.destination import StoreLayout, is_partial, scan_destination
from snapcarry.inventory.models import PackagePair

logger = logging.getLogger(__name__)


def pairing_sweep(root: str | Path, layout: StoreLayout | None = None) -> list[Path]:
    """Delete every unpaired payload or bundle under ``root``.

    Returns the removed paths.
    """
    root = Path(root)
    if not root.is_dir():
        return []

    removed = [p for p in root.rglob("*") if p.is_file() and is_partial(p)]
    removed += scan_destination(root, layout).orphans

    for path in removed:
        path.unlink(missing_ok=True)
        logger.info(f"[Retention] Removed unpaired file {path.relative_to(root)}")

    return removed


def retention_sweep(
    root: str | Path,
    keep: int,
    layout: StoreLayout | None = None,
) -> list[PackagePair]:
    """Keep the ``keep`` highest revisions per name; delete older pairs.

    Revisions are grouped by name across the whole store, so every
    architecture directory ends up with the same retained set.

    Returns the removed pairs.
    """
    keep = validate_retention(keep)
    root = Path(root)
    inventory = scan_destination(root, layout)

    by_name: dict[str, list[PackagePair]] = defaultdict(list)
    for pair in inventory.pairs:
        by_name[pair.name].append(pair)

    removed: list[PackagePair] = []
    for name, pairs in sorted(by_name.items()):
        retained = sorted({p.revision for p in pairs}, reverse=True)[:keep]
        for pair in pairs:
            if pair.revision in retained:
                continue
            # Payload first: a leftover bundle is an orphan the pairing sweep removes
            pair.payload.unlink(missing_ok=True)
            pair.bundle.unlink(missing_ok=True)
            removed.append(pair)
            logger.info(
                f"[Retention] Pruned {pair.filename_stem} from "
                f"{pair.directory.relative_to(root)} (keeping {retained})"
            )

    return removed
