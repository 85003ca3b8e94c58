"""Destination scanner — discover complete package pairs in a store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from snapcarry.inventory.models import DestinationEntry, DestinationInventory, PackagePair
from snapcarry.inventory.source import split_filename

logger = logging.getLogger(__name__)

PARTIAL_SUFFIX = ".partial"


@dataclass(frozen=True)
class StoreLayout:
    """File naming used inside a destination store."""

    payload_suffix: str = ".snap"
    meta_suffix: str = ".assert"

    def payload_name(self, name: str, revision: int) -> str:
        return f"{name}_{revision}{self.payload_suffix}"

    def bundle_name(self, name: str, revision: int) -> str:
        return f"{name}_{revision}{self.meta_suffix}"

    def classify(self, path: Path) -> tuple[str, str, str] | None:
        """Return (kind, name, revision) for a store file, or None.

        ``kind`` is ``"payload"`` or ``"bundle"``.
        """
        for kind, suffix in (("payload", self.payload_suffix), ("bundle", self.meta_suffix)):
            parts = split_filename(path.name, suffix)
            if parts:
                return kind, parts[0], parts[1]
        return None


def is_partial(path: Path) -> bool:
    """True for in-progress copies left by an interrupted transfer."""
    return path.name.startswith(".") and path.name.endswith(PARTIAL_SUFFIX)


def store_files(root: Path) -> list[Path]:
    """Recursively list regular files under ``root``, skipping partial copies."""
    if not root.is_dir():
        return []
    return sorted(p for p in root.rglob("*") if p.is_file() and not is_partial(p))


def scan_destination(root: str | Path, layout: StoreLayout | None = None) -> DestinationInventory:
    """Build the destination inventory from complete pairs only.

    Payloads and bundles are matched by stem within the same directory.
    Unmatched files are reported as orphans and never count as present.
    """
    layout = layout or StoreLayout()
    root = Path(root)

    # (directory, name, revision) -> {"payload": path, "bundle": path}
    halves: dict[tuple[Path, str, str], dict[str, Path]] = {}
    for path in store_files(root):
        classified = layout.classify(path)
        if not classified:
            continue
        kind, name, revision = classified
        halves.setdefault((path.parent, name, revision), {})[kind] = path

    inventory = DestinationInventory()
    for (directory, name, revision), found in sorted(halves.items()):
        if len(found) < 2:
            inventory.orphans.extend(found.values())
            continue
        if not revision.isdigit():
            logger.debug(f"[Scan] Ignoring {name}_{revision} in {directory}: non-numeric revision")
            continue

        pair = PackagePair(
            name=name,
            revision=int(revision),
            payload=found["payload"],
            bundle=found["bundle"],
        )
        inventory.pairs.append(pair)
        entry = inventory.entries.setdefault(name, DestinationEntry(name=name))
        entry.revisions.add(pair.revision)

    logger.debug(
        f"[Scan] {root}: {len(inventory.entries)} names, "
        f"{len(inventory.pairs)} pairs, {len(inventory.orphans)} orphans"
    )
    return inventory
