"""Source inventory — enumerate the snaps this host can offer.

Two origins feed the inventory:
1. Seeded snaps, shipped in the provisioning seed directory together with
   their assertions
2. Installed snaps, reported by snapd and stored in its snaps directory

Reconciliation keeps exactly one entry per name; installed wins.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from snapcarry.config import MirrorConfig
from snapcarry.errors import UnknownOrigin
from snapcarry.inventory.models import LocalEntry, Origin, PackageRecord

logger = logging.getLogger(__name__)


class PackageSource(Protocol):
    """Read-only local inventory source."""

    def seeded(self) -> Iterable[PackageRecord]: ...

    def installed(self) -> Iterable[PackageRecord]: ...


def build_local_inventory(
    seeded: Iterable[PackageRecord],
    installed: Iterable[PackageRecord],
) -> dict[str, LocalEntry]:
    """Merge seeded and installed records into one entry per name.

    Installed records overwrite seeded ones for the same name. Records with
    a non-numeric revision are skipped.
    """
    inventory: dict[str, LocalEntry] = {}

    for record in list(seeded) + list(installed):
        if not isinstance(record.origin, Origin):
            raise UnknownOrigin(record.origin)

        if not record.revision.isdigit():
            logger.info(
                f"[Inventory] Skipping {record.name}: "
                f"revision {record.revision!r} is not a store revision"
            )
            continue

        inventory[record.name] = LocalEntry(
            name=record.name,
            revision=int(record.revision),
            size=record.size,
            origin=record.origin,
            payload_path=record.payload_path,
            bundle_path=record.bundle_path,
            manifest_path=record.manifest_path,
        )

    return inventory


def split_filename(filename: str, suffix: str) -> tuple[str, str] | None:
    """Split ``<name>_<revision><suffix>`` into (name, revision)."""
    if not filename.endswith(suffix):
        return None
    stem = filename[: -len(suffix)]
    name, sep, revision = stem.rpartition("_")
    if not sep or not name or not revision:
        return None
    return name, revision


class SnapdPackageSource:
    """Package source backed by the snapd seed directory and ``snap list``."""

    def __init__(self, config: MirrorConfig):
        self.config = config

    def seeded(self) -> list[PackageRecord]:
        snaps_dir = self.config.seed_dir / "snaps"
        assertions_dir = self.config.seed_dir / "assertions"
        if not snaps_dir.is_dir():
            logger.debug(f"[Inventory] No seed directory at {snaps_dir}")
            return []

        records = []
        for path in sorted(snaps_dir.iterdir()):
            parts = split_filename(path.name, self.config.payload_suffix)
            if not parts or not path.is_file():
                continue
            name, revision = parts
            bundle = assertions_dir / f"{name}_{revision}{self.config.meta_suffix}"
            records.append(
                PackageRecord(
                    name=name,
                    revision=revision,
                    size=path.stat().st_size,
                    origin=Origin.SEEDED,
                    payload_path=path,
                    bundle_path=bundle if bundle.is_file() else None,
                    manifest_path=self._manifest_path(name, revision),
                )
            )
        return records

    def installed(self) -> list[PackageRecord]:
        if shutil.which(self.config.snap_command) is None:
            logger.warning(
                f"[Inventory] '{self.config.snap_command}' not found — "
                "no installed snaps will be mirrored"
            )
            return []

        proc = subprocess.run(
            [self.config.snap_command, "list"],
            capture_output=True,
            text=True,
            check=True,
        )

        records = []
        for name, revision in parse_snap_list(proc.stdout):
            payload = self.config.snaps_dir / f"{name}_{revision}{self.config.payload_suffix}"
            if not payload.is_file():
                logger.warning(f"[Inventory] Skipping {name}_{revision}: no payload at {payload}")
                continue
            records.append(
                PackageRecord(
                    name=name,
                    revision=revision,
                    size=payload.stat().st_size,
                    origin=Origin.INSTALLED,
                    payload_path=payload,
                    manifest_path=self._manifest_path(name, revision),
                )
            )
        return records

    def _manifest_path(self, name: str, revision: str) -> Path:
        return self.config.mount_dir / name / revision / "meta" / "snap.yaml"


def parse_snap_list(output: str) -> list[tuple[str, str]]:
    """Parse ``snap list`` output into (name, revision) rows.

    Disabled revisions are skipped.
    """
    rows = []
    for line in output.splitlines()[1:]:
        columns = line.split()
        if len(columns) < 5:
            continue
        name, revision = columns[0], columns[2]
        notes = columns[5] if len(columns) > 5 else "-"
        if "disabled" in notes.split(","):
            continue
        rows.append((name, revision))
    return rows
