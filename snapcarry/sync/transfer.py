"""Transfer — copy selected packages into the destination, pair by pair.

Each package is copied as a pair: payload first, then its assertion bundle.
Every file lands under a hidden ``.partial`` name and is renamed into place
once complete, so the store never exposes a half-written file. If the
bundle cannot be written, the payload just placed is removed again.
"""

from __future__ import annotations

import logging
import os
import queue
import shutil
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from snapcarry.errors import InsufficientSpace
from snapcarry.inventory.destination import PARTIAL_SUFFIX, StoreLayout
from snapcarry.inventory.models import PackagePair, TransferTask
from snapcarry.sync.cancel import CancelToken

logger = logging.getLogger(__name__)

# Architecture names that mean "runs anywhere" and go to the store root
PORTABLE_ARCHITECTURES = {"all"}


@dataclass
class ProgressEvent:
    """Emitted on the progress channel after each completed pair."""

    percent: float
    item: str
    bytes_copied: int = 0


@dataclass
class TransferReport:
    """What a transfer pass wrote."""

    transferred: list[TransferTask] = field(default_factory=list)
    pairs: list[PackagePair] = field(default_factory=list)
    bytes_copied: int = 0


def free_space(path: str | Path) -> int:
    """Free bytes on the filesystem holding ``path``."""
    return shutil.disk_usage(path).free


def read_architectures(task: TransferTask) -> list[str]:
    """Architectures declared by the package manifest (``meta/snap.yaml``).

    Returns an empty list when the manifest is missing, unreadable, or
    declares only portable architectures.
    """
    if task.manifest_path is None or not Path(task.manifest_path).is_file():
        return []
    try:
        with open(task.manifest_path) as f:
            manifest = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.warning(f"[Transfer] Could not read manifest for {task.qualified_id}: {e}")
        return []

    if not isinstance(manifest, dict):
        return []
    declared = manifest.get("architectures") or []
    if isinstance(declared, str):
        declared = [declared]
    return [str(a) for a in declared if str(a) not in PORTABLE_ARCHITECTURES]


class TransferEngine:
    """Copies transfer tasks into a destination store."""

    def __init__(
        self,
        destination: str | Path,
        layout: StoreLayout | None = None,
        free_space: Callable[[Path], int] = free_space,
        progress: queue.Queue | None = None,
        token: CancelToken | None = None,
    ):
        self.destination = Path(destination)
        self.layout = layout or StoreLayout()
        self.free_space = free_space
        self.progress = progress
        self.token = token or CancelToken()

    def run(
        self,
        tasks: list[TransferTask],
        bundles: dict[str, Path],
        report: TransferReport | None = None,
    ) -> TransferReport:
        """Copy every task whose bundle is available.

        ``report`` is filled in place, so a caller still sees what was
        written when the pass stops early.

        Raises:
            InsufficientSpace: Before writing a task the destination cannot hold.
            RunCancelled: At a task boundary after cancellation.
        """
        report = report if report is not None else TransferReport()
        runnable = [t for t in tasks if t.name in bundles]
        total = sum(t.size for t in runnable) or 1
        done = 0

        self.destination.mkdir(parents=True, exist_ok=True)

        for task in runnable:
            self.token.raise_if_cancelled()

            available = self.free_space(self.destination)
            if available <= task.size:
                raise InsufficientSpace(task.name, task.revision, task.size, available)

            architectures = read_architectures(task)
            targets = [self.destination / a for a in architectures] or [self.destination]

            placed = self.place(task, bundles[task.name], targets)
            report.pairs.extend(placed)
            report.bytes_copied += sum(
                p.payload.stat().st_size + p.bundle.stat().st_size for p in placed
            )

            report.transferred.append(task)
            done += task.size
            where = ", ".join(architectures) if architectures else "root"
            logger.info(f"[Transfer] Copied {task.qualified_id} ({task.size} bytes) -> {where}")
            self._emit(ProgressEvent(
                percent=min(100.0, done * 100.0 / total),
                item=task.qualified_id,
                bytes_copied=report.bytes_copied,
            ))

        return report

    def place(self, task: TransferTask, bundle: Path, targets: list[Path]) -> list[PackagePair]:
        """Copy the pair into every target directory as one unit.

        Once started the whole set is written. If any placement fails, the
        pairs this call already wrote are removed again, so a package never
        sits in only some of its architecture directories.
        """
        placed: list[PackagePair] = []
        written: list[PackagePair] = []  # Pairs that did not exist before this call
        try:
            for target in targets:
                existed = (target / self.layout.payload_name(task.name, task.revision)).exists()
                pair = self.copy_pair(task, bundle, target)
                placed.append(pair)
                if not existed:
                    written.append(pair)
        except BaseException:
            for pair in written:
                pair.payload.unlink(missing_ok=True)
                pair.bundle.unlink(missing_ok=True)
            logger.warning(
                f"[Transfer] Discarded {len(written)} placement(s) of {task.qualified_id}"
            )
            raise
        return placed

    def copy_pair(self, task: TransferTask, bundle: Path, target: Path) -> PackagePair:
        """Copy payload then bundle into ``target``; both or neither remain."""
        target.mkdir(parents=True, exist_ok=True)
        payload_dest = target / self.layout.payload_name(task.name, task.revision)
        bundle_dest = target / self.layout.bundle_name(task.name, task.revision)

        payload_existed = payload_dest.exists()
        _copy_file(Path(task.payload_path), payload_dest)
        try:
            _copy_file(bundle, bundle_dest)
        except BaseException:
            if not payload_existed:
                payload_dest.unlink(missing_ok=True)
            raise

        return PackagePair(
            name=task.name,
            revision=task.revision,
            payload=payload_dest,
            bundle=bundle_dest,
        )

    def _emit(self, event: ProgressEvent) -> None:
        if self.progress is not None:
            self.progress.put(event)


def _copy_file(src: Path, dest: Path) -> None:
    """Copy ``src`` to ``dest`` via a hidden partial file and an atomic rename."""
    partial = dest.with_name(f".{dest.name}{PARTIAL_SUFFIX}")
    try:
        shutil.copyfile(src, partial)
        os.replace(partial, dest)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
