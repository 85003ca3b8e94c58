"""Run orchestration — one mirror run from inventory to a clean store.

State machine::

    IDLE -> RECONCILING -> SELECTING -> SYNTHESIZING -> TRANSFERRING
         -> CLEANUP -> RECONCILED_CLEAN | ABORTED

Cleanup is reached from every stage. It always runs the pairing sweep and
the retention sweep, so no run (completed, cancelled, or failed) leaves a
payload without its bundle. Cancellation ends RECONCILED_CLEAN; fatal
errors end ABORTED.

The run can execute on a background thread (:meth:`MirrorRun.start`) while
a supervisor reads :class:`ProgressEvent` items from ``progress`` and calls
``token.cancel()``. A ``None`` item marks the end of the run.
"""

from __future__ import annotations

import logging
import queue
import tempfile
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from snapcarry.config import MirrorConfig
from snapcarry.errors import RunCancelled, SnapcarryError
from snapcarry.inventory.destination import StoreLayout, scan_destination
from snapcarry.inventory.models import LocalEntry, PackagePair, TransferTask
from snapcarry.inventory.source import PackageSource, SnapdPackageSource, build_local_inventory
from snapcarry.sync.assertions import AssertionQuery, AssertionSynthesizer, SnapdAssertionQuery
from snapcarry.sync.cancel import CancelToken
from snapcarry.sync.retention import pairing_sweep, retention_sweep
from snapcarry.sync.selection import select_transfers
from snapcarry.sync.transfer import TransferEngine, TransferReport, free_space

logger = logging.getLogger(__name__)


class RunState(Enum):
    IDLE = "idle"
    RECONCILING = "reconciling"
    SELECTING = "selecting"
    SYNTHESIZING = "synthesizing"
    TRANSFERRING = "transferring"
    CLEANUP = "cleanup"
    RECONCILED_CLEAN = "reconciled_clean"
    ABORTED = "aborted"


@dataclass
class RunResult:
    """Outcome of a mirror run."""

    state: RunState = RunState.IDLE
    transferred: list[TransferTask] = field(default_factory=list)
    skipped: list[TransferTask] = field(default_factory=list)  # Incomplete bundles
    removed_orphans: list[Path] = field(default_factory=list)
    pruned: list[PackagePair] = field(default_factory=list)
    bytes_copied: int = 0
    cancelled: bool = False
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.state == RunState.RECONCILED_CLEAN

    def summary(self) -> str:
        lines = [
            f"State:       {self.state.value}{' (cancelled)' if self.cancelled else ''}",
            f"Copied:      {len(self.transferred)} package(s), {self.bytes_copied} bytes",
            f"Skipped:     {len(self.skipped)} (incomplete assertions)",
            f"Pruned:      {len(self.pruned)} old pair(s)",
            f"Orphans:     {len(self.removed_orphans)} removed",
        ]
        if self.error:
            lines.append(f"Error:       {self.error}")
        return "\n".join(lines)


class MirrorRun:
    """A single mirror run against one destination store.

    Only one run may target a destination at a time. This is not enforced.
    """

    def __init__(
        self,
        config: MirrorConfig,
        destination: str | Path,
        source: PackageSource | None = None,
        query: AssertionQuery | None = None,
        progress: queue.Queue | None = None,
        token: CancelToken | None = None,
        free_space: Callable[[Path], int] = free_space,
    ):
        self.config = config
        self.destination = Path(destination)
        self.source = source or SnapdPackageSource(config)
        self.query = query or SnapdAssertionQuery(config.snap_command)
        self.progress = progress if progress is not None else queue.Queue()
        self.token = token or CancelToken()
        self.free_space = free_space
        self.layout = StoreLayout(config.payload_suffix, config.meta_suffix)
        self.state = RunState.IDLE
        self.result: RunResult | None = None

    def plan(self) -> list[TransferTask]:
        """Reconcile and select only. Nothing is written."""
        local = self._reconcile()
        destination = scan_destination(self.destination, self.layout)
        return select_transfers(local, destination)

    def start(self) -> threading.Thread:
        """Run on a background thread. The result lands in ``self.result``."""
        thread = threading.Thread(target=self.run, name="snapcarry-run", daemon=True)
        thread.start()
        return thread

    def run(self) -> RunResult:
        """Execute the full run and return its result."""
        result = RunResult()
        report = TransferReport()
        logger.info(f"[Run] Mirroring to {self.destination} (keeping {self.config.retention})")

        try:
            self._enter(RunState.RECONCILING)
            local = self._reconcile()
            self.token.raise_if_cancelled()

            self._enter(RunState.SELECTING)
            destination = scan_destination(self.destination, self.layout)
            tasks = select_transfers(local, destination)
            self.token.raise_if_cancelled()

            self._enter(RunState.SYNTHESIZING)
            synthesizer = AssertionSynthesizer(self.query, self.config.default_publisher)
            with tempfile.TemporaryDirectory(prefix="snapcarry_") as work_dir:
                bundles, result.skipped = synthesizer.prepare(tasks, work_dir, self.token)

                self._enter(RunState.TRANSFERRING)
                engine = TransferEngine(
                    self.destination,
                    layout=self.layout,
                    free_space=self.free_space,
                    progress=self.progress,
                    token=self.token,
                )
                engine.run(tasks, bundles, report)

        except RunCancelled:
            result.cancelled = True
            logger.warning(f"[Run] Cancelled during {self.state.value}")
        except SnapcarryError as e:
            result.error = str(e)
            logger.error(f"[Run] {type(e).__name__}: {e}")
        except Exception as e:
            result.error = f"{type(e).__name__}: {e}"
            logger.exception(f"[Run] Stage {self.state.value} crashed")
        finally:
            result.transferred = list(report.transferred)
            result.bytes_copied = report.bytes_copied
            self._cleanup(result)
            self.progress.put(None)

        self.result = result
        logger.info(f"[Run] Finished: {result.state.value}")
        return result

    def _reconcile(self) -> dict[str, LocalEntry]:
        return build_local_inventory(self.source.seeded(), self.source.installed())

    def _cleanup(self, result: RunResult) -> None:
        self._enter(RunState.CLEANUP)
        try:
            result.removed_orphans = pairing_sweep(self.destination, self.layout)
            result.pruned = retention_sweep(
                self.destination, self.config.retention, self.layout
            )
            result.removed_orphans += pairing_sweep(self.destination, self.layout)
        except OSError as e:
            result.error = result.error or f"Cleanup failed: {e}"
            logger.error(f"[Run] Cleanup failed: {e}")

        result.state = RunState.ABORTED if result.error else RunState.RECONCILED_CLEAN
        self.state = result.state

    def _enter(self, state: RunState) -> None:
        logger.debug(f"[Run] {self.state.value} -> {state.value}")
        self.state = state
