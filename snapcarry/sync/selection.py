"""Selection — diff the local inventory against the destination store."""

from __future__ import annotations

import logging

from snapcarry.inventory.models import DestinationInventory, LocalEntry, TransferTask

logger = logging.getLogger(__name__)


def needs_transfer(entry: LocalEntry, destination: DestinationInventory) -> bool:
    """True when the store lacks ``entry.name`` or holds only older revisions."""
    top = destination.top(entry.name)
    return top is None or entry.revision > top


def select_transfers(
    local: dict[str, LocalEntry],
    destination: DestinationInventory,
) -> list[TransferTask]:
    """Return the copy set, sorted by name.

    Equal revisions are never re-copied, so a caught-up store yields an
    empty list.
    """
    tasks = []
    for name in sorted(local):
        entry = local[name]
        if needs_transfer(entry, destination):
            tasks.append(TransferTask.from_entry(entry))
        else:
            logger.debug(
                f"[Select] {name}: store has revision {destination.top(name)}, "
                f"local is {entry.revision} — already current"
            )
    logger.info(f"[Select] {len(tasks)} of {len(local)} packages need copying")
    return tasks
