"""Inventory data models — local entries, destination entries, and pairs."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path


class Origin(Enum):
    """Where a local package came from."""

    SEEDED = "seeded"  # Pre-installed at provisioning time
    INSTALLED = "installed"  # Currently active on the host


@dataclass
class PackageRecord:
    """A raw row from the local inventory source, before reconciliation."""

    name: str
    revision: str  # May be non-numeric, e.g. "x1" for sideloaded snaps
    size: int
    origin: Origin
    payload_path: Path
    bundle_path: Path | None = None  # Seeded snaps ship their own assertions
    manifest_path: Path | None = None


@dataclass
class LocalEntry:
    """The single reconciled local candidate for a package name."""

    name: str
    revision: int
    size: int
    origin: Origin
    payload_path: Path
    bundle_path: Path | None = None
    manifest_path: Path | None = None

    @property
    def qualified_id(self) -> str:
        return f"{self.name}_{self.revision}"


@dataclass
class TransferTask:
    """A local entry selected for copying into the destination."""

    name: str
    revision: int
    size: int
    origin: Origin
    payload_path: Path
    bundle_path: Path | None = None
    manifest_path: Path | None = None

    @classmethod
    def from_entry(cls, entry: LocalEntry) -> TransferTask:
        return cls(
            name=entry.name,
            revision=entry.revision,
            size=entry.size,
            origin=entry.origin,
            payload_path=entry.payload_path,
            bundle_path=entry.bundle_path,
            manifest_path=entry.manifest_path,
        )

    @property
    def qualified_id(self) -> str:
        return f"{self.name}_{self.revision}"


@dataclass
class PackagePair:
    """A payload and its assertion bundle, co-located in one directory."""

    name: str
    revision: int
    payload: Path
    bundle: Path

    @property
    def directory(self) -> Path:
        return self.payload.parent

    @property
    def filename_stem(self) -> str:
        return f"{self.name}_{self.revision}"


@dataclass
class DestinationEntry:
    """All revisions of one package name present in the destination."""

    name: str
    revisions: set[int] = field(default_factory=set)

    @property
    def top(self) -> int:
        return max(self.revisions)


@dataclass
class DestinationInventory:
    """Result of scanning a destination store."""

    entries: dict[str, DestinationEntry] = field(default_factory=dict)
    pairs: list[PackagePair] = field(default_factory=list)
    orphans: list[Path] = field(default_factory=list)

    def __contains__(self, name: str) -> bool:
        return name in self.entries

    def top(self, name: str) -> int | None:
        """Highest revision present for ``name``, or None if absent."""
        entry = self.entries.get(name)
        return entry.top if entry else None

    def revisions(self, name: str) -> set[int]:
        entry = self.entries.get(name)
        return set(entry.revisions) if entry else set()
