"""Error kinds raised by the mirroring engine."""

from __future__ import annotations


class SnapcarryError(Exception):
    """Base class for all snapcarry errors."""


class ConfigError(SnapcarryError):
    """Configuration value is missing or out of range."""


class InsufficientSpace(SnapcarryError):
    """The destination cannot hold the next package. Fatal for the run."""

    def __init__(self, name: str, revision: int, required: int, available: int):
        self.name = name
        self.revision = revision
        self.required = required
        self.available = available
        super().__init__(
            f"Not enough space for {name}_{revision}: "
            f"{required} bytes needed, {available} available"
        )


class MetadataSynthesisIncomplete(SnapcarryError):
    """An assertion query came back empty. The package is skipped."""

    def __init__(self, name: str, revision: int, kind: str):
        self.name = name
        self.revision = revision
        self.kind = kind
        super().__init__(f"No {kind} assertion for {name}_{revision}")


class UnknownOrigin(SnapcarryError):
    """A package carries an origin the engine does not know how to handle."""

    def __init__(self, origin: object):
        self.origin = origin
        super().__init__(f"Unknown package origin: {origin!r}")


class RunCancelled(SnapcarryError):
    """The run was cancelled through its cancel token."""
