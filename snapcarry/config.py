"""Mirror configuration — where snaps live on the host and how many to keep.

Configuration is read from an optional YAML file. Every key has a default,
so an empty or missing file gives a working setup on a stock Ubuntu host.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields
from pathlib import Path

import yaml

from snapcarry.errors import ConfigError

DEFAULT_RETENTION = 2
RETENTION_ENV = "SNAPCARRY_RETENTION"


@dataclass
class MirrorConfig:
    """Settings for a mirror run."""

    retention: int = DEFAULT_RETENTION  # Revisions kept per package name
    seed_dir: Path = Path("/var/lib/snapd/seed")
    snaps_dir: Path = Path("/var/lib/snapd/snaps")
    mount_dir: Path = Path("/snap")
    payload_suffix: str = ".snap"
    meta_suffix: str = ".assert"
    default_publisher: str = "canonical"  # Account that signs without an account record
    snap_command: str = "snap"

    def __post_init__(self) -> None:
        for name in ("seed_dir", "snaps_dir", "mount_dir"):
            setattr(self, name, Path(getattr(self, name)))
        self.retention = validate_retention(self.retention)


def validate_retention(value: object) -> int:
    """Return ``value`` as a retention count, or raise ConfigError."""
    if isinstance(value, bool):
        raise ConfigError(f"retention must be an integer, got {value!r}")
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"retention must be an integer, got {value!r}")
    if count < 1:
        raise ConfigError(f"retention must be at least 1, got {count}")
    return count


def load_config(path: str | Path | None = None) -> MirrorConfig:
    """Load a MirrorConfig from a YAML file.

    Unknown keys are ignored. The ``SNAPCARRY_RETENTION`` environment
    variable overrides the file's ``retention`` value.
    """
    data: dict = {}
    if path is not None:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"{path}: expected a mapping at the top level")

    known = {f.name for f in fields(MirrorConfig)}
    values = {k: v for k, v in data.items() if k in known}

    env_retention = os.environ.get(RETENTION_ENV)
    if env_retention:
        values["retention"] = env_retention

    return MirrorConfig(**values)
