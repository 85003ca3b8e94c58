"""Shared fakes: a local package host and an assertion database."""

from pathlib import Path
from types import SimpleNamespace

import pytest
import yaml

from snapcarry.inventory.models import Origin, PackageRecord


class FakeHost:
    """In-memory package source backed by real payload files on disk."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.seeded_records: list[PackageRecord] = []
        self.installed_records: list[PackageRecord] = []

    def add_installed(self, name, revision, size, architectures=None):
        payload = self._payload(name, revision, size)
        manifest = None
        if architectures is not None:
            manifest = self.root / f"{name}_{revision}.yaml"
            manifest.write_text(yaml.dump({"name": name, "architectures": architectures}))
        record = PackageRecord(
            name=name,
            revision=str(revision),
            size=size,
            origin=Origin.INSTALLED,
            payload_path=payload,
            manifest_path=manifest,
        )
        self.installed_records.append(record)
        return record

    def add_seeded(self, name, revision, size, with_bundle=True):
        payload = self._payload(name, revision, size)
        bundle = None
        if with_bundle:
            bundle = self.root / f"{name}_{revision}.seed-assert"
            bundle.write_text(f"type: snap-revision\nsnap-revision: {revision}\n\nseed-sig\n")
        record = PackageRecord(
            name=name,
            revision=str(revision),
            size=size,
            origin=Origin.SEEDED,
            payload_path=payload,
            bundle_path=bundle,
        )
        self.seeded_records.append(record)
        return record

    def seeded(self):
        return list(self.seeded_records)

    def installed(self):
        return list(self.installed_records)

    def _payload(self, name, revision, size) -> Path:
        path = self.root / f"{name}_{revision}.payload-src"
        path.write_bytes(b"x" * size)
        return path


class FakeQuery:
    """Assertion database answering ``snap known`` style queries."""

    def __init__(self, publishers=None, missing=()):
        self.publishers = publishers or {}
        self.missing = set(missing)
        self.calls = []

    def known(self, kind, **headers):
        self.calls.append((kind, headers))
        if kind in self.missing:
            return ""
        if kind == "snap-declaration":
            name = headers["snap-name"]
            publisher = self.publishers.get(name, "canonical")
            return (
                "type: snap-declaration\n"
                f"snap-id: {name}-id\n"
                f"publisher-id: {publisher}\n"
                f"snap-name: {name}\n"
                "\nsig-declaration\n"
            )
        if kind == "snap-revision":
            return (
                "type: snap-revision\n"
                f"snap-id: {headers['snap-id']}\n"
                f"snap-revision: {headers['snap-revision']}\n"
                "sign-key-sha3-384: key-1\n"
                "\nsig-revision\n"
            )
        if kind == "account-key":
            return (
                "type: account-key\n"
                f"public-key-sha3-384: {headers['public-key-sha3-384']}\n"
                "\nsig-key\n"
            )
        if kind == "account":
            return f"type: account\naccount-id: {headers['account-id']}\n\nsig-account\n"
        return ""


def write_pair(directory: Path, name: str, revision: int, payload_suffix=".snap",
               meta_suffix=".assert") -> None:
    """Place a complete payload/bundle pair in a destination directory."""
    directory.mkdir(parents=True, exist_ok=True)
    (directory / f"{name}_{revision}{payload_suffix}").write_bytes(b"p" * 10)
    (directory / f"{name}_{revision}{meta_suffix}").write_text("bundle\n")


def listing(root: Path) -> list[str]:
    """Relative paths of every file under ``root``, sorted."""
    return sorted(str(p.relative_to(root)) for p in root.rglob("*") if p.is_file())


@pytest.fixture
def host(tmp_path):
    return FakeHost(tmp_path / "host")


@pytest.fixture
def query():
    return FakeQuery()


@pytest.fixture
def make_query():
    return FakeQuery


@pytest.fixture
def dest(tmp_path):
    path = tmp_path / "usb"
    path.mkdir()
    return path


@pytest.fixture
def store():
    """Helpers for building and inspecting destination stores."""
    return SimpleNamespace(write_pair=write_pair, listing=listing)
