"""Assertion synthesis — rebuild the signed bundle for installed snaps.

Seeded snaps ship with an assertion file. Installed snaps do not, so the
bundle is assembled from snapd's local assertion database:

1. account-key   the key that signed the revision
2. account       the publisher, omitted for the default signer
3. snap-declaration
4. snap-revision

Fragments are concatenated in that order, separated by a blank line.
"""

from __future__ import annotations

import logging
import subprocess
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol

from snapcarry.errors import MetadataSynthesisIncomplete, UnknownOrigin
from snapcarry.inventory.models import Origin, TransferTask
from snapcarry.sync.cancel import CancelToken

logger = logging.getLogger(__name__)

SERIES = "16"


class AssertionKind:
    ACCOUNT_KEY = "account-key"
    ACCOUNT = "account"
    DECLARATION = "snap-declaration"
    REVISION = "snap-revision"


class AssertionQuery(Protocol):
    """Local, read-only assertion lookup. Returns "" when nothing matches."""

    def known(self, kind: str, **headers: str) -> str: ...


class SnapdAssertionQuery:
    """Query snapd's assertion database with ``snap known``."""

    def __init__(self, snap_command: str = "snap"):
        self.snap_command = snap_command

    def known(self, kind: str, **headers: str) -> str:
        command = [self.snap_command, "known", kind]
        command += [f"{key}={value}" for key, value in headers.items()]
        try:
            proc = subprocess.run(command, capture_output=True, text=True)
        except FileNotFoundError:
            logger.warning(f"[Assertions] '{self.snap_command}' not found")
            return ""
        if proc.returncode != 0:
            logger.debug(f"[Assertions] {' '.join(command)} failed: {proc.stderr.strip()}")
            return ""
        return proc.stdout


def parse_headers(text: str) -> dict[str, str]:
    """Parse the header block of the first assertion in ``text``.

    Only single-line top-level headers are returned; multi-line values and
    the body are ignored.
    """
    headers: dict[str, str] = {}
    for line in text.splitlines():
        if not line.strip():
            break
        if line[0].isspace() or ":" not in line:
            continue
        key, _, value = line.partition(":")
        headers[key.strip()] = value.strip()
    return headers


class AssertionSynthesizer:
    """Assembles assertion bundles for transfer tasks."""

    def __init__(self, query: AssertionQuery, default_publisher: str = "canonical"):
        self.query = query
        self.default_publisher = default_publisher

    def build_bundle(self, task: TransferTask) -> str:
        """Return the full assertion bundle for an installed snap.

        Raises:
            MetadataSynthesisIncomplete: If any required query is empty.
        """
        declaration = self._fetch(
            task, AssertionKind.DECLARATION, snap_name=task.name, series=SERIES
        )
        declared = parse_headers(declaration)
        snap_id = declared.get("snap-id", "")
        publisher_id = declared.get("publisher-id", "")

        revision = self._fetch(
            task,
            AssertionKind.REVISION,
            snap_id=snap_id,
            snap_revision=str(task.revision),
        )
        sign_key = parse_headers(revision).get("sign-key-sha3-384", "")

        key = self._fetch(task, AssertionKind.ACCOUNT_KEY, public_key_sha3_384=sign_key)

        fragments = [key]
        if publisher_id != self.default_publisher:
            fragments.append(
                self._fetch(task, AssertionKind.ACCOUNT, account_id=publisher_id)
            )
        fragments += [declaration, revision]

        return "\n\n".join(f.strip() for f in fragments) + "\n"

    def prepare(
        self,
        tasks: Iterable[TransferTask],
        work_dir: str | Path,
        token: CancelToken | None = None,
    ) -> tuple[dict[str, Path], list[TransferTask]]:
        """Resolve a bundle file for every task.

        Installed snaps get a freshly built bundle in ``work_dir``; seeded
        snaps use the one they shipped with.

        Returns:
            (bundles by package name, tasks skipped for an incomplete bundle)
        """
        work_dir = Path(work_dir)
        work_dir.mkdir(parents=True, exist_ok=True)
        bundles: dict[str, Path] = {}
        skipped: list[TransferTask] = []

        for task in tasks:
            if token:
                token.raise_if_cancelled()
            try:
                bundles[task.name] = self._resolve(task, work_dir)
            except MetadataSynthesisIncomplete as e:
                logger.warning(f"[Assertions] {e} — {task.qualified_id} will not be copied")
                skipped.append(task)

        return bundles, skipped

    def _resolve(self, task: TransferTask, work_dir: Path) -> Path:
        if task.origin == Origin.SEEDED:
            if task.bundle_path is None or not Path(task.bundle_path).is_file():
                raise MetadataSynthesisIncomplete(task.name, task.revision, "seed assertion")
            return Path(task.bundle_path)

        if task.origin == Origin.INSTALLED:
            bundle = self.build_bundle(task)
            path = work_dir / f"{task.qualified_id}.assert"
            path.write_text(bundle)
            logger.debug(f"[Assertions] Built bundle for {task.qualified_id}")
            return path

        raise UnknownOrigin(task.origin)

    def _fetch(self, task: TransferTask, kind: str, **headers: str) -> str:
        text = self.query.known(
            kind, **{key.replace("_", "-"): value for key, value in headers.items()}
        )
        if not text.strip():
            raise MetadataSynthesisIncomplete(task.name, task.revision, kind)
        return text
