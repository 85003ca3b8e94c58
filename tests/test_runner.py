"""End-to-end tests for a mirror run."""

import queue

from snapcarry.config import MirrorConfig
from snapcarry.inventory.destination import scan_destination
from snapcarry.sync.cancel import CancelToken
from snapcarry.sync.runner import MirrorRun, RunState
from snapcarry.sync.transfer import TransferEngine


def _run(host, query, dest, retention=2, free=10_000, token=None, progress=None):
    return MirrorRun(
        MirrorConfig(retention=retention),
        dest,
        source=host,
        query=query,
        progress=progress,
        token=token,
        free_space=lambda _p: free,
    )


def _assert_paired(dest):
    inventory = scan_destination(dest)
    assert inventory.orphans == []
    assert not any(p.name.endswith(".partial") for p in dest.rglob("*"))


def test_scenario_keeps_two_revisions(host, query, dest, store):
    store.write_pair(dest, "app", 10)
    host.add_installed("app", 12, 500)
    host.add_seeded("tool", 3, 100)

    run = _run(host, query, dest, retention=2)
    assert [(t.name, t.revision) for t in run.plan()] == [("app", 12), ("tool", 3)]

    result = run.run()

    assert result.state == RunState.RECONCILED_CLEAN
    assert result.ok
    assert [t.qualified_id for t in result.transferred] == ["app_12", "tool_3"]
    assert store.listing(dest) == [
        "app_10.assert",
        "app_10.snap",
        "app_12.assert",
        "app_12.snap",
        "tool_3.assert",
        "tool_3.snap",
    ]
    assert (dest / "tool_3.assert").read_text().endswith("seed-sig\n")
    assert "type: snap-revision" in (dest / "app_12.assert").read_text()


def test_scenario_keeps_one_revision(host, query, dest, store):
    store.write_pair(dest, "app", 10)
    host.add_installed("app", 12, 500)
    host.add_seeded("tool", 3, 100)

    result = _run(host, query, dest, retention=1).run()

    assert result.ok
    assert [p.filename_stem for p in result.pruned] == ["app_10"]
    assert store.listing(dest) == [
        "app_12.assert",
        "app_12.snap",
        "tool_3.assert",
        "tool_3.snap",
    ]


def test_second_run_is_a_no_op(host, query, dest, store):
    host.add_installed("app", 12, 500, architectures=["amd64", "arm64"])
    host.add_seeded("tool", 3, 100)

    first = _run(host, query, dest).run()
    before = store.listing(dest)
    second = _run(host, query, dest).run()

    assert len(first.transferred) == 2
    assert second.transferred == []
    assert second.ok
    assert store.listing(dest) == before


def test_seeded_revision_replaced_by_installed(host, query, dest):
    host.add_seeded("app", 3, 100)
    host.add_installed("app", 5, 100)

    result = _run(host, query, dest).run()

    assert [t.qualified_id for t in result.transferred] == ["app_5"]
    assert scan_destination(dest).revisions("app") == {5}


def test_incomplete_assertions_are_skipped(host, make_query, dest, store):
    host.add_installed("app", 12, 500)
    host.add_seeded("tool", 3, 100)

    result = _run(host, make_query(missing={"snap-declaration"}), dest).run()

    assert result.ok
    assert [t.name for t in result.skipped] == ["app"]
    assert store.listing(dest) == ["tool_3.assert", "tool_3.snap"]


def test_insufficient_space_aborts_and_cleans(host, query, dest, store):
    store.write_pair(dest, "app", 10)
    (dest / "core_4.snap").write_bytes(b"left over from a crash")
    host.add_installed("app", 12, 500)

    result = _run(host, query, dest, free=200).run()

    assert result.state == RunState.ABORTED
    assert not result.ok
    assert "app_12" in result.error
    assert result.transferred == []
    assert [p.name for p in result.removed_orphans] == ["core_4.snap"]
    assert store.listing(dest) == ["app_10.assert", "app_10.snap"]


def test_cancelled_run_cleans_up(host, query, dest, store):
    store.write_pair(dest, "app", 10)
    (dest / "app_11.assert").write_text("orphan")
    host.add_installed("app", 12, 500)
    token = CancelToken()
    token.cancel()

    result = _run(host, query, dest, token=token).run()

    assert result.cancelled
    assert result.state == RunState.RECONCILED_CLEAN
    assert result.transferred == []
    assert store.listing(dest) == ["app_10.assert", "app_10.snap"]


def test_unknown_origin_aborts(host, query, dest):
    record = host.add_installed("app", 12, 500)
    record.origin = "sideloaded"

    result = _run(host, query, dest).run()

    assert result.state == RunState.ABORTED
    assert "sideloaded" in result.error
    _assert_paired(dest)


def test_background_run_reports_progress(host, query, dest):
    host.add_installed("app", 12, 500)
    host.add_seeded("tool", 3, 100)
    channel = queue.Queue()

    run = _run(host, query, dest, progress=channel)
    thread = run.start()

    events = []
    while True:
        event = channel.get(timeout=10)
        if event is None:
            break
        events.append(event)
    thread.join(timeout=10)

    assert [e.item for e in events] == ["app_12", "tool_3"]
    assert events[-1].percent == 100.0
    assert run.result is not None
    assert run.result.ok
    assert run.state == RunState.RECONCILED_CLEAN
    _assert_paired(dest)


def test_summary_mentions_outcome(host, query, dest):
    host.add_installed("app", 12, 500)
    result = _run(host, query, dest).run()
    text = result.summary()
    assert "reconciled_clean" in text
    assert "1 package(s)" in text


def test_cancel_between_architectures_completes_the_set(host, query, dest, store, monkeypatch):
    host.add_installed("app", 12, 500, architectures=["amd64", "arm64"])
    host.add_seeded("tool", 3, 100)
    token = CancelToken()
    copy_pair = TransferEngine.copy_pair

    def copy_then_cancel(self, task, bundle, target):
        pair = copy_pair(self, task, bundle, target)
        token.cancel()
        return pair

    monkeypatch.setattr("snapcarry.sync.transfer.TransferEngine.copy_pair", copy_then_cancel)
    first = _run(host, query, dest, token=token).run()

    assert first.cancelled
    assert first.state == RunState.RECONCILED_CLEAN
    assert [t.qualified_id for t in first.transferred] == ["app_12"]
    assert store.listing(dest) == [
        "amd64/app_12.assert",
        "amd64/app_12.snap",
        "arm64/app_12.assert",
        "arm64/app_12.snap",
    ]

    monkeypatch.undo()
    second = _run(host, query, dest).run()

    assert [t.qualified_id for t in second.transferred] == ["tool_3"]
    assert scan_destination(dest).revisions("app") == {12}
    _assert_paired(dest)
