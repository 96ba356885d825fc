import random

from fakes import local_rec, remote_rec

from bucketsync.sync.diff import SKIP_OVERSIZED, compute_diff, is_in_sync
from bucketsync.sync.models import Inventory, Origin, SyncDirection, SyncPolicy

H1 = "1" * 32
H2 = "2" * 32
GIB = 1024 * 1024 * 1024

FROM_LOCAL = SyncPolicy(direction=SyncDirection.FROM_LOCAL)
FROM_REMOTE = SyncPolicy(direction=SyncDirection.FROM_REMOTE)


def _local(*records) -> Inventory:
    return Inventory(Origin.LOCAL, records)


def _remote(*records) -> Inventory:
    return Inventory(Origin.REMOTE, records)


def _paths(records) -> list[str]:
    return [r.logical_path for r in records]


def test_local_only_file_is_uploaded_from_local():
    plan = compute_diff(_local(local_rec("a.md", H1, at=10)), _remote(), FROM_LOCAL)

    assert _paths(plan.to_upload) == ["a.md"]
    assert plan.to_download == ()
    assert plan.to_delete == ()


def test_remote_only_file_is_downloaded_from_remote():
    plan = compute_diff(_local(), _remote(remote_rec("b.md", at=5)), FROM_REMOTE)

    assert _paths(plan.to_download) == ["b.md"]
    assert plan.to_upload == ()
    assert plan.to_delete == ()


def test_changed_file_uploads_when_local_is_newer():
    plan = compute_diff(_local(local_rec("c.md", H1, at=20)), _remote(remote_rec("c.md", H2, at=10)), FROM_LOCAL)

    assert _paths(plan.to_upload) == ["c.md"]
    assert plan.to_download == ()


def test_changed_file_downloads_when_remote_is_newer():
    plan = compute_diff(_local(local_rec("d.md", H1, at=5)), _remote(remote_rec("d.md", H2, at=20)), FROM_LOCAL)

    assert _paths(plan.to_download) == ["d.md"]
    assert plan.to_upload == ()


def test_oversized_local_only_file_is_skipped_not_planned(caplog):
    plan = compute_diff(_local(local_rec("e.md", H1, size=2 * GIB)), _remote(), FROM_LOCAL)

    assert plan.is_in_sync()
    assert plan.skipped == (("e.md", SKIP_OVERSIZED),)
    assert "upload_skipped_oversized path=e.md" in caplog.text


def test_file_at_exactly_one_gib_is_skipped():
    plan = compute_diff(_local(local_rec("big.bin", H1, size=GIB)), _remote(), FROM_LOCAL)
    assert plan.to_upload == ()


def test_remote_only_file_is_deleted_from_local():
    plan = compute_diff(_local(), _remote(remote_rec("stale.md")), FROM_LOCAL)

    assert [(r.origin, r.logical_path) for r in plan.to_delete] == [(Origin.REMOTE, "stale.md")]


def test_protected_local_only_file_is_uploaded_not_deleted_from_remote():
    policy = SyncPolicy(direction=SyncDirection.FROM_REMOTE, local_protection=True)
    plan = compute_diff(_local(local_rec("keep.md")), _remote(), policy)

    assert "keep.md" not in _paths(plan.to_delete)
    assert "keep.md" not in _paths(plan.to_download)
    # Protected files still flow up.
    assert _paths(plan.to_upload) == ["keep.md"]


def test_unprotected_local_only_file_is_deleted_from_remote():
    policy = SyncPolicy(direction=SyncDirection.FROM_REMOTE, local_protection=False)
    plan = compute_diff(_local(local_rec("gone.md")), _remote(), policy)

    assert [(r.origin, r.logical_path) for r in plan.to_delete] == [(Origin.LOCAL, "gone.md")]
    assert plan.to_upload == ()


def test_equal_timestamps_with_different_hashes_are_left_alone():
    plan = compute_diff(_local(local_rec("x.md", H1, at=7)), _remote(remote_rec("x.md", H2, at=7)), FROM_LOCAL)
    assert plan.is_in_sync()


def test_unknown_hash_disables_content_comparison():
    local = _local(local_rec("x.md", None, at=50))
    remote = _remote(remote_rec("x.md", H2, at=10))
    assert compute_diff(local, remote, FROM_LOCAL).is_in_sync()

    local = _local(local_rec("y.md", H1, at=10))
    remote = _remote(remote_rec("y.md", None, at=50))
    assert compute_diff(local, remote, FROM_LOCAL).is_in_sync()


def test_identical_files_are_in_sync():
    plan = compute_diff(_local(local_rec("same.md", H1, at=10)), _remote(remote_rec("same.md", H1, at=99)), FROM_REMOTE)
    assert is_in_sync(plan)
    assert plan.summary_text() == "in sync"


def test_plan_is_independent_of_input_order():
    locals_ = [local_rec(f"l{i}.md", H1, at=i) for i in range(20)] + [local_rec(f"s{i}.md", H1, at=30) for i in range(10)]
    remotes = [remote_rec(f"r{i}.md", at=i) for i in range(20)] + [remote_rec(f"s{i}.md", H2, at=10 + 2 * i) for i in range(10)]

    expected = compute_diff(_local(*locals_), _remote(*remotes), FROM_LOCAL)
    rng = random.Random(42)
    for _ in range(5):
        rng.shuffle(locals_)
        rng.shuffle(remotes)
        assert compute_diff(_local(*locals_), _remote(*remotes), FROM_LOCAL) == expected


def test_plan_sets_are_disjoint():
    local = _local(
        local_rec("only-local.md", H1),
        local_rec("newer-local.md", H1, at=20),
        local_rec("newer-remote.md", H1, at=5),
        local_rec("same.md", H1),
    )
    remote = _remote(
        remote_rec("only-remote.md"),
        remote_rec("newer-local.md", H2, at=10),
        remote_rec("newer-remote.md", H2, at=20),
        remote_rec("same.md", H1),
    )

    for policy in (FROM_LOCAL, FROM_REMOTE, SyncPolicy(SyncDirection.FROM_REMOTE, local_protection=False)):
        plan = compute_diff(local, remote, policy)
        up = set(_paths(plan.to_upload))
        down = set(_paths(plan.to_download))
        delete = set(_paths(plan.to_delete))
        assert not (up & down)
        assert not (up & delete)
        assert not (down & delete)


def test_direction_swaps_one_sided_files():
    local = _local(local_rec("l.md"))
    remote = _remote(remote_rec("r.md"))

    from_local = compute_diff(local, remote, SyncPolicy(SyncDirection.FROM_LOCAL, local_protection=False))
    from_remote = compute_diff(local, remote, SyncPolicy(SyncDirection.FROM_REMOTE, local_protection=False))

    assert from_local.paths() == {"upload": ["l.md"], "download": [], "delete": ["remote:r.md"]}
    assert from_remote.paths() == {"upload": [], "download": ["r.md"], "delete": ["local:l.md"]}


def test_plan_summary_counts_and_symbols():
    local = _local(local_rec("a.md"), local_rec("b.md"))
    remote = _remote(remote_rec("c.md"))
    plan = compute_diff(local, remote, FROM_LOCAL)

    assert plan.counts() == {"upload": 2, "download": 0, "delete": 1, "skipped": 0}
    assert plan.summary_text() == "↑ 2 ✕ 1"
    summary = plan.to_summary()
    assert summary["in_sync"] is False
    assert summary["paths"]["upload"] == ["a.md", "b.md"]
