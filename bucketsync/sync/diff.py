"""Three-way diff between a local and a remote inventory.

Pure and deterministic: the result depends only on the two snapshots and
the policy. Files present on both sides are only transferred when both
hashes are known, they differ, and one side is strictly newer; equal
timestamps with differing content leave the file untouched.
"""
from __future__ import annotations

import logging

from bucketsync.sync.models import Inventory, LocalRecord, Record, RemoteRecord, SyncDirection, SyncPlan, SyncPolicy

logger = logging.getLogger("sync")

SINGLE_PART_MAX_BYTES = 1024 * 1024 * 1024

SKIP_OVERSIZED = "oversized"


def _content_differs(a: Record, b: Record) -> bool:
    # An unknown hash never counts as equal or different.
    if a.content_hash is None or b.content_hash is None:
        return False
    return a.content_hash != b.content_hash


def compute_diff(
    local: Inventory,
    remote: Inventory,
    policy: SyncPolicy,
    single_part_max_bytes: int = SINGLE_PART_MAX_BYTES,
) -> SyncPlan:
    to_upload: list[LocalRecord] = []
    to_download: list[RemoteRecord] = []
    to_delete: list[Record] = []
    skipped: list[tuple[str, str]] = []

    for r in remote:
        l = local.get(r.logical_path)
        if l is None:
            if policy.direction is SyncDirection.FROM_LOCAL:
                to_delete.append(r)
            else:
                to_download.append(r)
        elif _content_differs(l, r) and r.last_modified > l.last_modified:
            to_download.append(r)

    for l in local:
        r = remote.get(l.logical_path)
        if r is None:
            if not policy.local_protection and policy.direction is SyncDirection.FROM_REMOTE:
                to_delete.append(l)
            elif l.size_bytes < single_part_max_bytes:
                to_upload.append(l)
            else:
                skipped.append((l.logical_path, SKIP_OVERSIZED))
                logger.warning(
                    "upload_skipped_oversized path=%s size=%s limit=%s",
                    l.logical_path,
                    l.size_bytes,
                    single_part_max_bytes,
                )
        elif _content_differs(l, r) and l.last_modified > r.last_modified:
            to_upload.append(l)

    plan = SyncPlan(
        to_upload=tuple(sorted(to_upload, key=lambda rec: rec.logical_path)),
        to_download=tuple(sorted(to_download, key=lambda rec: rec.logical_path)),
        to_delete=tuple(sorted(to_delete, key=lambda rec: (rec.origin.value, rec.logical_path))),
        skipped=tuple(sorted(skipped)),
    )
    logger.debug(
        "plan_computed direction=%s protection=%s upload=%s download=%s delete=%s skipped=%s",
        policy.direction.value,
        policy.local_protection,
        len(plan.to_upload),
        len(plan.to_download),
        len(plan.to_delete),
        len(plan.skipped),
    )
    return plan


def is_in_sync(plan: SyncPlan) -> bool:
    return plan.is_in_sync()
