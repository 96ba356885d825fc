from __future__ import annotations

import asyncio
import logging
import time

from bucketsync.core.config import SyncConfig
from bucketsync.sync.collaborators import LocalTree
from bucketsync.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger("scheduler")


async def _wait_stop_or_timeout(stop_event: asyncio.Event, timeout_sec: float) -> bool:
    if timeout_sec <= 0:
        return stop_event.is_set()
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout_sec)
        return True
    except asyncio.TimeoutError:
        return False


async def tree_signature(tree: LocalTree) -> frozenset:
    files = await tree.list_files()
    return frozenset((f.path, f.mtime, f.size) for f in files)


async def watch_loop(
    orchestrator: SyncOrchestrator,
    tree: LocalTree,
    settings: SyncConfig,
    stop_event: asyncio.Event,
) -> None:
    """Poll the local tree for changes and pull the remote side periodically.

    Local changes are fed to ``orchestrator.on_local_change()``, which either
    re-arms the debounced auto-sync or refreshes the local inventory.
    """
    signature = await tree_signature(tree)
    next_pull_at = time.monotonic() + settings.auto_pull_interval if settings.auto_pull else None
    logger.info(
        "watch_started poll_sec=%s auto_sync=%s auto_pull=%s",
        settings.watch_poll_interval,
        settings.auto_sync,
        settings.auto_pull,
    )

    try:
        while not stop_event.is_set():
            if await _wait_stop_or_timeout(stop_event, settings.watch_poll_interval):
                break

            try:
                current = await tree_signature(tree)
                if current != signature:
                    signature = current
                    logger.info("local_change_detected files=%s", len(current))
                    await orchestrator.on_local_change()

                if next_pull_at is not None and time.monotonic() >= next_pull_at:
                    next_pull_at = time.monotonic() + settings.auto_pull_interval
                    await orchestrator.run_remote_pull()
            except Exception as e:
                logger.exception("watch_iteration_failed: %s", e)
    finally:
        orchestrator.auto_sync_task.cancel()
        logger.info("watch_stopped")
