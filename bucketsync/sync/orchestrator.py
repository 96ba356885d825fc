"""Sequences inventory → diff → execute → inventory for one sync cycle.

All mutable lifecycle state (current state, inventories, last plan, the
debounced auto-sync handle) lives on the orchestrator instance.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from bucketsync.core.config import SyncConfig
from bucketsync.core.errors import ConfigInvalid
from bucketsync.sync.collaborators import LocalTree, ObjectStore
from bucketsync.sync.debounce import DebouncedTask
from bucketsync.sync.diff import compute_diff
from bucketsync.sync.executor import ExecutionReport, SyncExecutor
from bucketsync.sync.inventory import InventoryBuilder
from bucketsync.sync.models import Inventory, SyncDirection, SyncPlan

logger = logging.getLogger("sync")


class SyncState(str, Enum):
    LOADING = "loading"
    READY = "ready"
    TESTING = "testing"
    CHECKING = "checking"
    SYNCING = "syncing"
    ERROR = "error"


@dataclass
class OrchestratorState:
    state: SyncState = SyncState.LOADING
    message: str = ""
    local: Optional[Inventory] = None
    remote: Optional[Inventory] = None
    plan: Optional[SyncPlan] = None
    last_report: Optional[ExecutionReport] = None


StateListener = Callable[[OrchestratorState], None]


class SyncOrchestrator:
    def __init__(
        self,
        tree: LocalTree,
        store: ObjectStore,
        bucket_name: str,
        prefix: str,
        settings: Optional[SyncConfig] = None,
        listener: Optional[StateListener] = None,
    ):
        self.settings = settings or SyncConfig()
        self.bucket_name = bucket_name
        self.prefix = prefix
        self.policy = self.settings.policy()
        self.listener = listener
        self.state = OrchestratorState()

        self.builder = InventoryBuilder(
            tree,
            store,
            prefix,
            page_size=self.settings.page_size,
            max_pages=self.settings.max_pages,
            fingerprint_max_bytes=self.settings.fingerprint_max_bytes,
            fingerprint_concurrency=self.settings.fingerprint_concurrency,
        )
        self.executor = SyncExecutor(tree, store, prefix, batch_size=self.settings.batch_size)
        self.auto_sync_task = DebouncedTask("auto_sync")

    def _set_state(self, state: SyncState, message: str = "") -> None:
        previous = self.state.state
        self.state.state = state
        self.state.message = message
        if state is SyncState.ERROR:
            logger.error("state_changed from=%s to=%s message=%s", previous.value, state.value, message)
        else:
            logger.debug("state_changed from=%s to=%s", previous.value, state.value)
        if self.listener is not None:
            self.listener(self.state)

    async def _settle(self) -> None:
        if self.settings.settle_delay_sec > 0:
            await asyncio.sleep(self.settings.settle_delay_sec)

    def _ensure_configured(self) -> None:
        if not (self.bucket_name or "").strip():
            raise ConfigInvalid("bucket_name_missing")

    def _busy(self, action: str) -> bool:
        # A running sync owns the state until it finishes.
        if self.state.state is SyncState.SYNCING:
            logger.info("%s_skipped_busy", action)
            return True
        return False

    def current_plan(self, direction: Optional[SyncDirection] = None) -> Optional[SyncPlan]:
        """Plan for the inventories held now; ``None`` until both are loaded."""
        if self.state.local is None or self.state.remote is None:
            return None
        return compute_diff(
            self.state.local,
            self.state.remote,
            self.policy.with_direction(direction),
            single_part_max_bytes=self.settings.single_part_max_bytes,
        )

    def is_in_sync(self) -> bool:
        plan = self.current_plan()
        return plan is not None and plan.is_in_sync()

    def _update_plan(self) -> None:
        self.state.plan = self.current_plan()

    async def refresh(self) -> Optional[SyncPlan]:
        # Both snapshots are replaced together; a failed remote listing
        # leaves the previous pair in place.
        local = await self.builder.build_local()
        remote = await self.builder.build_remote()
        self.state.local = local
        self.state.remote = remote
        self._update_plan()
        return self.state.plan

    async def start(self) -> Optional[SyncPlan]:
        """Initial load of both inventories."""
        self._ensure_configured()
        if self._busy("start"):
            return self.state.plan
        self._set_state(SyncState.LOADING)
        try:
            plan = await self.refresh()
        except Exception as e:
            self._set_state(SyncState.ERROR, str(e))
            raise
        self._set_state(SyncState.READY)
        return plan

    async def check(self) -> Optional[SyncPlan]:
        """Rebuild both inventories and return the plan.

        While a sync runs nothing is re-read; the last known plan is returned.
        """
        self._ensure_configured()
        if self._busy("check"):
            return self.state.plan
        self._set_state(SyncState.CHECKING)
        try:
            plan = await self.refresh()
        except Exception as e:
            self._set_state(SyncState.ERROR, str(e))
            raise

        await self._settle()
        self._set_state(SyncState.READY)
        return plan

    async def sync(self, direction: Optional[SyncDirection] = None) -> Optional[ExecutionReport]:
        """Run one sync cycle.

        Returns ``None`` when another sync is already running, an empty
        report when both sides are already in sync. Execution failures move
        the state to ERROR and are re-raised after the inventories have been
        refreshed.
        """
        self.auto_sync_task.cancel()
        self._ensure_configured()

        if self._busy("sync"):
            return None

        self._set_state(SyncState.SYNCING)
        try:
            await self.refresh()
        except Exception as e:
            self._set_state(SyncState.ERROR, str(e))
            raise

        plan = self.current_plan(direction)
        if plan.is_in_sync():
            logger.info("sync_noop already_in_sync")
            self._set_state(SyncState.READY)
            return ExecutionReport()

        logger.info(
            "sync_started direction=%s upload=%s download=%s delete=%s",
            self.policy.with_direction(direction).direction.value,
            len(plan.to_upload),
            len(plan.to_download),
            len(plan.to_delete),
        )

        failure: Optional[Exception] = None
        report: Optional[ExecutionReport] = None
        try:
            report = await self.executor.execute(plan, self.state.local)
        except Exception as e:
            failure = e
            report = getattr(e, "report", None)

        self.state.last_report = report

        # The executed plan is stale either way; re-read both sides. The
        # state stays SYNCING until this refresh is done.
        try:
            await self.refresh()
        except Exception as e:
            if failure is None:
                self._set_state(SyncState.ERROR, str(e))
                raise
            logger.exception("post_sync_refresh_failed")

        if failure is not None:
            self._set_state(SyncState.ERROR, str(failure))
            raise failure

        await self._settle()
        self._set_state(SyncState.READY)
        logger.info("sync_completed %s", report.to_summary())
        return report

    async def run_remote_pull(self) -> Optional[Inventory]:
        """Refresh the remote inventory only; skipped while a sync runs."""
        self._ensure_configured()
        if self._busy("remote_pull"):
            return None
        self._set_state(SyncState.CHECKING)
        try:
            remote = await self.builder.build_remote()
        except Exception as e:
            self._set_state(SyncState.ERROR, str(e))
            raise
        self.state.remote = remote
        self._update_plan()

        await self._settle()
        self._set_state(SyncState.READY)
        return remote

    async def run_test(self) -> Optional[int]:
        """List the bucket once to prove the configuration works.

        Returns the object count, or ``None`` when skipped during a sync.
        """
        self._ensure_configured()
        if self._busy("test"):
            return None
        self._set_state(SyncState.TESTING)
        try:
            remote = await self.builder.build_remote()
        except Exception as e:
            self._set_state(SyncState.ERROR, str(e))
            raise

        await self._settle()
        self._set_state(SyncState.READY)
        return len(remote)

    async def _auto_sync(self) -> None:
        await self.sync()

    async def on_local_change(self) -> None:
        if self.state.state is SyncState.SYNCING:
            return

        if self.settings.auto_sync and self.state.state is SyncState.READY:
            self.auto_sync_task.arm(self.settings.auto_sync_debounce, self._auto_sync)
            return

        self.state.local = await self.builder.build_local()
        self._update_plan()

    async def on_remote_change(self) -> None:
        if self.state.state is SyncState.SYNCING:
            return

        if self.settings.auto_sync and self.state.state is SyncState.READY:
            self.auto_sync_task.arm(self.settings.auto_sync_debounce, self._auto_sync)
            return

        self.state.remote = await self.builder.build_remote()
        self._update_plan()
