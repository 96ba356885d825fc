"""Applies a SyncPlan as bounded-concurrency batches.

Phases run in a fixed order (download, upload, delete). Each phase is split
into batches; every operation of a batch runs concurrently and the whole
batch settles before the next one starts. The first failure of a batch
stops everything that follows it. Nothing already applied is undone.
"""
from __future__ import annotations

import asyncio
import logging
import posixpath
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from bucketsync.core.errors import FirstBatchError
from bucketsync.sync.collaborators import LocalTree, ObjectStore
from bucketsync.sync.fingerprint import content_md5_header, md5_digest
from bucketsync.sync.inventory import parse_etag, remote_key
from bucketsync.sync.models import Inventory, LocalRecord, Origin, Record, RemoteRecord, SyncPlan

logger = logging.getLogger("executor")

DEFAULT_BATCH_SIZE = 10

PHASE_DOWNLOAD = "download"
PHASE_UPLOAD = "upload"
PHASE_DELETE = "delete"

SKIP_UNREADABLE = "unreadable"

R = TypeVar("R", bound=Record)


@dataclass
class ExecutionReport:
    """What one execution applied.

    Uploaded records carry the local file's ``last_modified``; the store's
    own timestamp only shows up in the next remote inventory.
    """

    downloaded: list[LocalRecord] = field(default_factory=list)
    uploaded: list[RemoteRecord] = field(default_factory=list)
    deleted: list[Record] = field(default_factory=list)
    skipped: list[tuple[str, str]] = field(default_factory=list)

    def to_summary(self) -> dict:
        return {
            "downloaded": len(self.downloaded),
            "uploaded": len(self.uploaded),
            "deleted": len(self.deleted),
            "skipped": [{"path": p, "reason": reason} for p, reason in self.skipped],
        }


class SyncExecutor:
    def __init__(self, tree: LocalTree, store: ObjectStore, prefix: str, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        self.tree = tree
        self.store = store
        self.prefix = prefix
        self.batch_size = batch_size

        # Per-origin operation tables.
        self._fetchers: dict[Origin, Callable[[Record], Awaitable[bytes]]] = {
            Origin.LOCAL: self._fetch_local,
            Origin.REMOTE: self._fetch_remote,
        }
        self._removers: dict[Origin, Callable[[Record], Awaitable[None]]] = {
            Origin.LOCAL: self._remove_local,
            Origin.REMOTE: self._remove_remote,
        }

    async def _fetch_local(self, record: LocalRecord) -> bytes:
        return await self.tree.read(record.handle)

    async def _fetch_remote(self, record: RemoteRecord) -> bytes:
        return await self.store.get_object(record.key)

    async def _remove_local(self, record: LocalRecord) -> None:
        logger.warning("local_file_trashed path=%s", record.logical_path)
        await self.tree.trash(record.handle)

    async def _remove_remote(self, record: RemoteRecord) -> None:
        logger.info("remote_object_deleted key=%s", record.key)
        await self.store.delete_object(record.key)

    async def fetch_content(self, record: Record) -> bytes:
        return await self._fetchers[record.origin](record)

    async def remove(self, record: Record) -> None:
        await self._removers[record.origin](record)

    async def _local_exists(self, path: str, local: Optional[Inventory]) -> bool:
        if local is not None:
            return path in local
        try:
            await self.tree.stat(path)
        except FileNotFoundError:
            return False
        return True

    async def download(self, record: RemoteRecord, local: Optional[Inventory] = None) -> LocalRecord:
        content = await self.fetch_content(record)
        path = record.logical_path

        if await self._local_exists(path, local):
            await self.tree.write(path, content)
        else:
            parent = posixpath.dirname(path)
            if parent:
                try:
                    await self.tree.create_dir(parent)
                except FileExistsError:
                    pass
            await self.tree.create(path, content)

        info = await self.tree.stat(path)
        logger.info("downloaded path=%s size=%s", path, len(content))
        return LocalRecord(
            logical_path=path,
            content_hash=md5_digest(content),
            last_modified=info.mtime,
            size_bytes=info.size,
            handle=path,
        )

    async def upload(self, record: LocalRecord) -> Optional[RemoteRecord]:
        try:
            content = await self.fetch_content(record)
        except OSError as e:
            logger.warning("upload_skipped_unreadable path=%s error=%s", record.logical_path, e)
            return None

        digest = md5_digest(content)
        key = remote_key(self.prefix, record.logical_path)
        etag = await self.store.put_object(key, content, content_md5_header(digest))
        logger.info("uploaded key=%s size=%s", key, len(content))
        # PutObject returns no timestamp; keep the local one.
        return RemoteRecord(
            logical_path=record.logical_path,
            content_hash=parse_etag(etag) or digest,
            last_modified=record.last_modified,
            size_bytes=len(content),
            key=key,
        )

    async def _run_phase(
        self,
        phase: str,
        records: Sequence[R],
        op: Callable[[R], Awaitable[object]],
        on_done: Callable[[R, object], None],
        report: ExecutionReport,
    ) -> None:
        for start in range(0, len(records), self.batch_size):
            batch = records[start:start + self.batch_size]
            results = await asyncio.gather(*(op(rec) for rec in batch), return_exceptions=True)

            first_failure: Optional[tuple[R, Exception]] = None
            for rec, result in zip(batch, results):
                if isinstance(result, BaseException) and not isinstance(result, Exception):
                    raise result
                if isinstance(result, Exception):
                    if first_failure is None:
                        first_failure = (rec, result)
                    logger.error("%s_failed path=%s error=%s", phase, rec.logical_path, result)
                    continue
                on_done(rec, result)

            if first_failure is not None:
                rec, error = first_failure
                raise FirstBatchError(phase, rec.logical_path, error, report=report) from error

            logger.debug("batch_done phase=%s start=%s size=%s", phase, start, len(batch))

    async def execute(self, plan: SyncPlan, local: Optional[Inventory] = None) -> ExecutionReport:
        """Apply ``plan``; raises FirstBatchError on the first failing batch.

        ``local`` is the inventory the plan was computed from; downloads use
        it to decide between overwriting and creating a file.
        """
        report = ExecutionReport()

        def downloaded(_rec: RemoteRecord, result: object) -> None:
            report.downloaded.append(result)

        def uploaded(rec: LocalRecord, result: object) -> None:
            if result is None:
                report.skipped.append((rec.logical_path, SKIP_UNREADABLE))
            else:
                report.uploaded.append(result)

        def deleted(rec: Record, _result: object) -> None:
            report.deleted.append(rec)

        await self._run_phase(PHASE_DOWNLOAD, plan.to_download, lambda rec: self.download(rec, local), downloaded, report)
        await self._run_phase(PHASE_UPLOAD, plan.to_upload, self.upload, uploaded, report)
        await self._run_phase(PHASE_DELETE, plan.to_delete, self.remove, deleted, report)

        logger.info(
            "plan_executed downloaded=%s uploaded=%s deleted=%s skipped=%s",
            len(report.downloaded),
            len(report.uploaded),
            len(report.deleted),
            len(report.skipped),
        )
        return report
