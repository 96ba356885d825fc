from __future__ import annotations

import asyncio
import logging
import re
from typing import Optional

from bucketsync.core.errors import RemoteListError
from bucketsync.sync.collaborators import LocalFileInfo, LocalTree, ObjectStore, RemoteObject
from bucketsync.sync.fingerprint import DEFAULT_MAX_BYTES, fingerprint
from bucketsync.sync.models import Inventory, LocalRecord, Origin, RemoteRecord

logger = logging.getLogger("inventory")

DEFAULT_PAGE_SIZE = 1000
DEFAULT_MAX_PAGES = 10
DEFAULT_FINGERPRINT_CONCURRENCY = 64

_MD5_RE = re.compile(r"^[0-9a-f]{32}$")


def parse_etag(etag: Optional[str]) -> Optional[str]:
    """Unquote an S3 ETag; multipart or otherwise non-MD5 tags are unknown."""
    if not etag:
        return None
    value = etag.strip()
    if len(value) >= 2 and value[0] == '"' and value[-1] == '"':
        value = value[1:-1]
    value = value.lower()
    if not _MD5_RE.match(value):
        return None
    return value


def strip_prefix(key: str, prefix: str) -> Optional[str]:
    """Logical path for ``key``; ``None`` for folder markers and the prefix itself."""
    rel = key[len(prefix):] if prefix and key.startswith(prefix) else key
    if not rel or rel.endswith("/"):
        return None
    return rel


def remote_key(prefix: str, logical_path: str) -> str:
    return f"{prefix}{logical_path}" if prefix else logical_path


class InventoryBuilder:
    """Builds fresh local and remote snapshots for one sync cycle."""

    def __init__(
        self,
        tree: LocalTree,
        store: ObjectStore,
        prefix: str,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        fingerprint_max_bytes: int = DEFAULT_MAX_BYTES,
        fingerprint_concurrency: int = DEFAULT_FINGERPRINT_CONCURRENCY,
    ):
        self.tree = tree
        self.store = store
        self.prefix = prefix
        self.page_size = page_size
        self.max_pages = max_pages
        self.fingerprint_max_bytes = fingerprint_max_bytes
        self.fingerprint_concurrency = fingerprint_concurrency

    async def local_record(self, info: LocalFileInfo) -> LocalRecord:
        content_hash = await fingerprint(self.tree, info.path, info.size, self.fingerprint_max_bytes)
        return LocalRecord(
            logical_path=info.path,
            content_hash=content_hash,
            last_modified=info.mtime,
            size_bytes=info.size,
            handle=info.path,
        )

    def remote_record(self, obj: RemoteObject) -> Optional[RemoteRecord]:
        logical_path = strip_prefix(obj.key, self.prefix)
        if logical_path is None:
            return None
        return RemoteRecord(
            logical_path=logical_path,
            content_hash=parse_etag(obj.etag),
            last_modified=obj.last_modified,
            size_bytes=obj.size,
            key=obj.key,
        )

    async def build_local(self) -> Inventory:
        files = await self.tree.list_files()
        sem = asyncio.Semaphore(self.fingerprint_concurrency)

        async def one(info: LocalFileInfo) -> LocalRecord:
            async with sem:
                return await self.local_record(info)

        records = await asyncio.gather(*(one(info) for info in files))
        inventory = Inventory(Origin.LOCAL, records)
        unhashed = sum(1 for r in records if r.content_hash is None)
        logger.info("local_inventory_built files=%s unhashed=%s", len(inventory), unhashed)
        return inventory

    async def build_remote(self) -> Inventory:
        objects: list[RemoteObject] = []
        cursor: Optional[str] = None
        pages = 0
        truncated = False

        while True:
            try:
                page = await self.store.list_objects(self.prefix, self.page_size, cursor)
            except Exception as e:
                raise RemoteListError(self.prefix, e) from e
            pages += 1

            if not page.objects:
                break
            objects.extend(page.objects)
            cursor = page.next_cursor
            if cursor is None:
                break
            if pages >= self.max_pages:
                truncated = True
                logger.warning(
                    "remote_listing_truncated prefix=%s pages=%s keys=%s",
                    self.prefix,
                    pages,
                    len(objects),
                )
                break

        records = []
        for obj in objects:
            record = self.remote_record(obj)
            if record is None:
                logger.debug("remote_key_ignored key=%s", obj.key)
                continue
            records.append(record)

        inventory = Inventory(Origin.REMOTE, records, truncated=truncated)
        logger.info("remote_inventory_built objects=%s pages=%s truncated=%s", len(inventory), pages, truncated)
        return inventory
