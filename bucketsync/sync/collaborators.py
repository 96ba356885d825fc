"""Interfaces the engine consumes from the host file tree and the object store."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, Protocol


@dataclass(frozen=True)
class LocalFileInfo:
    path: str
    mtime: datetime
    size: int


@dataclass(frozen=True)
class RemoteObject:
    key: str
    etag: Optional[str]
    last_modified: datetime
    size: int


@dataclass(frozen=True)
class ListPage:
    objects: list[RemoteObject] = field(default_factory=list)
    next_cursor: Optional[str] = None


class LocalTree(Protocol):
    async def list_files(self) -> list[LocalFileInfo]: ...

    async def stat(self, path: str) -> LocalFileInfo: ...

    async def read(self, path: str) -> bytes: ...

    async def write(self, path: str, data: bytes) -> None: ...

    async def create(self, path: str, data: bytes) -> None: ...

    async def create_dir(self, path: str) -> None: ...

    async def trash(self, path: str) -> None: ...


class ObjectStore(Protocol):
    async def list_objects(self, prefix: str, page_size: int, cursor: Optional[str] = None) -> ListPage: ...

    async def get_object(self, key: str) -> bytes: ...

    async def put_object(self, key: str, body: bytes, content_md5: str) -> Optional[str]: ...

    async def delete_object(self, key: str) -> None: ...
