"""Records, inventories, policies and plans shared by the sync engine.

Local and remote records share one read-only shape; the operations that
differ per side (fetching content, removing the file) are resolved by
``origin`` in the executor rather than through a class hierarchy, so the
diff code never needs to know which side a record came from.
"""
from __future__ import annotations

import posixpath
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import ClassVar, Iterable, Iterator, Mapping, Optional, Union

UPLOAD_SYMBOL = "↑"
DOWNLOAD_SYMBOL = "↓"
DELETE_SYMBOL = "✕"


class SyncDirection(str, Enum):
    FROM_LOCAL = "from_local"
    FROM_REMOTE = "from_remote"


class Origin(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


class _PathParts:
    logical_path: str

    @property
    def basename(self) -> str:
        return posixpath.basename(self.logical_path)

    @property
    def extension(self) -> str:
        return posixpath.splitext(self.logical_path)[1]


@dataclass(frozen=True)
class LocalRecord(_PathParts):
    logical_path: str
    content_hash: Optional[str]
    last_modified: datetime
    size_bytes: int
    # Path understood by the local tree provider.
    handle: str
    origin: ClassVar[Origin] = Origin.LOCAL


@dataclass(frozen=True)
class RemoteRecord(_PathParts):
    logical_path: str
    content_hash: Optional[str]
    last_modified: datetime
    size_bytes: int
    key: str
    origin: ClassVar[Origin] = Origin.REMOTE


Record = Union[LocalRecord, RemoteRecord]


class Inventory:
    """Immutable point-in-time snapshot of one side, keyed by logical path."""

    __slots__ = ("origin", "truncated", "_records", "_by_path")

    def __init__(self, origin: Origin, records: Iterable[Record] = (), truncated: bool = False):
        by_path: dict[str, Record] = {}
        for record in records:
            if record.origin is not origin:
                raise ValueError(f"record_origin_mismatch path={record.logical_path} origin={record.origin.value}")
            if record.logical_path in by_path:
                raise ValueError(f"duplicate_logical_path path={record.logical_path}")
            by_path[record.logical_path] = record

        self.origin = origin
        # Listing stopped at the page ceiling while more keys remained.
        self.truncated = truncated
        self._records = tuple(by_path[p] for p in sorted(by_path))
        self._by_path: Mapping[str, Record] = MappingProxyType(by_path)

    @classmethod
    def empty(cls, origin: Origin) -> "Inventory":
        return cls(origin)

    def __iter__(self) -> Iterator[Record]:
        return iter(self._records)

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, logical_path: object) -> bool:
        return logical_path in self._by_path

    def get(self, logical_path: str) -> Optional[Record]:
        return self._by_path.get(logical_path)

    def paths(self) -> list[str]:
        return [r.logical_path for r in self._records]

    @property
    def records(self) -> tuple[Record, ...]:
        return self._records


@dataclass(frozen=True)
class SyncPolicy:
    direction: SyncDirection = SyncDirection.FROM_LOCAL
    local_protection: bool = True

    def with_direction(self, direction: Optional[SyncDirection]) -> "SyncPolicy":
        if direction is None or direction == self.direction:
            return self
        return replace(self, direction=direction)


@dataclass(frozen=True)
class SyncPlan:
    to_upload: tuple[LocalRecord, ...] = ()
    to_download: tuple[RemoteRecord, ...] = ()
    to_delete: tuple[Record, ...] = ()
    # (logical_path, reason) for files deliberately left alone.
    skipped: tuple[tuple[str, str], ...] = field(default=())

    def is_in_sync(self) -> bool:
        return not (self.to_upload or self.to_download or self.to_delete)

    def counts(self) -> dict[str, int]:
        return {
            "upload": len(self.to_upload),
            "download": len(self.to_download),
            "delete": len(self.to_delete),
            "skipped": len(self.skipped),
        }

    def paths(self) -> dict[str, list[str]]:
        return {
            "upload": [r.logical_path for r in self.to_upload],
            "download": [r.logical_path for r in self.to_download],
            "delete": [f"{r.origin.value}:{r.logical_path}" for r in self.to_delete],
        }

    def summary_text(self) -> str:
        if self.is_in_sync():
            return "in sync"
        msgs = []
        if self.to_upload:
            msgs.append(f"{UPLOAD_SYMBOL} {len(self.to_upload)}")
        if self.to_download:
            msgs.append(f"{DOWNLOAD_SYMBOL} {len(self.to_download)}")
        if self.to_delete:
            msgs.append(f"{DELETE_SYMBOL} {len(self.to_delete)}")
        return " ".join(msgs)

    def to_summary(self) -> dict:
        return {
            "in_sync": self.is_in_sync(),
            "counts": self.counts(),
            "paths": self.paths(),
            "skipped": [{"path": p, "reason": reason} for p, reason in self.skipped],
        }
