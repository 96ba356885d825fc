from __future__ import annotations

import asyncio
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional

from bucketsync.core.errors import ConfigInvalid, ContentUnreadable
from bucketsync.sync.collaborators import LocalFileInfo

DEFAULT_TRASH_DIR = ".sync_trash"


def safe_rel_path(value: str) -> str:
    return str(Path(value).as_posix()).lstrip("/")


def _info(rel: str, st: os.stat_result) -> LocalFileInfo:
    return LocalFileInfo(
        path=rel,
        mtime=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        size=st.st_size,
    )


def scan_local_files(local_root: Path, exclude_dirs: Iterable[str] = ()) -> list[LocalFileInfo]:
    if not local_root.exists():
        return []

    excludes = set(exclude_dirs)
    files = []

    for root, dirnames, filenames in os.walk(local_root):
        dirnames[:] = sorted(d for d in dirnames if d not in excludes)
        root_path = Path(root)
        for name in sorted(filenames):
            full = root_path / name
            if not full.is_file():
                continue
            rel = safe_rel_path(full.relative_to(local_root).as_posix())
            files.append(_info(rel, full.stat()))
    return files


class FileSystemTree:
    """Local tree rooted at a directory on disk.

    Logical paths are POSIX paths relative to ``root``. Deleted files are
    moved under ``<root>/<trash_dir>/<timestamp>/`` instead of being removed.
    """

    def __init__(self, root: str | Path, trash_dir: str = DEFAULT_TRASH_DIR, exclude_dirs: Optional[Iterable[str]] = None):
        self.root = Path(root).expanduser()
        self.trash_dir = trash_dir
        self.exclude_dirs = {trash_dir, *(exclude_dirs or ())}

    def _full(self, path: str) -> Path:
        rel = safe_rel_path(path)
        full = (self.root / rel).resolve(strict=False)
        root = self.root.resolve(strict=False)
        if full != root and root not in full.parents:
            raise ValueError(f"path_outside_root: {path}")
        return full

    async def list_files(self) -> list[LocalFileInfo]:
        # An absent root would read as "every file deleted locally".
        if not self.root.is_dir():
            raise ConfigInvalid(f"local_root_missing: {self.root}")
        return await asyncio.to_thread(scan_local_files, self.root, self.exclude_dirs)

    async def stat(self, path: str) -> LocalFileInfo:
        st = await asyncio.to_thread(self._full(path).stat)
        return _info(safe_rel_path(path), st)

    async def read(self, path: str) -> bytes:
        try:
            return await asyncio.to_thread(self._full(path).read_bytes)
        except OSError as e:
            raise ContentUnreadable(path, e) from e

    async def write(self, path: str, data: bytes) -> None:
        await asyncio.to_thread(self._full(path).write_bytes, data)

    async def create(self, path: str, data: bytes) -> None:
        def _create():
            with self._full(path).open("xb") as f:
                f.write(data)

        await asyncio.to_thread(_create)

    async def create_dir(self, path: str) -> None:
        # Raises FileExistsError when present; callers ignore it.
        await asyncio.to_thread(self._full(path).mkdir, parents=True)

    async def trash(self, path: str) -> None:
        rel = safe_rel_path(path)
        src = self._full(rel)

        def _move():
            if not src.exists():
                return
            ts = datetime.now().strftime("%Y%m%d_%H%M%S")
            dest = self.root / self.trash_dir / ts / rel
            dest.parent.mkdir(parents=True, exist_ok=True)
            shutil.move(str(src), str(dest))

        await asyncio.to_thread(_move)
