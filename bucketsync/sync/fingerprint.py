from __future__ import annotations

import base64
import hashlib
import logging
from typing import Optional

from bucketsync.sync.collaborators import LocalTree

logger = logging.getLogger("inventory")

DEFAULT_MAX_BYTES = 500 * 1024 * 1024


def md5_digest(content: bytes) -> str:
    # Same digest S3 reports as the ETag of a single-part object.
    return hashlib.md5(content).hexdigest()


def content_md5_header(hex_digest: str) -> str:
    return base64.b64encode(bytes.fromhex(hex_digest)).decode("ascii")


async def fingerprint(tree: LocalTree, path: str, size: int, max_bytes: int = DEFAULT_MAX_BYTES) -> Optional[str]:
    """Content hash of a local file, or ``None`` when it is unknown.

    Files larger than ``max_bytes`` are not read at all. Read errors are not
    raised; the missing hash disables hash comparison for that file.
    """
    if size > max_bytes:
        logger.debug("fingerprint_skipped_oversized path=%s size=%s", path, size)
        return None

    try:
        content = await tree.read(path)
    except OSError as e:
        logger.warning("fingerprint_unreadable path=%s error=%s", path, e)
        return None
    return md5_digest(content)
