"""S3 implementation of the object store the sync engine consumes.

boto3 clients are blocking; every call is pushed to a worker thread so the
engine can keep several transfers in flight from one event loop.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

from bucketsync.sync.collaborators import ListPage, RemoteObject

logger = logging.getLogger("s3")


class S3ObjectStore:
    def __init__(self, client: Any, bucket_name: str):
        self.client = client
        self.bucket_name = bucket_name

    def _list(self, prefix: str, page_size: int, cursor: Optional[str]) -> ListPage:
        params = {
            "Bucket": self.bucket_name,
            "Prefix": prefix,
            "MaxKeys": page_size,
        }
        if cursor:
            params["ContinuationToken"] = cursor
        res = self.client.list_objects_v2(**params)

        objects = [
            RemoteObject(
                key=obj["Key"],
                etag=obj.get("ETag"),
                last_modified=obj["LastModified"],
                size=int(obj.get("Size") or 0),
            )
            for obj in res.get("Contents", [])
        ]
        next_cursor = res.get("NextContinuationToken") if res.get("IsTruncated") else None
        logger.debug("list_page prefix=%s keys=%s more=%s", prefix, len(objects), next_cursor is not None)
        return ListPage(objects=objects, next_cursor=next_cursor)

    def _get(self, key: str) -> bytes:
        res = self.client.get_object(Bucket=self.bucket_name, Key=key)
        body = res["Body"]
        try:
            return body.read()
        finally:
            body.close()

    def _put(self, key: str, body: bytes, content_md5: str) -> Optional[str]:
        res = self.client.put_object(
            Bucket=self.bucket_name,
            Key=key,
            Body=body,
            ContentMD5=content_md5,
        )
        return res.get("ETag")

    def _delete(self, key: str) -> None:
        self.client.delete_object(Bucket=self.bucket_name, Key=key)

    async def list_objects(self, prefix: str, page_size: int, cursor: Optional[str] = None) -> ListPage:
        return await asyncio.to_thread(self._list, prefix, page_size, cursor)

    async def get_object(self, key: str) -> bytes:
        return await asyncio.to_thread(self._get, key)

    async def put_object(self, key: str, body: bytes, content_md5: str) -> Optional[str]:
        return await asyncio.to_thread(self._put, key, body, content_md5)

    async def delete_object(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)
