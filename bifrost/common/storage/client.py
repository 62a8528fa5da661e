"""
Distributed store access.

Job context lives in a hierarchical, path-addressed store. DistributedStore
is the interface the gateway depends on; MinioStore implements it on an
S3-compatible bucket, where a folder is a zero-byte ``<path>/`` marker object
and owner/permission are kept as object metadata.
"""

import asyncio
import io
from dataclasses import dataclass
from datetime import timedelta
from typing import List, Optional, Protocol

from minio import Minio
from minio.error import S3Error

from bifrost.common.errors import BifrostError, NotFoundError

MISSING_OBJECT_CODES = ("NoSuchKey", "NoSuchObject", "ResourceNotFound")


class StoreError(BifrostError):
    code = "StoreError"


@dataclass
class StoreEntry:
    name: str # last path component, e.g. "container_e01_0001-10.0.0.4-2222"
    path: str
    is_dir: bool
    size: int = 0


class DistributedStore(Protocol):
    async def create_folder(self, path: str, owner: str, permission: str) -> None: ...

    async def create_file(self, path: str, content: str, owner: str, permission: str, overwrite: bool = True) -> None: ...

    async def read_file(self, path: str) -> str: ...

    async def list(self, path: str) -> List[StoreEntry]: ...

    async def presigned_url(self, path: str) -> str: ...


def _key(path: str) -> str:
    return path.strip("/")


class MinioStore:
    def __init__(self, endpoint, access_key, secret_key, bucket_name="bifrost", secure=False, client: Optional[Minio] = None):
        self.endpoint = endpoint
        self.bucket_name = bucket_name
        self.client = client or Minio(
            endpoint,
            access_key=access_key,
            secret_key=secret_key,
            secure=secure
        )
        self._bucket_checked = False

    @classmethod
    def from_settings(cls, settings) -> "MinioStore":
        return cls(
            settings.store_endpoint,
            settings.store_access_key,
            settings.store_secret_key,
            bucket_name=settings.store_bucket,
            secure=settings.store_secure,
        )

    async def _run(self, func, *args, **kwargs):
        # minio is blocking; keep it off the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, lambda: func(*args, **kwargs))

    def _ensure_bucket(self):
        if self._bucket_checked:
            return
        if not self.client.bucket_exists(bucket_name=self.bucket_name):
            self.client.make_bucket(bucket_name=self.bucket_name)
        self._bucket_checked = True

    def _exists(self, key: str) -> bool:
        try:
            self.client.stat_object(bucket_name=self.bucket_name, object_name=key)
            return True
        except S3Error as e:
            if e.code in MISSING_OBJECT_CODES:
                return False
            raise

    def _put(self, key: str, data: bytes, owner: str, permission: str, content_type: str):
        self._ensure_bucket()
        self.client.put_object(
            bucket_name=self.bucket_name,
            object_name=key,
            data=io.BytesIO(data),
            length=len(data),
            content_type=content_type,
            metadata={"owner": owner, "permission": permission},
        )

    def _create_folder(self, path: str, owner: str, permission: str):
        self._put(_key(path) + "/", b"", owner, permission, "application/x-directory")

    def _create_file(self, path: str, content: str, owner: str, permission: str, overwrite: bool):
        key = _key(path)
        if not overwrite and self._exists(key):
            raise StoreError(f"File {path} already exists")
        self._put(key, content.encode("utf-8"), owner, permission, "application/octet-stream")

    def _read_file(self, path: str) -> str:
        response = None
        try:
            response = self.client.get_object(bucket_name=self.bucket_name, object_name=_key(path))
            return response.read().decode("utf-8")
        except S3Error as e:
            if e.code in MISSING_OBJECT_CODES:
                raise NotFoundError(f"File {path} is not found.") from e
            raise StoreError(f"Failed to read {path}: {e}") from e
        finally:
            if response is not None:
                response.close()
                response.release_conn()

    def _list(self, path: str) -> List[StoreEntry]:
        prefix = _key(path) + "/"
        entries = []
        for obj in self.client.list_objects(bucket_name=self.bucket_name, prefix=prefix, recursive=False):
            name = obj.object_name[len(prefix):].rstrip("/")
            if not name:
                continue # the folder marker itself
            entries.append(StoreEntry(
                name=name,
                path="/" + obj.object_name.rstrip("/"),
                is_dir=obj.is_dir,
                size=obj.size or 0,
            ))
        if not entries and not self._exists(prefix):
            raise NotFoundError(f"Folder {path} is not found.")
        return entries

    async def create_folder(self, path: str, owner: str, permission: str) -> None:
        await self._run(self._create_folder, path, owner, permission)

    async def create_file(self, path: str, content: str, owner: str, permission: str, overwrite: bool = True) -> None:
        await self._run(self._create_file, path, content, owner, permission, overwrite)

    async def read_file(self, path: str) -> str:
        return await self._run(self._read_file, path)

    async def list(self, path: str) -> List[StoreEntry]:
        return await self._run(self._list, path)

    async def presigned_url(self, path: str) -> str:
        return await self._run(
            self.client.presigned_get_object, bucket_name=self.bucket_name, object_name=_key(path), expires=timedelta(hours=1)
        )
