"""Storage backends for uploaded assets: cloud object storage and local disk.

Both backends expose the same small surface (``put``, ``build_path``,
``exists``, ``stat``, ``open_read``) so request code never branches on
where an asset lives. Which backend is active is decided once, when the
``StorageConfig`` is built at startup.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, BinaryIO

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings
from app.exceptions import NotFoundException, TransportError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


class StorageBackendKind(str, Enum):
    """Where an asset is stored."""

    CLOUD = "cloud"
    LOCAL = "local"


@dataclass(frozen=True)
class StorageConfig:
    """Storage configuration snapshot, computed once per process."""

    use_cloud: bool
    upload_root: Path
    bucket_name: str = ""
    endpoint_url: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    public_url: str | None = None
    cloud_folder_root: str = "eventdesk"

    @classmethod
    def from_settings(cls, settings: Settings) -> "StorageConfig":
        """Build the snapshot. Cloud needs the enable flag and all three credentials."""
        use_cloud = settings.use_cloud_storage and settings.cloud_credentials_complete
        if settings.use_cloud_storage and not use_cloud:
            logger.warning(
                "USE_CLOUD_STORAGE is set but cloud credentials are incomplete; "
                "falling back to local storage"
            )
        return cls(
            use_cloud=use_cloud,
            upload_root=settings.upload_path,
            bucket_name=settings.r2_bucket_name,
            endpoint_url=settings.r2_endpoint_url,
            access_key_id=settings.r2_access_key_id,
            secret_access_key=settings.r2_secret_access_key,
            public_url=settings.r2_public_url,
            cloud_folder_root=settings.cloud_folder_root,
        )

    @property
    def backend(self) -> StorageBackendKind:
        return StorageBackendKind.CLOUD if self.use_cloud else StorageBackendKind.LOCAL


@dataclass(frozen=True)
class Destination:
    """Target folder and generated filename for a new asset."""

    folder: str
    generated_name: str

    @property
    def key(self) -> str:
        return f"{self.folder}/{self.generated_name}"


@dataclass(frozen=True)
class AssetStat:
    """Size and modification time of a stored asset."""

    size: int
    last_modified: datetime


class OpenedAsset:
    """An asset opened for reading, with its metadata known up front.

    Reads run in the default executor so the event loop is never blocked
    on disk or network I/O.
    """

    def __init__(
        self,
        read: Callable[[int], bytes],
        close: Callable[[], Any],
        size: int,
        last_modified: datetime,
        content_type: str | None = None,
    ):
        self._read = read
        self._close = close
        self.size = size
        self.last_modified = last_modified
        self.content_type = content_type

    async def read_chunk(self, size: int = CHUNK_SIZE) -> bytes:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read, size)

    async def iter_chunks(self, size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        while True:
            chunk = await self.read_chunk(size)
            if not chunk:
                break
            yield chunk

    async def close(self) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._close)


class StorageBackend(ABC):
    """Capability interface shared by the cloud and local backends."""

    kind: StorageBackendKind

    @abstractmethod
    async def put(
        self,
        destination: Destination,
        content: bytes,
        content_type: str,
        transform: str | None = None,
    ) -> str:
        """Store content and return its public path or URL."""

    @abstractmethod
    def build_path(self, destination: Destination) -> str:
        """Return the public path or URL for a destination."""

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check whether an object exists."""

    @abstractmethod
    async def stat(self, key: str) -> AssetStat | None:
        """Return size and mtime, or None when the object is absent."""

    @abstractmethod
    async def open_read(self, key: str) -> OpenedAsset:
        """Open an object for streaming. Raises NotFoundException if absent."""


class LocalBackend(StorageBackend):
    """Assets on the local filesystem under a single upload root."""

    kind = StorageBackendKind.LOCAL

    def __init__(self, root: Path, public_prefix: str = "/uploads"):
        self.root = Path(root)
        self.public_prefix = public_prefix.rstrip("/")

    def resolve(self, key: str) -> Path:
        """Map a storage key to a path, refusing anything outside the root."""
        root = self.root.resolve()
        path = (root / key).resolve()
        if path != root and root not in path.parents:
            raise NotFoundException("File")
        return path

    def ensure_directories(self, folders: list[str]) -> None:
        """Create upload folders recursively; safe to call repeatedly."""
        for folder in folders:
            path = self.resolve(folder)
            path.mkdir(parents=True, exist_ok=True)
            logger.debug(f"Upload directory ready: {path}")

    async def put(
        self,
        destination: Destination,
        content: bytes,
        content_type: str,
        transform: str | None = None,
    ) -> str:
        path = self.resolve(destination.key)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, path, content)
        logger.info(f"Stored {len(content)} bytes locally at {path}")
        return self.build_path(destination)

    @staticmethod
    def _write(path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)

    def build_path(self, destination: Destination) -> str:
        return f"{self.public_prefix}/{destination.key}"

    async def exists(self, key: str) -> bool:
        path = self.resolve(key)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, path.is_file)

    async def stat(self, key: str) -> AssetStat | None:
        path = self.resolve(key)
        loop = asyncio.get_running_loop()
        try:
            st = await loop.run_in_executor(None, os.stat, path)
        except FileNotFoundError:
            return None
        return AssetStat(
            size=st.st_size,
            last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    async def open_read(self, key: str) -> OpenedAsset:
        path = self.resolve(key)
        loop = asyncio.get_running_loop()
        try:
            handle: BinaryIO = await loop.run_in_executor(None, partial(open, path, "rb"))
        except FileNotFoundError:
            raise NotFoundException("File")
        try:
            st = await loop.run_in_executor(None, os.fstat, handle.fileno())
        except OSError:
            handle.close()
            raise
        return OpenedAsset(
            read=handle.read,
            close=handle.close,
            size=st.st_size,
            last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )


class CloudBackend(StorageBackend):
    """Assets in an S3-compatible bucket (Cloudflare R2).

    The per-class transform descriptor is attached as object metadata for the
    bucket's image pipeline; nothing is resized here.
    """

    kind = StorageBackendKind.CLOUD

    def __init__(self, config: StorageConfig, client: Any = None):
        self.config = config
        self._client = client

    @property
    def s3_client(self):
        """Get or create the S3 client lazily."""
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=self.config.endpoint_url,
                aws_access_key_id=self.config.access_key_id,
                aws_secret_access_key=self.config.secret_access_key,
                config=Config(
                    signature_version="s3v4",
                    s3={"addressing_style": "path"},
                ),
            )
        return self._client

    async def _call(self, method: str, **kwargs) -> Any:
        loop = asyncio.get_running_loop()
        func = getattr(self.s3_client, method)
        return await loop.run_in_executor(None, partial(func, **kwargs))

    async def put(
        self,
        destination: Destination,
        content: bytes,
        content_type: str,
        transform: str | None = None,
    ) -> str:
        params: dict[str, Any] = {
            "Bucket": self.config.bucket_name,
            "Key": destination.key,
            "Body": content,
            "ContentType": content_type,
        }
        if transform:
            params["Metadata"] = {"transform": transform}

        try:
            await self._call("put_object", **params)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Cloud upload failed for {destination.key}: {e}")
            raise TransportError(f"Failed to upload file: {e}") from e

        logger.info(f"Stored {len(content)} bytes in bucket {self.config.bucket_name} at {destination.key}")
        return self.build_path(destination)

    def build_path(self, destination: Destination) -> str:
        return self.url_for(destination.key)

    def url_for(self, key: str, expires_in: int = 3600) -> str:
        """Public URL when a public domain is configured, else a presigned URL."""
        if self.config.public_url:
            return f"{self.config.public_url.rstrip('/')}/{key}"
        return self.s3_client.generate_presigned_url(
            "get_object",
            Params={"Bucket": self.config.bucket_name, "Key": key},
            ExpiresIn=expires_in,
        )

    async def _head(self, key: str) -> dict | None:
        try:
            return await self._call("head_object", Bucket=self.config.bucket_name, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return None
            raise TransportError(f"Failed to look up {key}: {e}") from e
        except BotoCoreError as e:
            raise TransportError(f"Failed to look up {key}: {e}") from e

    async def verify_bucket(self) -> None:
        """Check that the credentials can reach the bucket."""
        try:
            await self._call("head_bucket", Bucket=self.config.bucket_name)
        except (ClientError, BotoCoreError) as e:
            raise TransportError(f"Cannot access bucket {self.config.bucket_name}: {e}") from e

    async def exists(self, key: str) -> bool:
        return await self._head(key) is not None

    async def stat(self, key: str) -> AssetStat | None:
        head = await self._head(key)
        if head is None:
            return None
        return AssetStat(size=head["ContentLength"], last_modified=head["LastModified"])

    async def open_read(self, key: str) -> OpenedAsset:
        try:
            obj = await self._call("get_object", Bucket=self.config.bucket_name, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                raise NotFoundException("File") from e
            raise TransportError(f"Failed to read {key}: {e}") from e
        except BotoCoreError as e:
            raise TransportError(f"Failed to read {key}: {e}") from e

        body = obj["Body"]
        return OpenedAsset(
            read=body.read,
            close=body.close,
            size=obj["ContentLength"],
            last_modified=obj["LastModified"],
            content_type=obj.get("ContentType"),
        )
