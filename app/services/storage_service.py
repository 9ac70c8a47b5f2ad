"""Storage resolver: asset class policies, upload validation and placement."""

import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath

from fastapi import Request

from app.exceptions import ValidationException
from app.services.storage_backends import (
    CloudBackend,
    Destination,
    LocalBackend,
    StorageBackend,
    StorageBackendKind,
    StorageConfig,
)

logger = logging.getLogger(__name__)

MB = 1024 * 1024

UNSUPPORTED_TYPE = "unsupported type"
TOO_LARGE = "too large"


class AssetClass(str, Enum):
    """Categories of uploaded binary content."""

    AVATAR = "avatar"
    EVENT_IMAGE = "event-image"
    PAYMENT_SCREENSHOT = "payment-screenshot"
    DOCUMENT = "document"


@dataclass(frozen=True)
class AssetPolicy:
    """Static upload policy for one asset class."""

    extensions: frozenset[str]
    mime_types: frozenset[str]
    max_bytes: int
    prefix: str
    folder: str
    transform: str | None = None


_WEB_IMAGES = frozenset({"jpg", "jpeg", "png", "webp"})
_WEB_IMAGE_TYPES = frozenset({"image/jpeg", "image/jpg", "image/png", "image/webp"})

ASSET_POLICIES: dict[AssetClass, AssetPolicy] = {
    AssetClass.AVATAR: AssetPolicy(
        extensions=_WEB_IMAGES,
        mime_types=_WEB_IMAGE_TYPES,
        max_bytes=5 * MB,
        prefix="avatar",
        folder="avatars",
        transform="w_500,h_500,c_fill,g_face",
    ),
    AssetClass.EVENT_IMAGE: AssetPolicy(
        extensions=_WEB_IMAGES | {"gif"},
        mime_types=_WEB_IMAGE_TYPES | {"image/gif"},
        max_bytes=10 * MB,
        prefix="event",
        folder="events",
        transform="w_1200,h_800,c_limit",
    ),
    AssetClass.PAYMENT_SCREENSHOT: AssetPolicy(
        extensions=_WEB_IMAGES,
        mime_types=_WEB_IMAGE_TYPES,
        max_bytes=5 * MB,
        prefix="payment",
        folder="payments",
        transform="w_1000,h_1000,c_limit",
    ),
    AssetClass.DOCUMENT: AssetPolicy(
        extensions=frozenset({"pdf"}),
        mime_types=frozenset({"application/pdf"}),
        max_bytes=20 * MB,
        prefix="document",
        folder="documents",
    ),
}


@dataclass(frozen=True)
class UploadCandidate:
    """An upload as received at the HTTP boundary, before acceptance."""

    asset_class: AssetClass
    original_name: str
    content_type: str
    size: int
    content: bytes = b""
    field_name: str = "file"


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of validating an upload candidate."""

    accepted: bool
    reason: str | None = None

    @classmethod
    def ok(cls) -> "ValidationResult":
        return cls(accepted=True)

    @classmethod
    def rejected(cls, reason: str) -> "ValidationResult":
        return cls(accepted=False, reason=reason)


@dataclass(frozen=True)
class StoredAsset:
    """Location descriptor for an accepted upload."""

    asset_class: AssetClass
    storage: StorageBackendKind
    folder: str
    filename: str
    path: str
    size: int
    content_type: str


def get_extension(filename: str | None) -> str:
    """Get the lowercased extension without the dot."""
    if not filename:
        return ""
    return PurePath(filename).suffix.lower().lstrip(".")


class StorageService:
    """Chooses the backend per asset class and validates uploads.

    The backend decision comes from the ``StorageConfig`` snapshot handed in
    at construction and never changes for the life of the instance.
    """

    def __init__(
        self,
        config: StorageConfig,
        local_backend: LocalBackend | None = None,
        cloud_backend: CloudBackend | None = None,
    ):
        self.config = config
        self._kind = config.backend
        self.local = local_backend or LocalBackend(config.upload_root)
        self.cloud = cloud_backend
        if self._kind is StorageBackendKind.CLOUD and self.cloud is None:
            self.cloud = CloudBackend(config)
        logger.info(f"Storage backend selected: {self._kind.value}")

    def policy(self, asset_class: AssetClass) -> AssetPolicy:
        return ASSET_POLICIES[asset_class]

    def resolve_backend(self, asset_class: AssetClass) -> StorageBackendKind:
        """Return which backend serves an asset class."""
        return self._kind

    def backend_for(self, asset_class: AssetClass) -> StorageBackend:
        if self.resolve_backend(asset_class) is StorageBackendKind.CLOUD:
            return self.cloud
        return self.local

    def validate(self, candidate: UploadCandidate) -> ValidationResult:
        """Check extension, declared content type and declared size.

        Extension and content type are checked independently; both must be
        on the asset class allow-list.
        """
        policy = self.policy(candidate.asset_class)

        extension_ok = get_extension(candidate.original_name) in policy.extensions
        content_type = (candidate.content_type or "").split(";", 1)[0].strip().lower()
        mime_ok = content_type in policy.mime_types
        if not (extension_ok and mime_ok):
            return ValidationResult.rejected(UNSUPPORTED_TYPE)

        if candidate.size > policy.max_bytes:
            return ValidationResult.rejected(TOO_LARGE)

        return ValidationResult.ok()

    def ensure_valid(self, candidate: UploadCandidate) -> None:
        """Raise ``ValidationException`` when the candidate is rejected."""
        result = self.validate(candidate)
        if not result.accepted:
            logger.info(
                f"Rejected {candidate.asset_class.value} upload '{candidate.original_name}': {result.reason}"
            )
            raise ValidationException([{"field": candidate.field_name, "message": result.reason}])

    def build_destination(self, asset_class: AssetClass, original_name: str) -> Destination:
        """Generate ``<prefix>-<epoch ms>-<random>.<ext>`` inside the class folder."""
        policy = self.policy(asset_class)
        suffix = PurePath(original_name or "").suffix.lower()
        unique_suffix = f"{int(time.time() * 1000)}-{random.randint(0, 1_000_000_000)}"

        if self.resolve_backend(asset_class) is StorageBackendKind.CLOUD:
            folder = f"{self.config.cloud_folder_root}/{policy.folder}"
        else:
            folder = policy.folder

        return Destination(folder=folder, generated_name=f"{policy.prefix}-{unique_suffix}{suffix}")

    def ensure_local_directories(self) -> None:
        """Create every local upload folder (no-op for the cloud backend)."""
        if self._kind is StorageBackendKind.LOCAL:
            self.local.ensure_directories([p.folder for p in ASSET_POLICIES.values()])

    async def store(self, candidate: UploadCandidate) -> StoredAsset:
        """Validate and store an upload through the selected backend.

        Raises:
            ValidationException: the candidate was rejected.
            TransportError: the cloud backend refused the write.
        """
        self.ensure_valid(candidate)

        policy = self.policy(candidate.asset_class)
        destination = self.build_destination(candidate.asset_class, candidate.original_name)
        backend = self.backend_for(candidate.asset_class)
        path = await backend.put(
            destination,
            candidate.content,
            candidate.content_type,
            transform=policy.transform if backend.kind is StorageBackendKind.CLOUD else None,
        )

        return StoredAsset(
            asset_class=candidate.asset_class,
            storage=backend.kind,
            folder=destination.folder,
            filename=destination.generated_name,
            path=path,
            size=candidate.size,
            content_type=candidate.content_type,
        )


def get_storage_service(request: Request) -> StorageService:
    """Dependency returning the storage service built at startup."""
    return request.app.state.storage_service
