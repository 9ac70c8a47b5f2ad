"""Document resolution: override URL, then local file, then not found.

Every request ends in exactly one of redirect, stream, 404 or 500. The
stream path opens the file and computes all headers before the response
starts; once bytes are flowing an I/O error is only logged and the body
is cut short, because the status line has already been sent.
"""

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from enum import Enum

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse, Response, StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings
from app.exceptions import NotFoundException
from app.schemas.document import DocumentError, DocumentInfo
from app.services.settings_service import SettingsService
from app.services.storage_backends import OpenedAsset, StorageBackendKind
from app.services.storage_service import StorageService

logger = logging.getLogger(__name__)

CACHE_CONTROL = "public, max-age=86400"


class Disposition(str, Enum):
    """How the browser should treat a streamed document."""

    ATTACHMENT = "attachment"
    INLINE = "inline"


@dataclass(frozen=True)
class DocumentSpec:
    """A named, publicly served document."""

    name: str
    title: str
    override_key: str
    local_key: str
    download_name: str
    content_type: str = "application/pdf"

    @property
    def not_found_message(self) -> str:
        return f"{self.title} not found. Please contact the administrator."


def default_documents(settings: Settings) -> dict[str, DocumentSpec]:
    """Documents served by a stock deployment."""
    rulebook = DocumentSpec(
        name="rulebook",
        title="Rulebook",
        override_key="rulebook_url",
        local_key=settings.rulebook_filename,
        download_name=settings.rulebook_download_name,
    )
    return {rulebook.name: rulebook}


class ResolutionKind(str, Enum):
    REDIRECT = "redirect"
    STREAM = "stream"
    NOT_FOUND = "not_found"
    ERROR = "error"


@dataclass
class DocumentResolution:
    """Terminal outcome of resolving one document request."""

    kind: ResolutionKind
    url: str | None = None
    asset: OpenedAsset | None = None
    media_type: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    message: str | None = None


def format_size(size: int) -> str:
    """Format a byte count as megabytes with two decimals."""
    return f"{size / 1024 / 1024:.2f} MB"


class DocumentService:
    """Resolves named documents to a redirect, a stream or a not-found."""

    def __init__(
        self,
        storage: StorageService,
        settings_service: SettingsService,
        documents: dict[str, DocumentSpec],
        route_prefix: str = "/api/v1/documents",
    ):
        self.storage = storage
        self.settings_service = settings_service
        self.documents = documents
        self.route_prefix = route_prefix.rstrip("/")

    def _links(self, spec: DocumentSpec) -> dict[str, str]:
        return {
            "download_url": f"{self.route_prefix}/{spec.name}/download",
            "view_url": f"{self.route_prefix}/{spec.name}/view",
        }

    async def resolve(
        self,
        db: AsyncSession,
        name: str,
        disposition: Disposition = Disposition.ATTACHMENT,
    ) -> DocumentResolution:
        """Resolve a document request to its single terminal outcome."""
        spec = self.documents.get(name)
        if spec is None:
            return DocumentResolution(ResolutionKind.NOT_FOUND, message="Document not found.")

        override = await self.settings_service.get(db, spec.override_key)
        if override:
            logger.info(f"Redirecting {spec.name} ({disposition.value}) to {override}")
            return DocumentResolution(ResolutionKind.REDIRECT, url=override)

        action = "downloading" if disposition is Disposition.ATTACHMENT else "viewing"
        local = self.storage.local
        try:
            if not await local.exists(spec.local_key):
                logger.error(f"{spec.title} not found at {local.resolve(spec.local_key)}")
                return DocumentResolution(ResolutionKind.NOT_FOUND, message=spec.not_found_message)
            asset = await local.open_read(spec.local_key)
        except NotFoundException:
            return DocumentResolution(ResolutionKind.NOT_FOUND, message=spec.not_found_message)
        except OSError as e:
            logger.error(f"Error opening {spec.name} for {action}: {e}")
            return DocumentResolution(
                ResolutionKind.ERROR, message=f"Error {action} {spec.name}"
            )

        logger.info(f"Serving local {spec.name} ({disposition.value}): {asset.size} bytes")
        return DocumentResolution(
            ResolutionKind.STREAM,
            asset=asset,
            media_type=spec.content_type,
            headers={
                "Content-Disposition": f'{disposition.value}; filename="{spec.download_name}"',
                "Content-Length": str(asset.size),
                "Cache-Control": CACHE_CONTROL,
                "Access-Control-Allow-Origin": "*",
                "Cross-Origin-Resource-Policy": "cross-origin",
            },
        )

    async def describe(self, db: AsyncSession, name: str) -> DocumentInfo:
        """Report availability and metadata without transferring content."""
        spec = self.documents.get(name)
        if spec is None:
            raise NotFoundException("Document")

        override = await self.settings_service.get(db, spec.override_key)
        if override:
            return DocumentInfo(
                available=True,
                storage=StorageBackendKind.CLOUD.value,
                filename=spec.download_name,
                url=override,
                message=f"{spec.title} hosted on cloud storage",
                **self._links(spec),
            )

        stat = await self.storage.local.stat(spec.local_key)
        if stat is None:
            return DocumentInfo(
                available=False,
                storage=StorageBackendKind.LOCAL.value,
                message=f"{spec.title} not available",
            )

        return DocumentInfo(
            available=True,
            storage=StorageBackendKind.LOCAL.value,
            filename=spec.download_name,
            size=stat.size,
            size_formatted=format_size(stat.size),
            last_modified=stat.last_modified,
            **self._links(spec),
        )

    def to_response(self, resolution: DocumentResolution) -> Response:
        """Turn a resolution into the HTTP response for it."""
        if resolution.kind is ResolutionKind.REDIRECT:
            return RedirectResponse(url=resolution.url, status_code=302)
        if resolution.kind is ResolutionKind.NOT_FOUND:
            return JSONResponse(status_code=404, content=DocumentError(message=resolution.message).model_dump())
        if resolution.kind is ResolutionKind.ERROR:
            return JSONResponse(status_code=500, content=DocumentError(message=resolution.message).model_dump())

        return StreamingResponse(
            self._stream(resolution.asset),
            media_type=resolution.media_type,
            headers=resolution.headers,
        )

    async def _stream(self, asset: OpenedAsset) -> AsyncIterator[bytes]:
        try:
            async for chunk in asset.iter_chunks():
                yield chunk
        except OSError as e:
            # Headers are already on the wire; end the body and let the
            # length mismatch close the connection.
            logger.error(f"Error streaming document after headers were sent: {e}")
        finally:
            await asset.close()


def get_document_service(request: Request) -> DocumentService:
    """Dependency returning the document service built at startup."""
    return request.app.state.document_service
