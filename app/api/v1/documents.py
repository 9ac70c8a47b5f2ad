"""Document endpoints: download, inline view and availability info."""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.exceptions import NotFoundException
from app.schemas.document import DocumentError
from app.services.document_service import (
    Disposition,
    DocumentService,
    get_document_service,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["Documents"])


async def _serve(
    name: str,
    disposition: Disposition,
    db: AsyncSession,
    service: DocumentService,
):
    try:
        resolution = await service.resolve(db, name, disposition)
    except Exception:
        logger.exception(f"Error resolving document {name}")
        action = "downloading" if disposition is Disposition.ATTACHMENT else "viewing"
        return JSONResponse(
            status_code=500,
            content=DocumentError(message=f"Error {action} {name}").model_dump(),
        )
    return service.to_response(resolution)


@router.get("/{name}/download")
async def download_document(
    name: str,
    db: AsyncSession = Depends(get_db),
    service: DocumentService = Depends(get_document_service),
):
    """Download a document as an attachment (or redirect to its hosted copy)."""
    return await _serve(name, Disposition.ATTACHMENT, db, service)


@router.get("/{name}/view")
async def view_document(
    name: str,
    db: AsyncSession = Depends(get_db),
    service: DocumentService = Depends(get_document_service),
):
    """Show a document inline in the browser (or redirect to its hosted copy)."""
    return await _serve(name, Disposition.INLINE, db, service)


@router.get("/{name}/info")
async def document_info(
    name: str,
    db: AsyncSession = Depends(get_db),
    service: DocumentService = Depends(get_document_service),
):
    """Describe a document's availability without transferring it."""
    try:
        info = await service.describe(db, name)
    except NotFoundException as e:
        return JSONResponse(status_code=404, content=DocumentError(message=e.message).model_dump())
    except Exception:
        logger.exception(f"Error getting info for document {name}")
        return JSONResponse(
            status_code=500,
            content=DocumentError(message=f"Error getting {name} information").model_dump(),
        )
    return JSONResponse(content=info.to_content())
