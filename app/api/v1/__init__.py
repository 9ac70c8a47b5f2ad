"""API v1 router aggregator."""

from fastapi import APIRouter

from app.api.v1 import documents, email, settings, uploads

api_router = APIRouter(tags=["API v1"])

api_router.include_router(settings.router)
api_router.include_router(documents.router)
api_router.include_router(uploads.router)
api_router.include_router(email.router)
