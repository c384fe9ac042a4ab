"""Routers for the document narration FastAPI application."""

from __future__ import annotations

from fastapi import APIRouter

from .narrate import router as narrate_router


def build_api_router() -> APIRouter:
    """Combine all API routers for inclusion in the FastAPI app."""
    router = APIRouter()
    router.include_router(narrate_router, prefix="/narrate", tags=["narrate"])
    return router


__all__ = ["build_api_router"]
