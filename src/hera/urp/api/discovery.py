# hera/urp/api/discovery.py
"""
Root-level health endpoint.
"""
from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter()


@router.get("/health")
async def health(request: Request) -> dict:
    recipes = getattr(request.app.state, "recipe_registry", None)
    provider = getattr(request.app.state, "engine_provider", None)
    cache = getattr(provider, "cache", None)
    return {
        "status": "healthy",
        "recipes": len(recipes) if recipes is not None else 0,
        "organizations": len(provider) if provider is not None else 0,
        "cache": cache.stats.as_dict() if cache is not None else None,
    }
