# hera/urp/api/dependencies.py
"""
FastAPI dependencies for request-scoped report engines.

Provides:
- ``EngineProvider``: one ``ReportEngine`` per organization over a shared
  recipe set, primitive set and cache.
- ``get_engine``: the engine for the calling organization, taken from the
  ``X-Organization-Id`` / ``X-Actor-User-Id`` headers.
"""
from __future__ import annotations

import copy
import logging

from fastapi import Header, HTTPException, Request

from hera.urp.contracts.store import EntityStoreClient
from hera.urp.core.cache import CacheManager
from hera.urp.core.engine import ReportEngine
from hera.urp.core.presentation import PresentationFormatter
from hera.urp.core.primitives import PrimitiveRegistry
from hera.urp.core.recipes import RecipeRegistry

logger = logging.getLogger(__name__)


class EngineProvider:
    """Hands out one engine per organization; engines share recipes and cache."""

    def __init__(
        self,
        *,
        store: EntityStoreClient,
        recipes: RecipeRegistry,
        primitives: PrimitiveRegistry,
        cache: CacheManager,
        formatter: PresentationFormatter,
        enable_caching: bool = True,
        default_cache_ttl: int = 300,
        single_flight: bool = True,
        smart_code_prefix: str | None = None,
    ) -> None:
        self.store = store
        self.recipes = recipes
        self.primitives = primitives
        self.cache = cache
        self.formatter = formatter
        self.enable_caching = enable_caching
        self.default_cache_ttl = default_cache_ttl
        self.single_flight = single_flight
        self.smart_code_prefix = smart_code_prefix
        self._engines: dict[str, ReportEngine] = {}

    def get(self, organization_id: str, actor_user_id: str | None = None) -> ReportEngine:
        engine = self._engines.get(organization_id)
        if engine is None:
            engine = ReportEngine(
                self.store,
                organization_id,
                cache=self.cache,
                primitives=self.primitives,
                recipes=self.recipes,
                enable_caching=self.enable_caching,
                default_cache_ttl=self.default_cache_ttl,
                single_flight=self.single_flight,
                smart_code_prefix=self.smart_code_prefix,
                formatter=self.formatter,
            )
            self._engines[organization_id] = engine
            logger.debug("Created report engine for org=%s", organization_id)
        if actor_user_id is None:
            return engine
        # Shallow copy keeps the shared in-flight map and registries
        scoped = copy.copy(engine)
        scoped.actor_user_id = actor_user_id
        return scoped

    def clear(self) -> None:
        self._engines.clear()

    def __len__(self) -> int:
        return len(self._engines)


def get_engine(
    request: Request,
    x_organization_id: str | None = Header(default=None),
    x_actor_user_id: str | None = Header(default=None),
) -> ReportEngine:
    """Engine scoped to the organization of the request (400 when missing)."""
    if not x_organization_id:
        raise HTTPException(status_code=400, detail="X-Organization-Id header required")
    provider: EngineProvider | None = getattr(request.app.state, "engine_provider", None)
    if provider is None:
        raise HTTPException(status_code=503, detail="Report engine not configured")
    return provider.get(x_organization_id, x_actor_user_id)
