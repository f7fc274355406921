# hera/urp/main.py
"""
Report engine application factory.

Creates a FastAPI application exposing the report engine over HTTP. Recipes
(and optional extra primitives) are loaded from the YAML files named by
``settings.recipes_config_paths``.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Iterable

from fastapi import FastAPI

from hera.urp.api.dependencies import EngineProvider
from hera.urp.api.discovery import router as discovery_router
from hera.urp.api.reports import router as reports_router
from hera.urp.contracts.store import EntityStoreClient
from hera.urp.core.cache import CacheManager, get_cache_backend
from hera.urp.core.config import settings
from hera.urp.core.engine import default_primitives
from hera.urp.core.errors import UnknownPrimitiveError
from hera.urp.core.logging import configure_logging
from hera.urp.core.presentation import PresentationFormatter
from hera.urp.core.recipes import RecipeRegistry, load_primitives, load_recipes
from hera.urp.core.store import HttpEntityStoreClient

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    provider: EngineProvider = app.state.engine_provider
    logger.info(
        "Report engine started: %d recipe(s), %d primitive(s)",
        len(provider.recipes),
        len(provider.primitives),
    )

    yield

    stats = provider.cache.stats.as_dict()
    provider.clear()
    logger.info("Report engine stopped (cache stats: %s)", stats)


def create_app(
    *,
    store: EntityStoreClient | None = None,
    recipes_config_paths: Iterable[str] | None = None,
) -> FastAPI:
    """Build and wire the report engine FastAPI application."""
    configure_logging(settings.log_level, json=settings.log_json)
    logger.info("Creating report engine application (env=%s)", settings.app_env)

    patterns = list(recipes_config_paths or settings.recipes_config_paths)

    # 1. Primitives (built-in plus any declared in recipe files)
    formatter = PresentationFormatter(
        default_locale=settings.default_locale,
        default_currency=settings.default_currency,
    )
    primitives = default_primitives(formatter)
    try:
        for primitive in load_primitives(patterns):
            primitives.register(primitive)
    except Exception:
        logger.exception("Failed to load primitives")
        raise

    # 2. Recipes; every step must resolve to a registered primitive
    recipe_registry = RecipeRegistry()
    try:
        for recipe in load_recipes(patterns):
            for step in recipe.steps:
                if not primitives.has(step.primitive):
                    raise UnknownPrimitiveError(step.primitive, recipe.name)
            recipe_registry.register(recipe)
    except Exception:
        logger.exception("Failed to load recipes")
        raise

    # 3. Store, cache and per-organization engines
    if store is None:
        store = HttpEntityStoreClient(
            base_url=settings.entity_store_url,
            token=settings.entity_store_token or None,
            timeout=settings.entity_store_timeout,
        )
    cache = CacheManager(get_cache_backend("memory"), default_ttl=settings.cache_default_ttl)
    provider = EngineProvider(
        store=store,
        recipes=recipe_registry,
        primitives=primitives,
        cache=cache,
        formatter=formatter,
        enable_caching=settings.cache_enabled,
        default_cache_ttl=settings.cache_default_ttl,
        single_flight=settings.single_flight,
        smart_code_prefix=settings.smart_code_prefix,
    )

    # 4. FastAPI app
    app = FastAPI(
        title="HERA Universal Report Engine",
        version="1.0.0",
        description="Recipe-driven reports over the universal entity store",
        lifespan=lifespan,
    )
    app.state.engine_provider = provider
    app.state.recipe_registry = recipe_registry

    app.include_router(discovery_router)
    app.include_router(reports_router)

    logger.info("Report engine application ready: %d recipe(s)", len(recipe_registry))
    return app
