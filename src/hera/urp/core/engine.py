# hera/urp/core/engine.py
"""
ReportEngine: executes recipes for one organization.

Execution of one recipe walks these states::

    IDLE -> CACHE_CHECK -> CACHE_HIT  -> FORMAT -> DONE
                        -> CACHE_MISS -> STEP_EXECUTING[n] -> CACHE_WRITE -> FORMAT -> DONE
    (any) -> ERROR

Everything that can be checked without I/O (recipe lookup, primitive
resolution, parameter and placeholder binding, output format) is checked
before the cache or the store is touched.
"""
from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from enum import StrEnum
from typing import Any, Mapping

from hera.urp.contracts.primitive import Primitive
from hera.urp.contracts.recipe import RecipeDefinition, RecipeStep
from hera.urp.contracts.store import EntityStoreClient
from hera.urp.core.cache import CacheManager, parameter_hash, recipe_key
from hera.urp.core.context import ExecutionContext
from hera.urp.core.errors import (
    ReportError,
    UnknownPrimitiveError,
    UnsupportedFormatError,
    ViewNotFoundError,
    ViewNotRefreshedError,
)
from hera.urp.core.presentation import FormattedOutput, PresentationFormatter
from hera.urp.core.primitives import (
    DynamicJoin,
    EntityResolver,
    HierarchyBuilder,
    PrimitiveRegistry,
    RollupBalance,
    TransactionFacts,
)
from hera.urp.core.recipes import RecipeBinder, RecipeRegistry, parse_recipe, render

logger = logging.getLogger(__name__)


class ExecutionState(StrEnum):
    IDLE = "idle"
    CACHE_CHECK = "cache_check"
    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    STEP_EXECUTING = "step_executing"
    CACHE_WRITE = "cache_write"
    FORMAT = "format"
    DONE = "done"
    ERROR = "error"


@dataclass
class ExecutionTrace:
    """States one execution went through, in order."""

    recipe_name: str
    state: ExecutionState = ExecutionState.IDLE
    states: list[str] = field(default_factory=lambda: [ExecutionState.IDLE.value])

    def transition(self, state: ExecutionState, detail: Any = None) -> None:
        self.state = state
        self.states.append(state.value if detail is None else f"{state.value}[{detail}]")
        logger.debug("Recipe '%s': %s", self.recipe_name, self.states[-1])


def default_primitives(formatter: PresentationFormatter | None = None) -> PrimitiveRegistry:
    registry = PrimitiveRegistry()
    for primitive in (
        EntityResolver(),
        HierarchyBuilder(),
        TransactionFacts(),
        DynamicJoin(),
        RollupBalance(),
        formatter or PresentationFormatter(),
    ):
        registry.register(primitive)
    return registry


class ReportEngine:
    """
    Orchestrates recipes over the primitives for one organization.

    Args:
        store: Entity store client used by the primitives
        organization_id: Tenant every execution is scoped to
        actor_user_id: Optional acting user, exposed to recipes
        cache: Cache manager; pass a shared one to share a backend
        primitives: Primitive registry (defaults to the built-in set)
        recipes: Recipe registry; pass a shared one to share recipes
        enable_caching: Master switch for result caching
        default_cache_ttl: Seconds for recipes without ``cache_ttl``
        single_flight: Concurrent identical misses share one computation
        smart_code_prefix: Default smart code prefix exposed to recipes
        formatter: Presentation formatter used for the final output
    """

    def __init__(
        self,
        store: EntityStoreClient,
        organization_id: str,
        *,
        actor_user_id: str | None = None,
        cache: CacheManager | None = None,
        primitives: PrimitiveRegistry | None = None,
        recipes: RecipeRegistry | None = None,
        enable_caching: bool = True,
        default_cache_ttl: int = 300,
        single_flight: bool = True,
        smart_code_prefix: str | None = None,
        formatter: PresentationFormatter | None = None,
    ) -> None:
        if not organization_id:
            raise ValueError("organization_id is required")
        self.store = store
        self.organization_id = organization_id
        self.actor_user_id = actor_user_id
        self.cache = cache or CacheManager(default_ttl=default_cache_ttl)
        self.formatter = formatter or PresentationFormatter()
        self.primitives = primitives or default_primitives(self.formatter)
        self.recipes = recipes if recipes is not None else RecipeRegistry()
        self.enable_caching = enable_caching
        self.default_cache_ttl = default_cache_ttl
        self.single_flight = single_flight
        self.smart_code_prefix = smart_code_prefix
        self.binder = RecipeBinder()
        self._inflight: dict[str, asyncio.Future[Any]] = {}

    # -- recipes -----------------------------------------------------------

    def register_recipe(self, recipe: RecipeDefinition | Mapping[str, Any]) -> RecipeDefinition:
        """
        Register (or replace) a recipe.

        Raises:
            RecipeConfigError: If a mapping is not a valid recipe
            UnknownPrimitiveError: If a step names an unregistered primitive
        """
        if not isinstance(recipe, RecipeDefinition):
            recipe = parse_recipe(str(recipe.get("name", "")), dict(recipe))
        self._resolve_steps(recipe)
        self.recipes.register(recipe)
        return recipe

    def get_available_recipes(self) -> list[RecipeDefinition]:
        return self.recipes.snapshot()

    def get_recipe(self, name: str) -> RecipeDefinition:
        return self.recipes.get(name).model_copy(deep=True)

    def unregister_recipe(self, name: str) -> bool:
        return self.recipes.unregister(name)

    # -- execution ---------------------------------------------------------

    async def execute_recipe(
        self,
        name: str,
        parameters: Mapping[str, Any] | None = None,
        *,
        format: str = "json",
        locale: str | None = None,
        currency: str | None = None,
        title: str | None = None,
        use_cache: bool = True,
        refresh_cache: bool = False,
    ) -> FormattedOutput:
        """
        Execute a recipe and format its payload.

        ``use_cache=False`` neither reads nor writes the cache;
        ``refresh_cache=True`` skips the read and overwrites the entry.

        Raises:
            RecipeNotFoundError, UnknownPrimitiveError, MissingParameterError,
            ParameterValidationError, UnsupportedFormatError: Before any I/O
        """
        trace = ExecutionTrace(recipe_name=name)
        try:
            if format not in self.formatter.formats:
                raise UnsupportedFormatError(format, self.formatter.formats)
            payload, status, recipe, context = await self._payload(
                name, parameters, trace, use_cache=use_cache, refresh_cache=refresh_cache
            )

            trace.transition(ExecutionState.FORMAT)
            output = self.formatter.format(
                payload,
                format,
                locale=locale,
                currency=currency,
                title=title or recipe.description or recipe.name,
            )
            output.metadata = {
                "recipe": recipe.name,
                "version": recipe.version,
                "organization_id": self.organization_id,
                "request_id": context.request_id,
                "generated_at": context.now.isoformat(),
                "cache": status,
            }
            trace.transition(ExecutionState.DONE)
            output.metadata["states"] = list(trace.states)
            return output
        except ReportError as exc:
            trace.transition(ExecutionState.ERROR)
            logger.warning("Recipe '%s' failed: %s", name, exc)
            raise
        except Exception:
            trace.transition(ExecutionState.ERROR)
            logger.exception("Recipe '%s' failed", name)
            raise

    async def clear_cache(self, recipe_name: str | None = None) -> int:
        """Drop cached results of this organization; materialized views are kept."""
        return await self.cache.invalidate(self.organization_id, recipe_name)

    # -- materialized views ------------------------------------------------

    async def create_materialized_view(
        self,
        recipe_name: str,
        view_name: str,
        refresh_interval: int | None = None,
        parameters: Mapping[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Define a view over a recipe. The view holds no data until refreshed.

        Raises:
            RecipeNotFoundError: If the recipe is unknown
            ValueError: If the view name is empty or the interval negative
        """
        if not view_name:
            raise ValueError("view_name is required")
        if refresh_interval is not None and refresh_interval < 0:
            raise ValueError("refresh_interval must be >= 0")
        recipe = self.recipes.get(recipe_name)
        bound = self.binder.bind(recipe, parameters)

        descriptor = {
            "view_name": view_name,
            "recipe_name": recipe_name,
            "parameters": bound,
            "refresh_interval": refresh_interval,
            "created_at": self.cache.clock().isoformat(),
        }
        # A redefined view must not serve data of its previous definition
        await self.cache.delete_view(self.organization_id, view_name)
        await self.cache.set_view(self.organization_id, view_name, descriptor)
        logger.info(
            "Created materialized view '%s' over recipe '%s' (org=%s)",
            view_name,
            recipe_name,
            self.organization_id,
        )
        return descriptor

    async def refresh_materialized_view(self, view_name: str) -> dict[str, Any]:
        """
        Re-execute the view's recipe and store the result.

        Raises:
            ViewNotFoundError: If the view does not exist
        """
        descriptor = await self._view(view_name)
        trace = ExecutionTrace(recipe_name=descriptor["recipe_name"])
        payload, _, _, _ = await self._payload(
            descriptor["recipe_name"], descriptor.get("parameters"), trace, use_cache=False
        )
        await self.cache.set_view_data(self.organization_id, view_name, payload)
        entry = await self.cache.get_view_data(self.organization_id, view_name)
        logger.info("Refreshed materialized view '%s' (org=%s)", view_name, self.organization_id)
        return {**descriptor, "refreshed_at": entry.created_at.isoformat() if entry else None}

    async def query_materialized_view(self, view_name: str) -> Any:
        """
        Return the payload stored by the last refresh. Never refreshes.

        Raises:
            ViewNotFoundError: If the view does not exist
            ViewNotRefreshedError: If the view was never refreshed
        """
        await self._view(view_name)
        entry = await self.cache.get_view_data(self.organization_id, view_name)
        if entry is None:
            raise ViewNotRefreshedError(view_name)
        return entry.payload

    async def drop_materialized_view(self, view_name: str) -> None:
        if not await self.cache.delete_view(self.organization_id, view_name):
            raise ViewNotFoundError(view_name)
        logger.info("Dropped materialized view '%s' (org=%s)", view_name, self.organization_id)

    async def list_materialized_views(self) -> list[dict[str, Any]]:
        now = self.cache.clock()
        views: list[dict[str, Any]] = []
        for descriptor in await self.cache.list_views(self.organization_id):
            entry = await self.cache.get_view_data(self.organization_id, descriptor["view_name"])
            refreshed_at = entry.created_at if entry else None
            interval = descriptor.get("refresh_interval")
            stale = refreshed_at is None or (
                bool(interval) and now - refreshed_at >= timedelta(seconds=interval)
            )
            views.append(
                {
                    **descriptor,
                    "refreshed_at": refreshed_at.isoformat() if refreshed_at else None,
                    "stale": stale,
                }
            )
        return views

    # -- internals ---------------------------------------------------------

    def _resolve_steps(self, recipe: RecipeDefinition) -> list[tuple[RecipeStep, Primitive]]:
        resolved: list[tuple[RecipeStep, Primitive]] = []
        for step in recipe.steps:
            try:
                resolved.append((step, self.primitives.resolve(step.primitive)))
            except UnknownPrimitiveError:
                raise UnknownPrimitiveError(step.primitive, recipe.name) from None
        return resolved

    def _context(self) -> ExecutionContext:
        return ExecutionContext.create(
            organization_id=self.organization_id,
            store=self.store,
            actor_user_id=self.actor_user_id,
            smart_code_prefix=self.smart_code_prefix,
        )

    async def _view(self, view_name: str) -> dict[str, Any]:
        descriptor = await self.cache.get_view(self.organization_id, view_name)
        if descriptor is None:
            raise ViewNotFoundError(view_name)
        return descriptor

    async def _payload(
        self,
        name: str,
        parameters: Mapping[str, Any] | None,
        trace: ExecutionTrace,
        *,
        use_cache: bool = True,
        refresh_cache: bool = False,
    ) -> tuple[Any, str, RecipeDefinition, ExecutionContext]:
        recipe = self.recipes.get(name)
        steps = self._resolve_steps(recipe)
        bound = self.binder.bind(recipe, parameters)
        context = self._context()

        caching = self.enable_caching and use_cache and recipe.cache_ttl != 0
        trace.transition(ExecutionState.CACHE_CHECK)
        if caching and not refresh_cache:
            cached = await self.cache.get(self.organization_id, recipe.name, bound)
            if cached is not None:
                trace.transition(ExecutionState.CACHE_HIT)
                return cached, "hit", recipe, context

        trace.transition(ExecutionState.CACHE_MISS)
        status = "miss" if caching else "bypass"
        key = recipe_key(self.organization_id, recipe.name, parameter_hash(bound))

        if not self.single_flight:
            payload = await self._compute(recipe, steps, bound, context, trace, caching)
            return payload, status, recipe, context

        inflight = self._inflight.get(key)
        if inflight is not None:
            logger.debug("Joining in-flight execution of '%s'", key)
            payload = await asyncio.shield(inflight)
            return copy.deepcopy(payload), "shared", recipe, context

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            payload = await self._compute(recipe, steps, bound, context, trace, caching)
        except asyncio.CancelledError:
            future.cancel()
            raise
        except BaseException as exc:
            future.set_exception(exc)
            # Followers re-raise it; mark retrieved for the no-follower case
            future.exception()
            raise
        else:
            future.set_result(payload)
            return payload, status, recipe, context
        finally:
            self._inflight.pop(key, None)

    async def _compute(
        self,
        recipe: RecipeDefinition,
        steps: list[tuple[RecipeStep, Primitive]],
        parameters: dict[str, Any],
        context: ExecutionContext,
        trace: ExecutionTrace,
        write_cache: bool,
    ) -> Any:
        # Builtins win over parameters of the same name
        bag: dict[str, Any] = {
            **parameters,
            "organization_id": context.organization_id,
            "actor_user_id": context.actor_user_id,
            "smart_code_prefix": context.smart_code_prefix,
            "now": context.now,
            "previous": None,
        }

        output: Any = None
        for index, (step, primitive) in enumerate(steps):
            trace.transition(ExecutionState.STEP_EXECUTING, index)
            config = render(step.config, bag)
            logger.debug(
                "Recipe '%s' step %d: %s -> %s",
                recipe.name,
                index,
                primitive.name,
                step.output_key or "-",
            )
            try:
                output = await primitive.run(config, context)
            except ReportError:
                raise
            except Exception:
                logger.exception(
                    "Step %d (%s) of recipe '%s' failed", index, primitive.name, recipe.name
                )
                raise
            bag["previous"] = output
            if step.output_key:
                bag[step.output_key] = output

        if write_cache:
            trace.transition(ExecutionState.CACHE_WRITE)
            await self.cache.set(
                self.organization_id, recipe.name, parameters, output, ttl=recipe.cache_ttl
            )
        return output
