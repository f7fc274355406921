# hera/urp/api/reports.py
"""
Report endpoints: recipe execution, cache control and materialized views.

Engine errors are returned with their status hint and a body of the form
``{"detail": {"error": kind, "detail": message, ...}}``.
"""
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from fastapi.encoders import jsonable_encoder

from hera.urp.api.dependencies import get_engine
from hera.urp.api.schemas import (
    CacheClearedSchema,
    CreateViewRequestSchema,
    ExecuteRequestSchema,
    RecipeDescriptorSchema,
    RecipeDetailSchema,
    ViewDescriptorSchema,
)
from hera.urp.core.engine import ReportEngine
from hera.urp.core.errors import ReportError
from hera.urp.core.presentation import FormattedOutput

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/reports", tags=["reports"])


def _http_error(exc: ReportError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.to_dict())


def _respond(output: FormattedOutput, filename: str) -> Any:
    if output.format in ("json", "table"):
        return {
            "format": output.format,
            "metadata": jsonable_encoder(output.metadata),
            "data": jsonable_encoder(output.content),
        }
    headers = {"Content-Disposition": f'attachment; filename="{filename}.{output.extension}"'}
    if "cache" in output.metadata:
        headers["X-Cache"] = str(output.metadata["cache"])
    return Response(content=output.content, media_type=output.media_type, headers=headers)


# -- Recipes -------------------------------------------------------------------


@router.get("/recipes", response_model=list[RecipeDescriptorSchema], operation_id="list_recipes")
async def list_recipes(engine: ReportEngine = Depends(get_engine)) -> list[RecipeDescriptorSchema]:
    return [RecipeDescriptorSchema(**d) for d in engine.recipes.list_all()]


@router.get("/recipes/{name}", response_model=RecipeDetailSchema, operation_id="describe_recipe")
async def describe_recipe(name: str, engine: ReportEngine = Depends(get_engine)) -> RecipeDetailSchema:
    try:
        return RecipeDetailSchema.from_recipe(engine.get_recipe(name))
    except ReportError as exc:
        raise _http_error(exc) from exc


@router.post("/recipes/{name}/execute", operation_id="execute_recipe")
async def execute_recipe(
    name: str,
    body: ExecuteRequestSchema | None = None,
    engine: ReportEngine = Depends(get_engine),
) -> Any:
    body = body or ExecuteRequestSchema()
    try:
        output = await engine.execute_recipe(
            name,
            body.parameters,
            format=body.format,
            locale=body.locale,
            currency=body.currency,
            title=body.title,
            use_cache=body.use_cache,
            refresh_cache=body.refresh_cache,
        )
    except ReportError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:
        logger.exception("execute_recipe(%s, org=%s) failed", name, engine.organization_id)
        raise HTTPException(500, "Internal server error") from exc
    return _respond(output, name)


# -- Cache ---------------------------------------------------------------------


@router.delete("/cache", response_model=CacheClearedSchema, operation_id="clear_cache")
async def clear_cache(
    recipe_name: str | None = Query(default=None),
    engine: ReportEngine = Depends(get_engine),
) -> CacheClearedSchema:
    removed = await engine.clear_cache(recipe_name)
    return CacheClearedSchema(removed=removed, recipe_name=recipe_name)


# -- Materialized views --------------------------------------------------------


@router.get("/views", response_model=list[ViewDescriptorSchema], operation_id="list_views")
async def list_views(engine: ReportEngine = Depends(get_engine)) -> list[ViewDescriptorSchema]:
    return [ViewDescriptorSchema(**v) for v in await engine.list_materialized_views()]


@router.post(
    "/views",
    response_model=ViewDescriptorSchema,
    status_code=201,
    operation_id="create_view",
)
async def create_view(
    body: CreateViewRequestSchema,
    engine: ReportEngine = Depends(get_engine),
) -> ViewDescriptorSchema:
    try:
        descriptor = await engine.create_materialized_view(
            body.recipe_name,
            body.view_name,
            refresh_interval=body.refresh_interval,
            parameters=body.parameters,
        )
    except ReportError as exc:
        raise _http_error(exc) from exc
    return ViewDescriptorSchema(**jsonable_encoder(descriptor))


@router.post(
    "/views/{view_name}/refresh",
    response_model=ViewDescriptorSchema,
    operation_id="refresh_view",
)
async def refresh_view(view_name: str, engine: ReportEngine = Depends(get_engine)) -> ViewDescriptorSchema:
    try:
        info = await engine.refresh_materialized_view(view_name)
    except ReportError as exc:
        raise _http_error(exc) from exc
    except Exception as exc:
        logger.exception("refresh_view(%s, org=%s) failed", view_name, engine.organization_id)
        raise HTTPException(500, "Internal server error") from exc
    return ViewDescriptorSchema(**jsonable_encoder(info))


@router.get("/views/{view_name}", operation_id="query_view")
async def query_view(
    view_name: str,
    format: str = Query(default="json"),
    locale: str | None = Query(default=None),
    currency: str | None = Query(default=None),
    engine: ReportEngine = Depends(get_engine),
) -> Any:
    try:
        payload = await engine.query_materialized_view(view_name)
        output = engine.formatter.format(
            payload, format, locale=locale, currency=currency, title=view_name
        )
    except ReportError as exc:
        raise _http_error(exc) from exc
    output.metadata = {"view_name": view_name}
    return _respond(output, view_name)


@router.delete("/views/{view_name}", status_code=204, operation_id="drop_view")
async def drop_view(view_name: str, engine: ReportEngine = Depends(get_engine)) -> Response:
    try:
        await engine.drop_materialized_view(view_name)
    except ReportError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)
