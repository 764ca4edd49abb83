"""
FastAPI router for the resource API.

Endpoints (under the route prefix, "/api" by default):
- GET    /ping              - Liveness check
- GET    /__resources       - Registered capability descriptors
- POST   /batch             - Batch of sub-operations
- GET    /{resource}        - List (filter, sort, include, fields, page, per_page, limit)
- POST   /{resource}        - Create
- GET    /{resource}/{id}   - Read
- PUT    /{resource}/{id}   - Update
- PATCH  /{resource}/{id}   - Update
- DELETE /{resource}/{id}   - Delete

Query string examples:
    GET /api/products?filter[price][operator]=>&filter[price][value]=100&sort=-price
    GET /api/products/5?include=category&fields=name,price
"""

from __future__ import annotations


import inspect
import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Optional, Union

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError

from ..core.errors import ValidationError
from ..core.query_types import BatchRequest
from ..core.request_parser import parse_query_params
from ..runtime.context import InternalRequest, Principal
from ..runtime.store import ResourceStore

if TYPE_CHECKING:
    from ..engine import ResourceGraph

logger = logging.getLogger(__name__)


PrincipalResolver = Callable[[Request], Union[Optional[Principal], Awaitable[Optional[Principal]]]]


def default_principal_resolver(request: Request) -> Optional[Principal]:
    """
    Principal set by upstream auth middleware on request.state,
    or an anonymous principal (no scopes).
    """
    principal = getattr(request.state, "principal", None)
    return principal if principal is not None else Principal.anonymous()


def _validation_errors(error: PydanticValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for item in error.errors():
        key = ".".join(str(part) for part in item["loc"]) or "body"
        errors.setdefault(key, []).append(item["msg"])
    return errors


def _invalid_batch(errors: dict[str, list[str]]) -> JSONResponse:
    message = next(iter(errors.values()), ["Invalid batch request"])[0]
    return JSONResponse(
        {"error": "Invalid batch request", "message": message, "errors": errors},
        status_code=422,
    )


async def _json_body(request: Request) -> Any:
    raw = await request.body()
    if not raw:
        return {}
    return json.loads(raw)


def create_resource_router(graph: ResourceGraph) -> APIRouter:
    """
    Create the API router for a ResourceGraph.

    Args:
        graph: Engine providing registry, database, dispatcher and batch executor

    Returns:
        APIRouter mounted at the configured route prefix
    """
    settings = graph.settings
    resolver: PrincipalResolver = graph.principal_resolver or default_principal_resolver
    router = APIRouter(prefix=f"/{settings.route_prefix.strip('/')}")

    async def get_principal(request: Request) -> Optional[Principal]:
        principal = resolver(request)
        if inspect.isawaitable(principal):
            principal = await principal
        return principal

    async def handle(request: Request, principal: Optional[Principal]) -> JSONResponse:
        body: Any = {}
        if request.method in ("POST", "PUT", "PATCH"):
            try:
                body = await _json_body(request)
            except ValueError:
                return JSONResponse(
                    {"error": "Validation failed", "message": "The request body is not valid JSON"},
                    status_code=422,
                )
            if not isinstance(body, dict):
                return JSONResponse(
                    {"error": "Validation failed", "message": "The request body must be a JSON object"},
                    status_code=422,
                )

        internal = InternalRequest(
            method=request.method,
            path=request.url.path,
            params=parse_query_params(request.query_params.multi_items()),
            body=body,
            headers=dict(request.headers),
            principal=principal,
        )

        async with graph.database.session() as session:
            store = ResourceStore(session, graph.registry)
            result = await graph.dispatcher.dispatch(internal, store)

        return JSONResponse(result.body, status_code=result.status_code)

    # === Engine endpoints ===

    @router.get("/ping")
    async def ping() -> dict[str, Any]:
        return {
            "status": "success",
            "message": "API server is running",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": graph.version,
        }

    @router.get("/__resources")
    async def describe_resources() -> dict[str, Any]:
        """Capability descriptors of every registered resource."""
        return graph.registry.describe()

    @router.post("/batch")
    async def batch(
        request: Request,
        principal: Optional[Principal] = Depends(get_principal),
    ) -> JSONResponse:
        """
        Execute a batch of operations.

        Body:
        {
            "operations": [{"method": "POST", "path": "/api/products", "body": {...}}, ...],
            "use_transaction": false
        }
        """
        try:
            payload = await _json_body(request)
            batch_request = BatchRequest.model_validate(payload)
        except PydanticValidationError as e:
            return _invalid_batch(_validation_errors(e))
        except ValueError:
            return _invalid_batch({"body": ["The request body is not valid JSON"]})

        try:
            outcome = await graph.batch_executor.execute(
                batch_request.operations,
                atomic=batch_request.use_transaction,
                principal=principal,
            )
        except ValidationError as e:
            return _invalid_batch(e.errors)

        return JSONResponse(outcome.to_response(), status_code=outcome.status_code)

    # === Resource endpoints ===

    @router.api_route("/{resource}", methods=["GET", "POST"])
    async def collection(
        resource: str,
        request: Request,
        principal: Optional[Principal] = Depends(get_principal),
    ) -> JSONResponse:
        return await handle(request, principal)

    @router.api_route("/{resource}/{identifier}", methods=["GET", "PUT", "PATCH", "DELETE"])
    async def item(
        resource: str,
        identifier: str,
        request: Request,
        principal: Optional[Principal] = Depends(get_principal),
    ) -> JSONResponse:
        return await handle(request, principal)

    return router
