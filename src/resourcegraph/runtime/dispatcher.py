"""
Request dispatcher - routes an InternalRequest to a resource operation.

Both the HTTP routes and batch sub-operations go through here, so path
resolution, scope checks and error mapping are identical for both.

Path / method -> operation kind:
    GET    /{prefix}/{resource}        list
    POST   /{prefix}/{resource}        create
    GET    /{prefix}/{resource}/{id}   read
    PUT    /{prefix}/{resource}/{id}   update
    PATCH  /{prefix}/{resource}/{id}   update
    DELETE /{prefix}/{resource}/{id}   delete
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Optional

from ..core.errors import IAMError, NotFoundError, StoreFault, ValidationError
from ..core.registry import ResourceRegistry
from ..core.request_parser import ResourceRoute, parse_query_string, resolve_route, split_path
from ..iam.guard import check_scope
from .context import InternalRequest
from .resources import ResourceService
from .store import ResourceStore

logger = logging.getLogger(__name__)


COLLECTION_METHODS = {"GET": "list", "POST": "create"}
ITEM_METHODS = {"GET": "read", "PUT": "update", "PATCH": "update", "DELETE": "delete"}

FAILURE_ERRORS = {
    "list": "Failed to retrieve resources",
    "read": "Failed to retrieve resource",
    "create": "Failed to create resource",
    "update": "Failed to update resource",
    "delete": "Failed to delete resource",
}


@dataclass
class DispatchResult:
    """Status code and JSON body of a dispatched request."""
    status_code: int
    body: Any
    resource: Optional[str] = None
    identifier: Optional[str] = None
    kind: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status_code < 400


def error_body(error: str, message: str, errors: Optional[dict] = None) -> dict[str, Any]:
    body: dict[str, Any] = {"error": error, "message": message}
    if errors is not None:
        body["errors"] = errors
    return body


def operation_kind(method: str, route: ResourceRoute) -> Optional[str]:
    """Operation kind for a method on a resolved route, None when not allowed."""
    methods = ITEM_METHODS if route.is_item else COLLECTION_METHODS
    return methods.get(method.upper())


class RequestDispatcher:
    """
    Dispatches InternalRequests against the resource service.

    Usage:
        dispatcher = RequestDispatcher(registry, service, route_prefix="api")
        result = await dispatcher.dispatch(request, store)
        result.status_code, result.body
    """

    def __init__(
        self,
        registry: ResourceRegistry,
        service: ResourceService,
        route_prefix: str = "api",
        enforce_scopes: bool = True,
        debug: bool = False,
    ):
        self.registry = registry
        self.service = service
        self.route_prefix = route_prefix
        self.enforce_scopes = enforce_scopes
        self.debug = debug

    def resolve(self, path: str) -> ResourceRoute:
        segments, _ = split_path(path)
        return resolve_route(segments, self.route_prefix)

    async def dispatch(
        self,
        request: InternalRequest,
        store: ResourceStore,
        *,
        use_cache: bool = True,
        invalidate: bool = True,
    ) -> DispatchResult:
        """
        Execute one request and map its outcome to a status code and body.

        Errors of the engine's own types become error bodies; anything
        else propagates to the caller.
        """
        segments, query_string = split_path(request.path)
        route = resolve_route(segments, self.route_prefix)

        if route.resource is None or route.extra_segments or route.resource not in self.registry:
            name = route.resource or "/".join(segments)
            return DispatchResult(404, error_body("Resource not found", f"Resource '{name}' not found"))

        kind = operation_kind(request.method, route)
        if kind is None:
            return DispatchResult(
                405,
                error_body("Method not allowed", f"{request.method} is not allowed on {request.path}"),
                resource=route.resource,
                identifier=route.identifier,
            )

        params = {**parse_query_string(query_string), **request.params}
        if kind in ("list", "read") and request.body:
            params.update(request.body)

        descriptor = self.registry.get(route.resource).descriptor

        try:
            check_scope(request.principal, descriptor, kind, enforce=self.enforce_scopes)
            status_code, body = await self._execute(
                kind, route, params, request, store, use_cache=use_cache, invalidate=invalidate
            )

        except IAMError as e:
            if e.status_code == 401:
                body = error_body("Unauthorized", "Authentication required")
            else:
                body = error_body(
                    "Insufficient scope",
                    f"The '{descriptor.scope_for(kind)}' scope is required to {kind} {route.resource}",
                )
            status_code = e.status_code

        except NotFoundError as e:
            status_code, body = 404, error_body("Resource not found", e.message)

        except ValidationError as e:
            status_code, body = 422, error_body("Validation failed", e.message, e.errors)

        except StoreFault as e:
            logger.error(f"{request.method} {request.path} failed: {e}")
            message = str(e) if self.debug else "An unexpected error occurred"
            status_code, body = 500, error_body(FAILURE_ERRORS[kind], message)

        return DispatchResult(
            status_code,
            body,
            resource=route.resource,
            identifier=route.identifier,
            kind=kind,
        )

    async def _execute(
        self,
        kind: str,
        route: ResourceRoute,
        params: dict[str, Any],
        request: InternalRequest,
        store: ResourceStore,
        *,
        use_cache: bool,
        invalidate: bool,
    ) -> tuple[int, Any]:
        resource = route.resource
        identifier = route.identifier

        if kind == "list":
            page = await self.service.list(resource, params, store, use_cache=use_cache)
            meta = {**page["page_meta"], "path": "/" + "/".join(split_path(request.path)[0])}
            return 200, {"data": page["items"], "meta": meta}

        elif kind == "read":
            item = await self.service.read(resource, identifier, params, store, use_cache=use_cache)
            return 200, {"data": item}

        elif kind == "create":
            item = await self.service.create(resource, request.body, store, invalidate=invalidate)
            return 201, {"data": item, "message": "Resource created successfully"}

        elif kind == "update":
            item = await self.service.update(resource, identifier, request.body, store, invalidate=invalidate)
            return 200, {"data": item, "message": "Resource updated successfully"}

        else:
            await self.service.delete(resource, identifier, store, invalidate=invalidate)
            return 200, {"message": "Resource deleted successfully"}
