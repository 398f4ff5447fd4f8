"""
Trencher — Dispatcher Adapters
================================

What:  The seam between Trencher's chains and an HTTP routing engine.
How:   A dispatcher exposes one operation, ``register(verb, path, chain)``.
       ``FastAPIDispatcher`` implements it on a ``FastAPI`` app or an
       ``APIRouter``: Express-style ``:param`` segments become ``{param}``,
       and each route gets an endpoint that builds a ``RequestContext``,
       runs the chain and turns its result into a response.

Handler results → responses:
    Response instance  → returned unchanged
    None               → 204 No Content
    anything else      → JSON (``jsonable_encoder``) with ``ctx.status_code``

Errors raised by any stage propagate to the app's exception handlers
(see ``trencher.app.register_exception_handlers``).
"""

import logging
import re
from typing import Any, List, Protocol, Tuple, Union

from fastapi import APIRouter, FastAPI
from fastapi.encoders import jsonable_encoder
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from trencher.routing.chain import MiddlewareChain
from trencher.routing.context import RequestContext

logger = logging.getLogger(__name__)

HTTP_VERBS = ("GET", "POST", "PUT", "PATCH", "DELETE")

_PARAM_PATTERN = re.compile(r":([A-Za-z_][A-Za-z0-9_]*)")


class DispatcherAdapter(Protocol):
    def register(self, verb: str, path: str, chain: MiddlewareChain) -> None:
        ...


def normalize_verb(verb: str) -> str:
    upper = verb.upper()
    if upper not in HTTP_VERBS:
        raise ValueError(f"Unsupported HTTP verb '{verb}'. Expected one of: {', '.join(HTTP_VERBS)}")
    return upper


def to_framework_path(path: str) -> str:
    """``api/users/:id`` → ``/api/users/{id}``."""
    return "/" + _PARAM_PATTERN.sub(r"{\1}", path).lstrip("/")


def to_response(result: Any, ctx: RequestContext) -> Response:
    if isinstance(result, Response):
        return result
    if result is None:
        return Response(status_code=204)
    return JSONResponse(status_code=ctx.status_code, content=jsonable_encoder(result))


class FastAPIDispatcher:
    """
    Registers Trencher chains as FastAPI routes.

    Routes are added in call order; duplicates are not detected and the
    framework's first-match rule decides which one serves a request.
    """

    def __init__(self, target: Union[FastAPI, APIRouter], include_in_schema: bool = True):
        self.target = target
        self.include_in_schema = include_in_schema
        self.registered: List[Tuple[str, str]] = []

    def register(self, verb: str, path: str, chain: MiddlewareChain) -> None:
        verb = normalize_verb(verb)
        route_path = to_framework_path(path)

        async def endpoint(request: Request) -> Response:
            ctx = RequestContext(request)
            try:
                result = await chain(ctx)
                return to_response(result, ctx)
            finally:
                await ctx.close()

        self.target.add_api_route(
            route_path,
            endpoint,
            methods=[verb],
            name=f"{verb.lower()} {route_path}",
            include_in_schema=self.include_in_schema,
        )
        self.registered.append((verb, route_path))
        logger.debug("Registered %s %s: %s", verb, route_path, " → ".join(chain.names))
