"""
Trencher — Route Assembly Engine
==================================

What:  Turns a ``ResourceDescriptor`` (or a one-off endpoint) into
       registered HTTP routes, each backed by a ``MiddlewareChain``.
How:   Chains are laid out by ``build_chain`` and handed to a dispatcher.

CRUD layout (``register_crud``):
    GET    <base>          list      middlewares → handler
    POST   <base>          create    middlewares → upload? → validate → handler
    GET    <base>/:<id>    get       middlewares → handler
    PUT    <base>/:<id>    update    middlewares → upload? → validate → handler
    PATCH  <base>/:<id>    patch     middlewares → upload? → validate → handler
    DELETE <base>/:<id>    delete    middlewares → handler

    The PATCH route exists only when the controller provides ``patch``.
    "middlewares" = the descriptor's global middlewares followed by the
    route-specific ones.

Custom routes (``register_custom_route`` and ``custom_*_route``) follow the
same rule: POST/PUT/PATCH carry upload + validation, GET/DELETE do not.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from trencher.middleware.upload import UploadConfig
from trencher.middleware.validation import Validator
from trencher.routing.chain import Handler, Middleware, MiddlewareChain, build_chain
from trencher.routing.descriptor import ResourceDescriptor
from trencher.routing.dispatcher import DispatcherAdapter, normalize_verb

logger = logging.getLogger(__name__)

WRITE_VERBS = frozenset({"POST", "PUT", "PATCH"})


@dataclass(frozen=True)
class RegisteredRoute:
    operation: str
    verb: str
    path: str
    chain: MiddlewareChain


def _item_path(base_path: str, id_property_name: str) -> str:
    return f"{base_path.rstrip('/')}/:{id_property_name}"


def _register(
    dispatcher: DispatcherAdapter,
    operation: str,
    verb: str,
    path: str,
    chain: MiddlewareChain,
) -> RegisteredRoute:
    dispatcher.register(verb, path, chain)
    logger.info("Route %s %s [%s]", verb, path, operation)
    return RegisteredRoute(operation=operation, verb=verb, path=path, chain=chain)


# ══════════════════════════════════════════════════════════════════════════
# Single CRUD routes
# ══════════════════════════════════════════════════════════════════════════

def get_all_route(
    dispatcher: DispatcherAdapter,
    base_path: str,
    handler: Handler,
    middlewares: Sequence[Middleware] = (),
) -> RegisteredRoute:
    chain = build_chain(handler, middlewares, gated=False)
    return _register(dispatcher, "list", "GET", base_path, chain)


def get_route(
    dispatcher: DispatcherAdapter,
    base_path: str,
    handler: Handler,
    middlewares: Sequence[Middleware] = (),
    id_property_name: str = "id",
) -> RegisteredRoute:
    chain = build_chain(handler, middlewares, gated=False)
    return _register(dispatcher, "get", "GET", _item_path(base_path, id_property_name), chain)


def create_route(
    dispatcher: DispatcherAdapter,
    base_path: str,
    handler: Handler,
    middlewares: Sequence[Middleware] = (),
    validation: Optional[Validator] = None,
    upload_config: Optional[UploadConfig] = None,
) -> RegisteredRoute:
    chain = build_chain(handler, middlewares, validation=validation, upload_config=upload_config)
    return _register(dispatcher, "create", "POST", base_path, chain)


def update_route(
    dispatcher: DispatcherAdapter,
    base_path: str,
    handler: Handler,
    middlewares: Sequence[Middleware] = (),
    validation: Optional[Validator] = None,
    upload_config: Optional[UploadConfig] = None,
    id_property_name: str = "id",
) -> RegisteredRoute:
    chain = build_chain(handler, middlewares, validation=validation, upload_config=upload_config)
    return _register(dispatcher, "update", "PUT", _item_path(base_path, id_property_name), chain)


def patch_route(
    dispatcher: DispatcherAdapter,
    base_path: str,
    handler: Handler,
    middlewares: Sequence[Middleware] = (),
    validation: Optional[Validator] = None,
    upload_config: Optional[UploadConfig] = None,
    id_property_name: str = "id",
) -> RegisteredRoute:
    chain = build_chain(handler, middlewares, validation=validation, upload_config=upload_config)
    return _register(dispatcher, "patch", "PATCH", _item_path(base_path, id_property_name), chain)


def delete_route(
    dispatcher: DispatcherAdapter,
    base_path: str,
    handler: Handler,
    middlewares: Sequence[Middleware] = (),
    id_property_name: str = "id",
) -> RegisteredRoute:
    chain = build_chain(handler, middlewares, gated=False)
    return _register(dispatcher, "delete", "DELETE", _item_path(base_path, id_property_name), chain)


def register_crud(dispatcher: DispatcherAdapter, descriptor: ResourceDescriptor) -> List[RegisteredRoute]:
    """
    Register the canonical CRUD routes of a resource.

    Returns:
        The registered routes, five or six depending on ``controller.patch``.

    Calling this twice for the same base path registers the routes twice.
    """
    base = descriptor.base_path
    id_name = descriptor.id_property_name
    upload = descriptor.upload_config

    def middlewares_for(operation: str) -> tuple:
        return (*descriptor.middlewares, *descriptor.route_middlewares_for(operation))

    routes = [
        get_all_route(dispatcher, base, descriptor.handler_for("list"), middlewares_for("list")),
        get_route(dispatcher, base, descriptor.handler_for("get"), middlewares_for("get"), id_name),
        create_route(
            dispatcher,
            base,
            descriptor.handler_for("create"),
            middlewares_for("create"),
            descriptor.validator_for("create"),
            upload,
        ),
        update_route(
            dispatcher,
            base,
            descriptor.handler_for("update"),
            middlewares_for("update"),
            descriptor.validator_for("update"),
            upload,
            id_name,
        ),
    ]
    if descriptor.has_patch:
        routes.append(
            patch_route(
                dispatcher,
                base,
                descriptor.handler_for("patch"),
                middlewares_for("patch"),
                descriptor.validator_for("patch"),
                upload,
                id_name,
            )
        )
    routes.append(delete_route(dispatcher, base, descriptor.handler_for("delete"), middlewares_for("delete"), id_name))
    return routes


# ══════════════════════════════════════════════════════════════════════════
# Custom routes
# ══════════════════════════════════════════════════════════════════════════

def register_custom_route(
    dispatcher: DispatcherAdapter,
    verb: str,
    path: str,
    handler: Handler,
    middlewares: Sequence[Middleware] = (),
    validation: Optional[Validator] = None,
    upload_config: Optional[UploadConfig] = None,
) -> RegisteredRoute:
    """
    Register a one-off endpoint.

    Raises:
        ValueError: unsupported verb, or validation/upload given for GET/DELETE.
    """
    verb = normalize_verb(verb)
    if verb in WRITE_VERBS:
        chain = build_chain(handler, middlewares, validation=validation, upload_config=upload_config)
    else:
        if validation is not None or upload_config is not None:
            raise ValueError(f"{verb} routes take neither validation nor uploads")
        chain = build_chain(handler, middlewares, gated=False)
    return _register(dispatcher, "custom", verb, path, chain)


def custom_get_route(dispatcher, path, handler, middlewares=()) -> RegisteredRoute:
    return register_custom_route(dispatcher, "GET", path, handler, middlewares)


def custom_post_route(dispatcher, path, handler, middlewares=(), validation=None, upload_config=None) -> RegisteredRoute:
    return register_custom_route(dispatcher, "POST", path, handler, middlewares, validation, upload_config)


def custom_put_route(dispatcher, path, handler, middlewares=(), validation=None, upload_config=None) -> RegisteredRoute:
    return register_custom_route(dispatcher, "PUT", path, handler, middlewares, validation, upload_config)


def custom_patch_route(dispatcher, path, handler, middlewares=(), validation=None, upload_config=None) -> RegisteredRoute:
    return register_custom_route(dispatcher, "PATCH", path, handler, middlewares, validation, upload_config)


def custom_delete_route(dispatcher, path, handler, middlewares=()) -> RegisteredRoute:
    return register_custom_route(dispatcher, "DELETE", path, handler, middlewares)
