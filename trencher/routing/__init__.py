"""
Trencher — Routing Package
============================

Route Inventory (per resource, via ``register_crud``):
    GET    <base>           list
    POST   <base>           create
    GET    <base>/:id       get
    PUT    <base>/:id       update
    PATCH  <base>/:id       patch   (only when the controller has one)
    DELETE <base>/:id       delete

Chain layout:
    Request → [global mws] → [route mws] → [upload] → [validate] → handler
"""

from trencher.routing.chain import MiddlewareChain, Stage, StageKind, build_chain
from trencher.routing.context import RequestContext
from trencher.routing.descriptor import ResourceDescriptor
from trencher.routing.dispatcher import DispatcherAdapter, FastAPIDispatcher
from trencher.routing.routes import (
    RegisteredRoute,
    create_route,
    custom_delete_route,
    custom_get_route,
    custom_patch_route,
    custom_post_route,
    custom_put_route,
    delete_route,
    get_all_route,
    get_route,
    patch_route,
    register_crud,
    register_custom_route,
    update_route,
)

__all__ = [
    "DispatcherAdapter",
    "FastAPIDispatcher",
    "MiddlewareChain",
    "RegisteredRoute",
    "RequestContext",
    "ResourceDescriptor",
    "Stage",
    "StageKind",
    "build_chain",
    "create_route",
    "custom_delete_route",
    "custom_get_route",
    "custom_patch_route",
    "custom_post_route",
    "custom_put_route",
    "delete_route",
    "get_all_route",
    "get_route",
    "patch_route",
    "register_crud",
    "register_custom_route",
    "update_route",
]
