"""
Trencher — Resource Descriptors
=================================

What:  Declarative description of one REST resource: where it lives, which
       controller handles each CRUD operation, how writes are validated,
       where uploads go and which middlewares guard which routes.
When:  Built once at application start-up; immutable afterwards.

Example:
    users = ResourceDescriptor(
        base_path="/api/users",
        controller=UserController(),          # or {"list": ..., "get": ...}
        validation={"create": validate_new_user},
        upload_config=UploadConfig(folder="public/avatars", file_field_names=["avatar"]),
        middlewares=[require_auth],
        per_route_middlewares={"delete": [require_admin]},
    )
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Optional, Sequence, Tuple

from trencher.middleware.upload import UploadConfig
from trencher.middleware.validation import Validator
from trencher.routing.chain import Handler, Middleware

CRUD_OPERATIONS = ("list", "get", "create", "update", "patch", "delete")
REQUIRED_OPERATIONS = ("list", "get", "create", "update", "delete")
VALIDATED_OPERATIONS = ("create", "update", "patch")


def _coerce_controller(controller: Any) -> Dict[str, Handler]:
    """Accept a mapping of operation → handler or an object with those methods."""
    handlers: Dict[str, Handler] = {}
    for operation in CRUD_OPERATIONS:
        if isinstance(controller, Mapping):
            handler = controller.get(operation)
        else:
            handler = getattr(controller, operation, None)
        if handler is not None:
            if not callable(handler):
                raise TypeError(f"Controller '{operation}' handler must be callable")
            handlers[operation] = handler
    if isinstance(controller, Mapping):
        unknown = set(controller) - set(CRUD_OPERATIONS)
        if unknown:
            raise ValueError(f"Unknown controller operation(s): {', '.join(sorted(unknown))}")
    return handlers


@dataclass(frozen=True)
class ResourceDescriptor:
    base_path: str
    controller: Any
    id_property_name: str = "id"
    validation: Mapping = field(default_factory=dict)
    upload_config: Optional[UploadConfig] = None
    middlewares: Sequence[Middleware] = ()
    per_route_middlewares: Mapping = field(default_factory=dict)

    def __post_init__(self):
        handlers = _coerce_controller(self.controller)
        missing = [op for op in REQUIRED_OPERATIONS if op not in handlers]
        if missing:
            raise ValueError(f"Controller is missing handler(s) for: {', '.join(missing)}")

        unknown = set(self.validation) - set(VALIDATED_OPERATIONS)
        if unknown:
            raise ValueError(
                f"Validation is only supported for {', '.join(VALIDATED_OPERATIONS)}; "
                f"got {', '.join(sorted(unknown))}"
            )
        unknown = set(self.per_route_middlewares) - set(CRUD_OPERATIONS)
        if unknown:
            raise ValueError(f"Unknown route(s) in per_route_middlewares: {', '.join(sorted(unknown))}")
        if not self.id_property_name.isidentifier():
            raise ValueError(f"id_property_name must be an identifier, got '{self.id_property_name}'")

        object.__setattr__(self, "controller", MappingProxyType(handlers))
        object.__setattr__(self, "validation", MappingProxyType(dict(self.validation)))
        object.__setattr__(self, "middlewares", tuple(self.middlewares))
        object.__setattr__(
            self,
            "per_route_middlewares",
            MappingProxyType({op: tuple(mws) for op, mws in self.per_route_middlewares.items()}),
        )

    @property
    def has_patch(self) -> bool:
        return "patch" in self.controller

    def handler_for(self, operation: str) -> Optional[Handler]:
        return self.controller.get(operation)

    def validator_for(self, operation: str) -> Optional[Validator]:
        return self.validation.get(operation)

    def route_middlewares_for(self, operation: str) -> Tuple[Middleware, ...]:
        return self.per_route_middlewares.get(operation, ())
