"""
Trencher — Middleware Chains
==============================

What:  An explicit, ordered list of named stages ending in one controller
       handler, and the pure function that builds it.
How:   ``build_chain()`` lays stages out in the fixed order

           [global middlewares…, route middlewares…, upload?, validate?, handle]

       and ``MiddlewareChain.__call__`` runs them: each middleware receives
       ``(ctx, call_next)`` and may return early (short-circuit) or raise;
       the handler receives ``(ctx)``.
Who:   Built by the route engine, executed by a dispatcher adapter.

Stage signatures:
    middleware:  async def auth(ctx, call_next) -> Any
    handler:     async def create_user(ctx) -> Any
    Both may also be plain (sync) functions.
"""

import inspect
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Sequence, Tuple

from trencher.middleware.upload import UploadConfig, configure_upload
from trencher.middleware.validation import Validator, validation_gate
from trencher.routing.context import RequestContext

CallNext = Callable[[], Awaitable[Any]]
Middleware = Callable[[RequestContext, CallNext], Any]
Handler = Callable[[RequestContext], Any]


class StageKind(str, Enum):
    MIDDLEWARE = "middleware"
    UPLOAD = "upload"
    VALIDATE = "validate"
    HANDLE = "handle"


# Position of each kind in a chain; middlewares may repeat, the rest may not.
_STAGE_ORDER = {
    StageKind.MIDDLEWARE: 0,
    StageKind.UPLOAD: 1,
    StageKind.VALIDATE: 2,
    StageKind.HANDLE: 3,
}


@dataclass(frozen=True)
class Stage:
    name: str
    kind: StageKind
    func: Callable


def _callable_name(func: Callable) -> str:
    return getattr(func, "__qualname__", None) or getattr(func, "__name__", None) or type(func).__name__


async def _resolve(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


@dataclass(frozen=True)
class MiddlewareChain:
    """Immutable, ordered stage list ending in exactly one handler."""

    stages: Tuple[Stage, ...]

    def __post_init__(self):
        if not self.stages or self.stages[-1].kind is not StageKind.HANDLE:
            raise ValueError("A middleware chain must end in a handler stage")
        kinds = [stage.kind for stage in self.stages]
        if kinds.count(StageKind.HANDLE) != 1:
            raise ValueError("A middleware chain must contain exactly one handler stage")
        for kind in (StageKind.UPLOAD, StageKind.VALIDATE):
            if kinds.count(kind) > 1:
                raise ValueError(f"A middleware chain may contain at most one {kind.value} stage")
        positions = [_STAGE_ORDER[kind] for kind in kinds]
        if positions != sorted(positions):
            raise ValueError(
                "Stages must be ordered middlewares → upload → validate → handle, got "
                + " → ".join(kind.value for kind in kinds)
            )

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(stage.name for stage in self.stages)

    @property
    def kinds(self) -> Tuple[StageKind, ...]:
        return tuple(stage.kind for stage in self.stages)

    @property
    def handler(self) -> Handler:
        return self.stages[-1].func

    async def __call__(self, ctx: RequestContext) -> Any:
        async def dispatch(index: int) -> Any:
            stage = self.stages[index]
            if stage.kind is StageKind.HANDLE:
                return await _resolve(stage.func(ctx))

            async def call_next() -> Any:
                return await dispatch(index + 1)

            return await _resolve(stage.func(ctx, call_next))

        return await dispatch(0)


def build_chain(
    handler: Handler,
    middlewares: Sequence[Middleware] = (),
    route_middlewares: Sequence[Middleware] = (),
    validation: Optional[Validator] = None,
    upload_config: Optional[UploadConfig] = None,
    gated: bool = True,
) -> MiddlewareChain:
    """
    Lay out a chain for one route.

    Args:
        handler:           Terminal controller handler.
        middlewares:       Global middlewares, run first.
        route_middlewares: Middlewares specific to this route.
        validation:        Optional validator for the validation gate.
        upload_config:     Upload stage is added iff it names file fields.
        gated:             Whether the route has a validation gate at all
                           (write routes do, read/delete routes do not).
    """
    if handler is None:
        raise ValueError("A handler is required to build a chain")

    stages = [
        Stage(f"middleware:{_callable_name(mw)}", StageKind.MIDDLEWARE, mw)
        for mw in (*middlewares, *route_middlewares)
    ]
    if upload_config is not None and upload_config.enabled:
        stages.append(Stage("upload", StageKind.UPLOAD, configure_upload(upload_config)))
    if gated:
        stages.append(Stage("validate", StageKind.VALIDATE, validation_gate(validation)))
    stages.append(Stage(f"handle:{_callable_name(handler)}", StageKind.HANDLE, handler))
    return MiddlewareChain(tuple(stages))
