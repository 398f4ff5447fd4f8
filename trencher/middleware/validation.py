"""
Trencher — Validation Gate
============================

What:  The stage that runs a resource's validator and stops the chain when
       it recorded any failure.
How:   Validators append entries to the request-scoped
       ``ValidationAccumulator`` (``ctx.validation.add(...)``). The gate then
       flushes: one or more entries → a single UNPROCESSABLE_ENTITY
       ``TrencherError`` (422) carrying all of them; the terminal handler
       never runs.
When:  After the upload stage, immediately before the controller handler.

Accumulator contract:
    An error counts as "recorded" iff ``add()`` (or ``extend()``) was called
    for it during the current request. Nothing else is inspected.

Example validator:
    def validate_user(ctx):
        if not ctx.data.get("email"):
            ctx.validation.add("Email is required", field="email")
"""

import inspect
import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Iterable, List, Optional, Union

from trencher.exceptions import TrencherError

if TYPE_CHECKING:
    from trencher.routing.context import RequestContext

logger = logging.getLogger(__name__)

Validator = Callable[["RequestContext"], Union[None, Awaitable[None]]]

_UNSET = object()


class ValidationAccumulator:
    """Ordered, request-scoped list of validation failures."""

    def __init__(self):
        self._errors: List[Dict[str, Any]] = []

    def add(
        self,
        message: str,
        field: Optional[str] = None,
        value: Any = _UNSET,
        location: str = "body",
    ) -> None:
        entry: Dict[str, Any] = {"message": message, "location": location}
        if field is not None:
            entry["field"] = field
        if value is not _UNSET:
            entry["value"] = value
        self._errors.append(entry)

    def extend(self, entries: Iterable[Dict[str, Any]]) -> None:
        for entry in entries:
            self.add(
                entry["message"],
                field=entry.get("field"),
                value=entry.get("value", _UNSET),
                location=entry.get("location", "body"),
            )

    @property
    def errors(self) -> List[Dict[str, Any]]:
        return [dict(entry) for entry in self._errors]

    @property
    def has_errors(self) -> bool:
        return bool(self._errors)

    def clear(self) -> None:
        self._errors.clear()

    def __len__(self) -> int:
        return len(self._errors)


def flush_validation_errors(ctx: "RequestContext") -> None:
    """Raise the accumulated failures as one 422 error, if there are any."""
    if not ctx.validation.has_errors:
        return
    errors = ctx.validation.errors
    logger.info(
        "Validation rejected %s %s with %d error(s)", ctx.method, ctx.path, len(errors)
    )
    raise TrencherError.unprocessable_entity(
        metadata={"method": ctx.method, "path": ctx.path},
        errors=errors,
    )


def validation_gate(validator: Optional[Validator] = None):
    """
    Build the validation stage for a chain.

    Without a validator only the flush runs, so failures recorded by earlier
    middlewares still stop the request.
    """

    async def gate(ctx: "RequestContext", call_next):
        await ctx.load_body()
        if validator is not None:
            result = validator(ctx)
            if inspect.isawaitable(result):
                await result
        flush_validation_errors(ctx)
        return await call_next()

    gate.validator = validator
    return gate
