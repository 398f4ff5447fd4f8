"""
Trencher — Error Taxonomy
==========================

What:  A single tagged error type shared by the server and client halves of
       the library.
How:   Every failure is a ``TrencherError`` carrying a ``kind`` tag, a
       message, a numeric code, free-form metadata and an optional list of
       sub-errors. Callers dispatch on ``kind`` (or ``code``) instead of on
       subclasses.
Who:   Raised by the route chains (upload, validation), by the multipart
       pipeline and by the client request helpers. Translated to JSON
       responses by ``trencher.app.register_exception_handlers``.
When:  At the failure site; logged and either handled or re-raised.

Kinds and default codes:
    INTERNAL_SERVER       → 500
    INTERNAL_LIBRARY      → 500
    API                   → caller-supplied
    RESOURCE_NOT_FOUND    → 404
    FORBIDDEN             → 403
    ILLEGAL_REQUEST       → 451
    UNPROCESSABLE_ENTITY  → 422
    VALIDATION            → caller-supplied (400 when omitted)
    LOGIN                 → 401
    CUSTOM                → caller-supplied

Example:
    raise TrencherError.resource_not_found({"resource": "user", "id": 7})

    try:
        ...
    except TrencherError as exc:
        if exc.kind is ErrorKind.UNPROCESSABLE_ENTITY:
            show_form_errors(exc.errors)
"""

import inspect
import json
import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    """Tag identifying which variant of the taxonomy an error belongs to."""

    INTERNAL_SERVER = "internal_server"
    INTERNAL_LIBRARY = "internal_library"
    API = "api"
    RESOURCE_NOT_FOUND = "resource_not_found"
    FORBIDDEN = "forbidden"
    ILLEGAL_REQUEST = "illegal_request"
    UNPROCESSABLE_ENTITY = "unprocessable_entity"
    VALIDATION = "validation"
    LOGIN = "login"
    CUSTOM = "custom"


# ── Defaults per kind ─────────────────────────────────────────────────────
# None means the caller must supply the code.
DEFAULT_CODES: Dict[ErrorKind, Optional[int]] = {
    ErrorKind.INTERNAL_SERVER: 500,
    ErrorKind.INTERNAL_LIBRARY: 500,
    ErrorKind.API: None,
    ErrorKind.RESOURCE_NOT_FOUND: 404,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.ILLEGAL_REQUEST: 451,
    ErrorKind.UNPROCESSABLE_ENTITY: 422,
    ErrorKind.VALIDATION: 400,
    ErrorKind.LOGIN: 401,
    ErrorKind.CUSTOM: None,
}

DEFAULT_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.INTERNAL_SERVER: "Internal Server Error",
    ErrorKind.INTERNAL_LIBRARY: "Internal Trencher Error",
    ErrorKind.API: "API error",
    ErrorKind.RESOURCE_NOT_FOUND: "Resource not found",
    ErrorKind.FORBIDDEN: "Forbidden",
    ErrorKind.ILLEGAL_REQUEST: "Unavailable for legal reasons",
    ErrorKind.UNPROCESSABLE_ENTITY: "Unprocessable Entity",
    ErrorKind.VALIDATION: "Validation Error",
    ErrorKind.LOGIN: "Invalid credentials",
    ErrorKind.CUSTOM: "Trencher error",
}


class TrencherError(Exception):
    """
    Tagged error shared by every Trencher component.

    Attributes:
        kind:     Which variant of the taxonomy this is.
        message:  Human-readable description.
        code:     Numeric code (HTTP status for most kinds). Read-only.
        metadata: Caller-defined key/value pairs. Keys are not validated.
        errors:   Optional sub-errors (e.g. accumulated validation failures).

    Construct through the per-kind classmethods (``TrencherError.forbidden()``,
    ``TrencherError.api(502)``...) unless a custom kind/code pairing is needed.
    """

    def __init__(
        self,
        kind: Union[ErrorKind, str] = ErrorKind.CUSTOM,
        message: Optional[str] = None,
        code: Optional[int] = None,
        metadata: Optional[Mapping] = None,
        errors: Optional[Sequence[Any]] = None,
    ):
        kind = ErrorKind(kind)
        if metadata is not None and not isinstance(metadata, Mapping):
            raise TypeError("metadata must be a mapping")
        if code is None:
            code = DEFAULT_CODES[kind]
        if code is None:
            raise ValueError(f"A code is required for '{kind.value}' errors")

        self.kind = kind
        self.message = message or DEFAULT_MESSAGES[kind]
        self._code = int(code)
        self.metadata: Dict[str, Any] = dict(metadata or {})
        self.errors: Optional[List[Any]] = list(errors) if errors is not None else None
        super().__init__(self.message)

    # ── Per-kind constructors ─────────────────────────────────────────────

    @classmethod
    def internal_server(cls, metadata: Optional[Mapping] = None, message: Optional[str] = None) -> "TrencherError":
        return cls(ErrorKind.INTERNAL_SERVER, message, metadata=metadata)

    @classmethod
    def internal_library(cls, message: Optional[str] = None, metadata: Optional[Mapping] = None) -> "TrencherError":
        return cls(ErrorKind.INTERNAL_LIBRARY, message, metadata=metadata)

    @classmethod
    def api(cls, code: int, metadata: Optional[Mapping] = None, message: Optional[str] = None) -> "TrencherError":
        return cls(ErrorKind.API, message, code=code, metadata=metadata)

    @classmethod
    def resource_not_found(cls, metadata: Optional[Mapping] = None) -> "TrencherError":
        return cls(ErrorKind.RESOURCE_NOT_FOUND, metadata=metadata)

    @classmethod
    def forbidden(cls, metadata: Optional[Mapping] = None) -> "TrencherError":
        return cls(ErrorKind.FORBIDDEN, metadata=metadata)

    @classmethod
    def illegal_request(cls, metadata: Optional[Mapping] = None) -> "TrencherError":
        return cls(ErrorKind.ILLEGAL_REQUEST, metadata=metadata)

    @classmethod
    def unprocessable_entity(
        cls, metadata: Optional[Mapping] = None, errors: Optional[Sequence[Any]] = None
    ) -> "TrencherError":
        return cls(ErrorKind.UNPROCESSABLE_ENTITY, metadata=metadata, errors=errors or [])

    @classmethod
    def validation(
        cls,
        code: Optional[int] = None,
        metadata: Optional[Mapping] = None,
        errors: Optional[Sequence[Any]] = None,
    ) -> "TrencherError":
        return cls(ErrorKind.VALIDATION, code=code, metadata=metadata, errors=errors)

    @classmethod
    def login(cls, metadata: Optional[Mapping] = None, errors: Optional[Sequence[Any]] = None) -> "TrencherError":
        return cls(ErrorKind.LOGIN, metadata=metadata, errors=errors)

    @classmethod
    def custom(cls, message: str, code: int, metadata: Optional[Mapping] = None) -> "TrencherError":
        return cls(ErrorKind.CUSTOM, message, code=code, metadata=metadata)

    # ── Accessors ─────────────────────────────────────────────────────────

    @property
    def code(self) -> int:
        return self._code

    @property
    def http_status(self) -> int:
        """The code when it is a usable HTTP status, 500 otherwise."""
        if 100 <= self._code <= 599:
            return self._code
        return 500

    def add_property(self, key: str, value: Any) -> None:
        self.metadata[key] = value

    def remove_property(self, key: str) -> None:
        self.metadata.pop(key, None)

    def get_additional_properties(self) -> Dict[str, Any]:
        return self.metadata

    def has_additional_properties(self) -> bool:
        return bool(self.metadata)

    def to_dict(self) -> Dict[str, Any]:
        """JSON-safe representation used in HTTP error responses."""
        body: Dict[str, Any] = {
            "error": self.kind.value,
            "message": self.message,
            "code": self._code,
            "details": self.metadata,
        }
        if self.errors is not None:
            body["errors"] = self.errors
        return body

    def __repr__(self) -> str:
        return f"TrencherError(kind={self.kind.value!r}, code={self._code}, message={self.message!r})"


def as_trencher_error(error: BaseException) -> TrencherError:
    """
    Wrap an arbitrary exception in the taxonomy.

    TrencherErrors pass through untouched; anything else becomes an
    INTERNAL_LIBRARY error whose metadata records the original type.
    """
    if isinstance(error, TrencherError):
        return error
    wrapped = TrencherError.internal_library(
        message=str(error) or type(error).__name__,
        metadata={"exception": type(error).__name__},
    )
    wrapped.__cause__ = error
    return wrapped


def print_error(error: TrencherError) -> None:
    """Log an error as ``<code> <message>: <metadata> <errors>``."""
    details = f": {json.dumps(error.metadata, default=str)}" if error.has_additional_properties() else ""
    errors = f": {json.dumps(error.errors, default=str)}" if error.errors else ""
    logger.error("%s %s%s %s", error.code, error.message, details, errors)


ErrorHandler = Callable[[TrencherError], Union[Any, Awaitable[Any]]]


async def handle_error(error: BaseException, custom_error_handler: Optional[ErrorHandler] = None) -> Any:
    """
    Log a failure, then delegate it or re-raise it.

    With a ``custom_error_handler`` the (possibly async) handler receives the
    error and its return value is returned to the caller, so it may swallow
    or transform the failure. Without one the error is raised.
    """
    trencher_error = as_trencher_error(error)
    print_error(trencher_error)
    if custom_error_handler is None:
        if trencher_error is error:
            raise trencher_error
        raise trencher_error from error

    result = custom_error_handler(trencher_error)
    if inspect.isawaitable(result):
        result = await result
    return result
