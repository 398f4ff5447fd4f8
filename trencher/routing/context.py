"""
Trencher — Request Context
============================

What:  The per-request object every stage of a middleware chain receives.
How:   Wraps the Starlette ``Request`` and carries what earlier stages
       produced for later ones: parsed body fields, stored upload
       descriptors and the validation accumulator.
When:  Created by the dispatcher for each incoming request, discarded when
       the response has been produced.
"""

import json
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from starlette.datastructures import FormData, UploadFile
from starlette.requests import Request

from trencher.exceptions import TrencherError
from trencher.middleware.validation import ValidationAccumulator

if TYPE_CHECKING:
    from trencher.middleware.upload import UploadedFileDescriptor

FORM_CONTENT_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


class RequestContext:
    """
    Request-scoped state shared along a ``MiddlewareChain``.

    Attributes:
        request:      The underlying Starlette request.
        path_params:  Route parameters (e.g. ``{"id": "42"}``).
        data:         Plain body fields, filled by ``load_body()`` or the upload stage.
        files:        Stored uploads keyed by form field name.
        validation:   Accumulator consumed by the validation gate.
        state:        Free slot for middlewares (authenticated user, etc.).
        status_code:  Status used when the handler returns plain data.
    """

    def __init__(self, request: Request):
        self.request = request
        self.path_params: Dict[str, Any] = dict(request.path_params)
        self.data: Dict[str, Any] = {}
        self.files: Dict[str, List["UploadedFileDescriptor"]] = {}
        self.validation = ValidationAccumulator()
        self.state: Dict[str, Any] = {}
        self.status_code: int = 200
        self._form: Optional[FormData] = None
        self._body_loaded = False

    @property
    def method(self) -> str:
        return self.request.method

    @property
    def path(self) -> str:
        return self.request.url.path

    @property
    def content_type(self) -> str:
        return self.request.headers.get("content-type", "").split(";")[0].strip().lower()

    @property
    def is_form(self) -> bool:
        return self.content_type in FORM_CONTENT_TYPES

    @property
    def is_multipart(self) -> bool:
        return self.content_type == "multipart/form-data"

    async def form(self) -> FormData:
        """Parse (once) and return the form body."""
        if self._form is None:
            self._form = await self.request.form()
        return self._form

    async def load_body(self) -> Dict[str, Any]:
        """
        Parse the request body into ``data`` (idempotent).

        JSON objects are merged as-is, non-object JSON lands under ``"body"``.
        Form bodies contribute their plain fields only; file parts are the
        upload stage's business. Fields already present in ``data`` win.

        Raises:
            TrencherError (VALIDATION, 400): the JSON body does not parse.
        """
        if self._body_loaded:
            return self.data
        self._body_loaded = True

        parsed: Dict[str, Any] = {}
        if self.is_form:
            form = await self.form()
            for key, value in form.multi_items():
                if not isinstance(value, UploadFile):
                    parsed[key] = value
        elif self.content_type == "application/json":
            raw = await self.request.body()
            if raw:
                try:
                    body = json.loads(raw)
                except ValueError as e:
                    raise TrencherError.validation(
                        metadata={"method": self.method, "path": self.path},
                        errors=[{"message": "Malformed JSON body", "location": "body"}],
                    ) from e
                parsed = body if isinstance(body, dict) else {"body": body}

        for key, value in parsed.items():
            self.data.setdefault(key, value)
        return self.data

    async def close(self) -> None:
        """Release temporary files held by a parsed multipart body."""
        if self._form is not None:
            await self._form.close()
