"""
Trencher — Client Request Helpers
===================================

What:  Small async HTTP helpers (GET/POST/PUT/PATCH/DELETE) with a
       configurable base URL and pluggable failure handling.
How:   httpx does the transport. Each helper owns a ``ClientConfig``
       (base URL, timeout, platform); ``set_base_url`` changes it for every
       later call made through that helper.

Two flavours:
    ApiRequestsHelper           "fetch" style. Bodies are sent as given
                                (mapping → JSON). The response body is
                                parsed whatever the status code.
    MultipartApiRequestsHelper  "axios" style. POST/PUT/PATCH bodies go
                                through ``prepare_data`` first; non-2xx
                                responses become API errors.

Failure handling:
    Any transport, status or parsing failure is logged, then passed to the
    call's ``custom_error_handler`` (whose return value becomes the call's
    result) or raised as a ``TrencherError`` when no handler was given.

Example:
    client = ApiRequestsHelper(ClientConfig(base_url="https://api.example.com"))
    users = await client.get("/users")
    await client.post("users", {"name": "Ada"}, custom_error_handler=show_toast)
"""

import logging
from typing import Any, Dict, Mapping, Optional, Union

import httpx
from pydantic import BaseModel, Field

from trencher.client.multipart import PreparedRequestPayload, prepare_data
from trencher.client.urls import build_full_url
from trencher.config import Platform, settings
from trencher.exceptions import ErrorHandler, TrencherError, handle_error

logger = logging.getLogger(__name__)

JSON_BODY_TYPES = (Mapping, list, tuple)


class ClientConfig(BaseModel):
    """Per-helper client configuration (defaults come from ``settings``)."""

    base_url: Optional[str] = Field(default_factory=lambda: settings.api_base_url)
    timeout: float = Field(default_factory=lambda: settings.request_timeout, gt=0)
    platform: Platform = Field(default_factory=lambda: settings.client_platform)
    headers: Dict[str, str] = Field(default_factory=dict)

    model_config = {"validate_assignment": True}


def _status_error(response: httpx.Response) -> TrencherError:
    return TrencherError.api(
        response.status_code,
        metadata={
            "method": response.request.method,
            "url": str(response.request.url),
            "reason": response.reason_phrase,
        },
        message=f"API error: {response.status_code} {response.reason_phrase}",
    )


def _transport_error(error: httpx.RequestError, url: str) -> TrencherError:
    wrapped = TrencherError.api(
        503,
        metadata={"url": url, "exception": type(error).__name__},
        message=f"Request failed: {error}",
    )
    wrapped.__cause__ = error
    return wrapped


class ApiRequestsHelper:
    """
    fetch-style helper: the body is returned whatever the status code.

    Args:
        config:    Client configuration; a fresh default one when omitted.
        transport: Optional httpx transport (``httpx.MockTransport`` in tests).
    """

    raise_for_status = False

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config or ClientConfig()
        self.transport = transport

    # ── Configuration ─────────────────────────────────────────────────────

    def set_base_url(self, base_url: Optional[str]) -> None:
        self.config.base_url = base_url

    def build_url(self, route: str) -> str:
        return build_full_url(self.config.base_url, route)

    # ── Transport ─────────────────────────────────────────────────────────

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            transport=self.transport,
            timeout=self.config.timeout,
            headers=self.config.headers,
        )

    def _body_kwargs(self, data: Any) -> Dict[str, Any]:
        if data is None:
            return {}
        if isinstance(data, PreparedRequestPayload):
            return data.consume()
        if isinstance(data, (str, bytes)):
            return {"content": data}
        if isinstance(data, JSON_BODY_TYPES):
            return {"json": data}
        raise TrencherError.internal_library(
            message=f"Unsupported request body type: {type(data).__name__}"
        )

    @staticmethod
    def _parse(response: httpx.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise TrencherError.internal_library(
                message="Response body is not valid JSON.",
                metadata={"status": response.status_code, "url": str(response.request.url)},
            ) from e

    async def request(
        self,
        method: str,
        route: str,
        data: Any = None,
        custom_error_handler: Optional[ErrorHandler] = None,
    ) -> Any:
        """Send one request and return the parsed body (or the handler's result)."""
        url = self.build_url(route)
        try:
            body = self._body_kwargs(data)
            async with self._client() as client:
                response = await client.request(method, url, **body)
            logger.debug("%s %s → %d", method, url, response.status_code)
            if self.raise_for_status and response.is_error:
                raise _status_error(response)
            return self._parse(response)
        except httpx.RequestError as e:
            return await handle_error(_transport_error(e, url), custom_error_handler)
        except (TrencherError, OSError) as e:
            return await handle_error(e, custom_error_handler)

    # ── Verbs ─────────────────────────────────────────────────────────────

    async def get(self, route: str, custom_error_handler: Optional[ErrorHandler] = None) -> Any:
        return await self.request("GET", route, custom_error_handler=custom_error_handler)

    async def post(self, route: str, data: Any = None, custom_error_handler: Optional[ErrorHandler] = None) -> Any:
        return await self.request("POST", route, data, custom_error_handler)

    async def put(self, route: str, data: Any = None, custom_error_handler: Optional[ErrorHandler] = None) -> Any:
        return await self.request("PUT", route, data, custom_error_handler)

    async def patch(self, route: str, data: Any = None, custom_error_handler: Optional[ErrorHandler] = None) -> Any:
        return await self.request("PATCH", route, data, custom_error_handler)

    async def destroy(self, route: str, custom_error_handler: Optional[ErrorHandler] = None) -> Any:
        return await self.request("DELETE", route, custom_error_handler=custom_error_handler)


class MultipartApiRequestsHelper(ApiRequestsHelper):
    """
    axios-style helper: write bodies are sent as multipart forms and error
    statuses raise API errors carrying the status as ``code``.
    """

    raise_for_status = True

    def _prepare(self, data: Optional[Union[Mapping, PreparedRequestPayload]]) -> PreparedRequestPayload:
        if isinstance(data, PreparedRequestPayload):
            return data
        return prepare_data(data, self.config.platform)

    async def _send_prepared(
        self,
        method: str,
        route: str,
        data: Any,
        custom_error_handler: Optional[ErrorHandler],
    ) -> Any:
        try:
            prepared = self._prepare(data)
        except TrencherError as e:
            return await handle_error(e, custom_error_handler)
        return await self.request(method, route, prepared, custom_error_handler)

    async def post(self, route: str, data: Any = None, custom_error_handler: Optional[ErrorHandler] = None) -> Any:
        return await self._send_prepared("POST", route, data, custom_error_handler)

    async def put(self, route: str, data: Any = None, custom_error_handler: Optional[ErrorHandler] = None) -> Any:
        return await self._send_prepared("PUT", route, data, custom_error_handler)

    async def patch(self, route: str, data: Any = None, custom_error_handler: Optional[ErrorHandler] = None) -> Any:
        return await self._send_prepared("PATCH", route, data, custom_error_handler)
