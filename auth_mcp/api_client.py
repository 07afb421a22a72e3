"""
HTTP access to the auth service and its OpenAPI description.

`ApiClient.execute` is the single entry point tool calls go through. It maps
the outcome of an HTTP exchange onto the error taxonomy:

    2xx/3xx         -> ApiResponse(status_code, body)
    4xx/5xx         -> RemoteFailure(status_code, <service message>)
    no response     -> NetworkFailure
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

import httpx

from auth_mcp.errors import CatalogUnavailable, NetworkFailure, RemoteFailure

logger = logging.getLogger("auth-mcp.api")

QUERY_METHODS = ("GET",)
BODY_METHODS = ("POST", "PUT", "PATCH", "DELETE")


@dataclass(frozen=True)
class ApiResponse:
    status_code: int
    body: Any


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        return response.text


def _error_detail(response: httpx.Response, body: Any) -> str:
    if isinstance(body, dict):
        for key in ("message", "error"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, list) and value:
                return "; ".join(str(item) for item in value)
    return response.reason_phrase or f"HTTP {response.status_code}"


class ApiClient:
    """
    Async client for the auth service.

    One httpx.AsyncClient is kept for the life of the process so connections
    to the service are reused across tool calls. Use as an async context
    manager or call `aclose()` on shutdown.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            transport=transport,
        )

    async def __aenter__(self) -> "ApiClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def execute(
        self,
        method: str,
        path: str,
        params: dict[str, Any],
        token: str | None = None,
    ) -> ApiResponse:
        """
        Perform one call against the auth service.

        GET sends `params` as the query string. POST, PUT and PATCH send them
        as the JSON body; DELETE does too when there is anything to send.

        Args:
            method: HTTP verb (any case)
            path: Already-expanded request path, relative to the base URL
            params: Remaining tool arguments
            token: Bearer token for the Authorization header, if any

        Raises:
            RemoteFailure: The service answered with status >= 400
            NetworkFailure: No response was received
            ValueError: Unsupported HTTP verb
        """
        verb = method.upper()
        headers = {"Authorization": f"Bearer {token}"} if token else None

        if verb in QUERY_METHODS:
            request_kwargs: dict[str, Any] = {"params": params}
        elif verb in BODY_METHODS:
            request_kwargs = {"json": params} if params or verb != "DELETE" else {}
        else:
            raise ValueError(f"Unsupported HTTP method: {method}")

        try:
            response = await self._client.request(verb, path, headers=headers, **request_kwargs)
        except httpx.HTTPError as exc:
            logger.warning(
                "Auth service unreachable",
                extra={"auth_data": {"method": verb, "path": path, "error": str(exc)}},
            )
            raise NetworkFailure(str(exc) or exc.__class__.__name__) from exc

        body = _decode_body(response)
        logger.debug(
            "Auth service responded",
            extra={"auth_data": {"method": verb, "path": path, "status": response.status_code}},
        )

        if response.is_error:
            raise RemoteFailure(response.status_code, _error_detail(response, body))
        return ApiResponse(status_code=response.status_code, body=body)


async def fetch_document(
    url: str,
    timeout: float = 10.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> Any:
    """
    Download and decode a JSON document (the OpenAPI description).

    Raises:
        CatalogUnavailable: On any transport error, error status or invalid JSON
    """
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(url, headers={"Accept": "application/json"})
            response.raise_for_status()
            return response.json()
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        raise CatalogUnavailable(f"Failed to fetch API description: {exc}") from exc
    except ValueError as exc:
        raise CatalogUnavailable(f"API description is not valid JSON: {exc}") from exc
