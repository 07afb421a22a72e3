"""
Tool catalog: OpenAPI operations turned into MCP tool definitions.

Every (verb, path) pair in the auth service's OpenAPI description becomes one
tool. The tool's name is synthesized from the verb and path:

    POST /auth/signin          -> post_auth_signin
    GET  /users/{id}/roles     -> get_users_id_roles
    GET  /2fa/status           -> get_2fa_status
    GET  /v1.2/health          -> get_v1_2_health

The catalog is built once per process by CatalogLoader. If the description
cannot be fetched, cannot be parsed, or contains no operations, the loader
serves FALLBACK_CATALOG instead: six hand-written tools matching the classic
/auth/* endpoints, so a client always sees something callable.
"""

import asyncio
import logging
import re
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from typing import Any

from mcp.types import Tool

from auth_mcp.errors import CatalogUnavailable
from auth_mcp.schema import resolve_argument_schema

logger = logging.getLogger("auth-mcp.tools")

HTTP_METHODS = ("get", "post", "put", "patch", "delete")

_INVALID_NAME_CHARS = re.compile(r"[^A-Za-z0-9_]")


@dataclass(frozen=True)
class ToolDefinition:
    """
    One invocable tool.

    Attributes:
        name: Unique identifier within the catalog ([A-Za-z_][A-Za-z0-9_]*)
        description: Human-readable summary shown to the model
        input_schema: Object schema with `properties` and `required`
        path: Path template, may contain {param} placeholders
        method: Upper-case HTTP verb
        operation_id: The OpenAPI operationId, when the document has one
    """

    name: str
    description: str
    input_schema: dict[str, Any]
    path: str
    method: str
    operation_id: str | None = field(default=None, compare=False)

    def to_wire(self) -> Tool:
        """The MCP `tools/list` shape: name, description, inputSchema."""
        return Tool(name=self.name, description=self.description, inputSchema=self.input_schema)


def synthesize_tool_name(method: str, path: str) -> str:
    """
    Derive a tool name from an HTTP verb and a path template.

    The verb/path join happens before sanitizing: braces are deleted
    outright, so "/users/{id}" gives "users_id" rather than "users__id_".
    """
    clean_path = path[1:] if path.startswith("/") else path
    clean_path = clean_path.replace("{", "").replace("}", "").replace("/", "_")
    name = f"{method.lower()}_{clean_path}"

    name = _INVALID_NAME_CHARS.sub("_", name)
    if name[:1].isdigit():
        name = f"_{name}"
    return name


def _unique_name(name: str, taken: set[str]) -> str:
    if name not in taken:
        return name
    suffix = 2
    while f"{name}_{suffix}" in taken:
        suffix += 1
    return f"{name}_{suffix}"


def build_catalog(description: Any) -> list[ToolDefinition]:
    """
    Build the tool list for an OpenAPI description.

    Operations are emitted in document order. Keys under a path item other
    than the five supported verbs (parameters, summary, servers, head,
    options, ...) are ignored. A name that collides with an earlier tool is
    suffixed with _2, _3, ...

    Returns an empty list for a description without a usable `paths` object;
    the loader treats that as "no catalog".
    """
    if not isinstance(description, dict):
        return []
    paths = description.get("paths")
    if not isinstance(paths, dict):
        return []
    components = description.get("components")
    if not isinstance(components, dict):
        components = {}

    tools: list[ToolDefinition] = []
    taken: set[str] = set()

    for path, path_item in paths.items():
        if not isinstance(path_item, dict):
            continue
        for method, operation in path_item.items():
            if not isinstance(method, str) or method.lower() not in HTTP_METHODS:
                continue
            if not isinstance(operation, dict):
                continue

            base_name = synthesize_tool_name(method, path)
            name = _unique_name(base_name, taken)
            if name != base_name:
                logger.warning(
                    "Tool name collision, renamed",
                    extra={"auth_data": {"tool": base_name, "renamed_to": name, "path": path}},
                )
            taken.add(name)

            tools.append(
                ToolDefinition(
                    name=name,
                    description=(
                        operation.get("summary")
                        or operation.get("description")
                        or f"Call {method.upper()} on {path}"
                    ),
                    input_schema=resolve_argument_schema(operation, components),
                    path=path,
                    method=method.upper(),
                    operation_id=operation.get("operationId"),
                )
            )

    return tools


def _string_property(description: str) -> dict[str, str]:
    return {"type": "string", "description": description}


# Served whenever the OpenAPI description is unavailable. Paths follow the
# classic /auth/* layout of the service.
FALLBACK_CATALOG: tuple[ToolDefinition, ...] = (
    ToolDefinition(
        name="authenticate_user",
        description="Authenticate a user with username and password",
        input_schema={
            "type": "object",
            "properties": {
                "username": _string_property("The user's username"),
                "password": _string_property("The user's password"),
            },
            "required": ["username", "password"],
        },
        path="/auth/login",
        method="POST",
    ),
    ToolDefinition(
        name="validate_token",
        description="Validate an authentication token",
        input_schema={
            "type": "object",
            "properties": {
                "token": _string_property(
                    "The authentication token to validate (defaults to the current session token)"
                ),
            },
            "required": [],
        },
        path="/auth/validate",
        method="GET",
    ),
    ToolDefinition(
        name="register_user",
        description="Register a new user",
        input_schema={
            "type": "object",
            "properties": {
                "username": _string_property("The user's desired username"),
                "email": _string_property("The user's email address"),
                "password": _string_property("The user's password"),
            },
            "required": ["username", "email", "password"],
        },
        path="/auth/register",
        method="POST",
    ),
    ToolDefinition(
        name="logout_user",
        description="Log out the current session",
        input_schema={"type": "object", "properties": {}, "required": []},
        path="/auth/logout",
        method="POST",
    ),
    ToolDefinition(
        name="check_permission",
        description="Check if the signed-in user has a specific permission",
        input_schema={
            "type": "object",
            "properties": {
                "permission": _string_property("The permission to check"),
            },
            "required": ["permission"],
        },
        path="/auth/permission/{permission}",
        method="GET",
    ),
    ToolDefinition(
        name="get_user_roles",
        description="Get the roles of the signed-in user",
        input_schema={"type": "object", "properties": {}, "required": []},
        path="/auth/roles",
        method="GET",
    ),
)


DocumentFetcher = Callable[[str], Awaitable[Any]]


class CatalogLoader:
    """
    Loads the tool catalog exactly once and hands the result to every caller.

    `start()` schedules the load in the background (call it at startup so
    the fetch overlaps with the client's initialize handshake); `get()`
    awaits the same task from any number of requests. The task always
    completes with a non-empty catalog: failures resolve to the fallback.
    """

    def __init__(self, description_url: str | None, fetch: DocumentFetcher):
        self._description_url = description_url
        self._fetch = fetch
        self._task: asyncio.Task[list[ToolDefinition]] | None = None
        self._by_name: dict[str, ToolDefinition] = {}

    def start(self) -> "asyncio.Task[list[ToolDefinition]]":
        if self._task is None:
            self._task = asyncio.get_running_loop().create_task(self._load())
        return self._task

    async def get(self) -> list[ToolDefinition]:
        # shield: a cancelled request must not cancel the shared load
        return await asyncio.shield(self.start())

    async def lookup(self, name: str) -> ToolDefinition | None:
        await self.get()
        return self._by_name.get(name)

    async def _load(self) -> list[ToolDefinition]:
        tools = await self._load_from_description()
        if tools is None:
            tools = list(FALLBACK_CATALOG)
        self._by_name = _index(tools)
        return tools

    async def _load_from_description(self) -> list[ToolDefinition] | None:
        if not self._description_url:
            logger.info("No API description configured, using fallback catalog")
            return None

        try:
            description = await self._fetch(self._description_url)
        except CatalogUnavailable as exc:
            logger.warning(
                "API description unavailable, using fallback catalog",
                extra={"auth_data": {"url": self._description_url, "reason": exc.message}},
            )
            return None
        except Exception:
            logger.exception(
                "Failed to fetch API description, using fallback catalog",
                extra={"auth_data": {"url": self._description_url}},
            )
            return None

        try:
            tools = build_catalog(description)
        except Exception:
            logger.exception(
                "Failed to build catalog from API description, using fallback catalog",
                extra={"auth_data": {"url": self._description_url}},
            )
            return None

        if not tools:
            logger.warning(
                "API description has no operations, using fallback catalog",
                extra={"auth_data": {"url": self._description_url}},
            )
            return None

        logger.info(
            "Loaded tools from API description",
            extra={"auth_data": {"url": self._description_url, "tool_count": len(tools)}},
        )
        return tools


def _index(tools: Iterable[ToolDefinition]) -> dict[str, ToolDefinition]:
    return {tool.name: tool for tool in tools}
