"""
Call routing: which tool calls need, create or destroy the session.

Every tool call is classified by looking for marker words in its tool name
and path (case-insensitive), first match in CLASSIFICATION_MARKERS wins:

    LOGIN      post_auth_signin, /auth/login        -> result token is stored
    LOGOUT     post_auth_signout, /auth/logout      -> session cleared afterwards
    PUBLIC     /health, /auth/register, /verify-otp -> no session needed
    PROTECTED  everything else                      -> valid session required

A protected call that carries an explicit `token` argument goes through
without a session; the supplied token is sent instead.

The marker table is product configuration, not derived from the API: an
endpoint that is public but matches no marker must be added here, otherwise
it is treated as protected.

A 401 from the service on any call clears the session, whatever the
classification, because it means the stored token is no longer accepted.
"""

import enum
import logging
import re
import uuid
from collections.abc import Awaitable
from typing import Any, Protocol
from urllib.parse import quote

from auth_mcp.api_client import ApiResponse
from auth_mcp.auth import CredentialSession, SessionState
from auth_mcp.errors import AuthenticationRequired, RemoteFailure
from auth_mcp.tools import ToolDefinition

logger = logging.getLogger("auth-mcp.router")


class CallClass(str, enum.Enum):
    LOGIN = "login"
    LOGOUT = "logout"
    PUBLIC = "public"
    PROTECTED = "protected"


# (marker, classification), checked in order against the words of
# "<tool name> <path>". Words are split on any non-alphanumeric character, so
# "sign-in" also matches "sign_in" and "/sign/in", and a marker only matches
# whole words ("register" does not match "deregister").
CLASSIFICATION_MARKERS: tuple[tuple[str, CallClass], ...] = (
    ("signin", CallClass.LOGIN),
    ("sign-in", CallClass.LOGIN),
    ("login", CallClass.LOGIN),
    ("authenticate", CallClass.LOGIN),
    ("signout", CallClass.LOGOUT),
    ("sign-out", CallClass.LOGOUT),
    ("logout", CallClass.LOGOUT),
    ("health", CallClass.PUBLIC),
    ("healthcheck", CallClass.PUBLIC),
    ("signup", CallClass.PUBLIC),
    ("sign-up", CallClass.PUBLIC),
    ("register", CallClass.PUBLIC),
    ("forgot", CallClass.PUBLIC),
    ("forgotpassword", CallClass.PUBLIC),
    ("reset-password", CallClass.PUBLIC),
    ("resetpassword", CallClass.PUBLIC),
    ("send-otp", CallClass.PUBLIC),
    ("sendotp", CallClass.PUBLIC),
    ("verify-otp", CallClass.PUBLIC),
    ("verifyotp", CallClass.PUBLIC),
    ("resend-otp", CallClass.PUBLIC),
    ("resendotp", CallClass.PUBLIC),
)

# Arguments that carry credentials. They are never forwarded as parameters;
# an explicit `token` argument replaces the session token for that call and
# lets a protected call through without a session.
CREDENTIAL_ARGUMENTS = ("token", "authorization")

_PLACEHOLDER = re.compile(r"\{([^{}]+)\}")
_WORD_SEPARATOR = re.compile(r"[^a-z0-9]+")


def _words(text: str) -> tuple[str, ...]:
    return tuple(word for word in _WORD_SEPARATOR.split(text.lower()) if word)


def classify(
    tool_name: str,
    path: str,
    markers: tuple[tuple[str, CallClass], ...] = CLASSIFICATION_MARKERS,
) -> CallClass:
    """Classify a call by the first marker found in its tool name or path."""
    words = _words(f"{tool_name} {path}")
    for marker, call_class in markers:
        wanted = _words(marker)
        size = len(wanted)
        if size and any(words[i : i + size] == wanted for i in range(len(words) - size + 1)):
            return call_class
    return CallClass.PROTECTED


def expand_path(template: str, arguments: dict[str, Any]) -> tuple[str, dict[str, Any]]:
    """
    Substitute {name} placeholders with the matching arguments.

    Returns the expanded path and the arguments that were not consumed.
    Values are percent-encoded as a single path segment. A placeholder with
    no (or an empty) argument is left as-is so the service reports it.
    """
    remaining = dict(arguments)

    def substitute(match: re.Match[str]) -> str:
        name = match.group(1)
        value = remaining.get(name)
        if value is None or value == "":
            return match.group(0)
        del remaining[name]
        return quote(str(value), safe="")

    return _PLACEHOLDER.sub(substitute, template), remaining


class Executor(Protocol):
    def execute(
        self,
        method: str,
        path: str,
        params: dict[str, Any],
        token: str | None = None,
    ) -> Awaitable[ApiResponse]: ...


class CallRouter:
    """
    Applies session policy around each tool call.

    Flow per call: classify -> gate (protected calls only) -> dispatch ->
    session effects. The router owns no state of its own; the session and
    the executor are injected.
    """

    def __init__(
        self,
        session: CredentialSession,
        executor: Executor,
        markers: tuple[tuple[str, CallClass], ...] = CLASSIFICATION_MARKERS,
    ):
        self.session = session
        self.executor = executor
        self.markers = markers

    def classify(self, tool: ToolDefinition) -> CallClass:
        return classify(tool.name, tool.path, self.markers)

    async def call(self, tool: ToolDefinition, arguments: dict[str, Any] | None) -> Any:
        """
        Run one tool call and return the service's response body.

        Raises:
            AuthenticationRequired: Protected call with neither a valid session
                nor an explicit token
            RemoteFailure: The service rejected the call (401 also clears the session)
            NetworkFailure: The service could not be reached
        """
        call_id = str(uuid.uuid4())[:8]
        call_class = self.classify(tool)
        log_data = {"call_id": call_id, "tool": tool.name, "classification": call_class.value}

        params = dict(arguments or {})
        explicit_token = None
        for name in CREDENTIAL_ARGUMENTS:
            value = params.pop(name, None)
            if name == "token" and isinstance(value, str) and value:
                explicit_token = value

        if call_class is CallClass.PROTECTED and explicit_token is None:
            await self._authorize(tool, log_data)
        path, params = expand_path(tool.path, params)
        token = explicit_token or self.session.bearer_token()

        logger.info(
            "Tool call dispatched",
            extra={"auth_data": {**log_data, "method": tool.method, "path": path, "bearer": token is not None}},
        )

        try:
            response = await self.executor.execute(tool.method, path, params, token=token)
        except RemoteFailure as exc:
            if exc.is_authorization_denial:
                logger.warning(
                    "Auth service rejected credentials, clearing session",
                    extra={"auth_data": {**log_data, "status": exc.status_code}},
                )
                await self.session.clear()
            raise

        if call_class is CallClass.LOGIN:
            stored = await self.session.absorb(response.body)
            logger.info("Sign-in completed", extra={"auth_data": {**log_data, "session_stored": stored}})
        elif call_class is CallClass.LOGOUT:
            await self.session.clear()
            logger.info("Sign-out completed", extra={"auth_data": log_data})

        return response.body

    async def _authorize(self, tool: ToolDefinition, log_data: dict[str, Any]) -> None:
        status = self.session.status()
        if status.is_valid:
            return

        if status.state is SessionState.EXPIRED:
            await self.session.clear()
            reason = "session expired"
        else:
            reason = "no active session"

        logger.warning(
            "Tool call rejected",
            extra={"auth_data": {**log_data, "decision": "rejected", "reason": reason}},
        )
        raise AuthenticationRequired(tool.name, reason)
