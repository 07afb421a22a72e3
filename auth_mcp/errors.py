"""
Error taxonomy for the auth MCP server.

Every failure that can reach an MCP client is an AuthMCPError carrying the
JSON-RPC error code it is reported with. Two code classes exist:

- transport level (the request line itself was bad): PARSE_ERROR,
  METHOD_NOT_FOUND
- tool logic (the request was fine, the call was not): INTERNAL_ERROR

CatalogUnavailable never reaches a client; the catalog loader recovers from
it by serving the fallback catalog.
"""

from mcp.types import INTERNAL_ERROR, METHOD_NOT_FOUND, PARSE_ERROR


class AuthMCPError(Exception):
    """
    Base class for all errors raised by this package.

    Attributes:
        message: Human-readable description, sent to the client verbatim
        code: JSON-RPC error code used in the error response
    """

    code: int = INTERNAL_ERROR

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ProtocolDecodeFailure(AuthMCPError):
    """An incoming line was not a well-formed JSON-RPC request."""

    code = PARSE_ERROR

    def __init__(self, detail: str = ""):
        self.detail = detail
        super().__init__("Parse error")


class UnknownMethod(AuthMCPError):
    code = METHOD_NOT_FOUND

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Method not found: {method}")


class UnknownTool(AuthMCPError):
    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class AuthenticationRequired(AuthMCPError):
    """A protected tool was called without a valid session."""

    def __init__(self, tool_name: str, reason: str = "no active session"):
        self.tool_name = tool_name
        self.reason = reason
        super().__init__(
            f"Authentication required: '{tool_name}' needs a valid session ({reason}). "
            "Call a sign-in tool first."
        )


class RemoteFailure(AuthMCPError):
    """
    The auth service answered with an error status.

    Attributes:
        status_code: HTTP status returned by the service
        detail: The service's own error message (or the reason phrase)
    """

    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(f"API Error: {status_code} - {detail}")

    @property
    def is_authorization_denial(self) -> bool:
        """True when the service rejected the credentials we sent."""
        return self.status_code == 401


class NetworkFailure(AuthMCPError):
    """No response was received from the auth service."""

    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(f"Network Error: {detail}")


class CatalogUnavailable(AuthMCPError):
    """The API description could not be fetched or parsed."""
