"""
Application configuration loaded from environment variables.

Uses pydantic-settings to define typed configuration that automatically reads
from environment variables (or a local .env file). Every field reads from an
AUTH_MCP_-prefixed variable. A few fields also accept the unprefixed names
that earlier deployments of the server used (SWAGGER_URL, AUTH_API_BASE_URL,
MCP_DEBUG).

When the server runs under an MCP client (Claude Desktop, Claude Code, ...),
these are usually set in the client's server entry:

    {
        "command": "auth-mcp",
        "env": {
            "AUTH_MCP_DESCRIPTION_URL": "https://auth.example.com/api-json",
            "AUTH_MCP_API_BASE_URL": "https://auth.example.com"
        }
    }
"""

from pathlib import Path
from urllib.parse import urlsplit

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings

DEFAULT_API_BASE_URL = "http://localhost:8080"


def derive_base_url(url: str) -> str | None:
    """
    Return the origin ("scheme://host[:port]") of a URL.

    The API description is normally served by the same service it describes
    (e.g. https://auth.example.com/api-json), so its origin is a good guess
    for the API base URL. Returns None when the URL has no scheme or host.
    """
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        return None
    return f"{parts.scheme}://{parts.netloc}"


class Settings(BaseSettings):
    """
    Server configuration with environment variable bindings.

    Each field maps to an environment variable with the AUTH_MCP_ prefix.
    For example, `api_timeout` reads from AUTH_MCP_API_TIMEOUT. Fields with
    a `validation_alias` list every accepted name explicitly.
    """

    # --- Remote auth service ---

    # Base URL of the authentication service the tools call into.
    # None means "derive it from description_url", see effective_base_url().
    api_base_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("AUTH_MCP_API_BASE_URL", "AUTH_API_BASE_URL"),
    )

    # Per-request timeout in seconds for calls to the auth service.
    api_timeout: float = 5.0

    # --- API description (OpenAPI document) ---

    # Where to fetch the OpenAPI description from. When unset the server
    # exposes the built-in fallback catalog.
    description_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("AUTH_MCP_DESCRIPTION_URL", "SWAGGER_URL"),
    )

    description_timeout: float = 10.0

    # --- Session persistence ---

    # The single durable session record. Shared by every server process of
    # the same user, so a login survives restarts of the MCP client.
    session_file: Path = Path.home() / ".auth-mcp" / "session.json"

    # --- Diagnostics ---

    # Forces DEBUG logging. Logs always go to stderr; stdout carries
    # protocol responses only.
    debug: bool = Field(
        default=False,
        validation_alias=AliasChoices("AUTH_MCP_DEBUG", "MCP_DEBUG"),
    )

    # Logging verbosity when debug is off. Maps to Python's logging levels.
    log_level: str = "warning"

    model_config = {
        "env_prefix": "AUTH_MCP_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        # Lets tests and callers pass Settings(api_base_url=...) directly
        # even though the environment binding goes through aliases.
        "populate_by_name": True,
        "extra": "ignore",
    }

    def effective_base_url(self) -> str:
        """Resolve the API base URL: explicit setting, description origin, default."""
        if self.api_base_url:
            return self.api_base_url.rstrip("/")
        if self.description_url:
            derived = derive_base_url(self.description_url)
            if derived:
                return derived
        return DEFAULT_API_BASE_URL


# Singleton instance: import this from other modules.
# Created once at module load time, reads environment variables immediately.
settings = Settings()
