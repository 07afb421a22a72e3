"""
CLI utility to preview the tool catalog the MCP server would expose.

Fetches an OpenAPI description (URL or local JSON file), runs it through the
same catalog builder the server uses, and prints one line per tool with its
classification, so you can check names, schemas and which calls will need a
session before pointing an MCP client at the server.

Usage examples:

    # Preview the catalog for a deployed service
    uv run python -m scripts.show_catalog --url https://auth.example.com/api-json

    # Preview a local copy of the description
    uv run python -m scripts.show_catalog --file api-json.json

    # Include the argument schema of every tool
    uv run python -m scripts.show_catalog --file api-json.json --schemas

    # Show the fallback catalog served when the description is unavailable
    uv run python -m scripts.show_catalog --fallback
"""

import argparse
import asyncio
import json
from pathlib import Path

from auth_mcp.api_client import fetch_document
from auth_mcp.errors import CatalogUnavailable
from auth_mcp.router import classify
from auth_mcp.tools import FALLBACK_CATALOG, ToolDefinition, build_catalog


def load_catalog(url: str | None, file: Path | None, fallback: bool) -> list[ToolDefinition]:
    """
    Build the catalog from the chosen source.

    Raises:
        CatalogUnavailable: The description could not be fetched or parsed
    """
    if fallback:
        return list(FALLBACK_CATALOG)
    if file is not None:
        try:
            description = json.loads(file.read_text(encoding="utf-8"))
        except (OSError, ValueError) as exc:
            raise CatalogUnavailable(f"Could not read {file}: {exc}") from exc
    else:
        description = asyncio.run(fetch_document(url))
    return build_catalog(description)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Preview the MCP tools generated from an OpenAPI description.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  From a URL:
    %(prog)s --url https://auth.example.com/api-json

  From a file, with schemas:
    %(prog)s --file api-json.json --schemas

  Fallback catalog:
    %(prog)s --fallback
        """,
    )

    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--url", help="URL of the OpenAPI (JSON) description")
    source.add_argument("--file", type=Path, help="Path to a local OpenAPI (JSON) description")
    source.add_argument(
        "--fallback",
        action="store_true",
        help="Show the built-in catalog served when no description is available",
    )
    parser.add_argument(
        "--schemas",
        action="store_true",
        help="Also print each tool's argument schema",
    )

    args = parser.parse_args()

    try:
        tools = load_catalog(args.url, args.file, args.fallback)
    except CatalogUnavailable as exc:
        parser.exit(1, f"error: {exc.message}\n")

    if not tools:
        parser.exit(1, "error: the description contains no operations (the server would use the fallback catalog)\n")

    width = max(len(tool.name) for tool in tools)
    for tool in tools:
        call_class = classify(tool.name, tool.path).value
        print(f"{tool.name:<{width}}  {call_class:<9}  {tool.method:<6} {tool.path}")
        if args.schemas:
            print(json.dumps(tool.input_schema, indent=2))
            print()

    print()
    print(f"{len(tools)} tools")


if __name__ == "__main__":
    main()
