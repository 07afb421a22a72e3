"""
Argument schema resolution for OpenAPI operations.

Turns the parameters and JSON request body of one OpenAPI 3 operation into
the flat object schema an MCP tool advertises as its `inputSchema`:

    {
        "type": "object",
        "properties": {"id": {"type": "string", "description": "User id"}, ...},
        "required": ["id", ...]
    }

Only one level of `$ref` indirection is followed: a request body that points
at `#/components/schemas/Foo` gets Foo's top-level properties. Nested
references inside those properties are passed through untouched.
"""

from typing import Any

# Parameter locations that become tool arguments. Header and cookie
# parameters are transport details the API client handles itself.
ARGUMENT_LOCATIONS = ("path", "query")

JSON_MEDIA_TYPE = "application/json"


def empty_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}, "required": []}


def _merge_required(required: list[str], extra: Any) -> None:
    if not isinstance(extra, list):
        return
    for name in extra:
        if isinstance(name, str) and name not in required:
            required.append(name)


def resolve_reference(ref: str, components: dict[str, Any] | None) -> dict[str, Any] | None:
    """
    Look up a `#/components/schemas/<Name>` reference.

    Only the last path segment is used as the schema name. Returns None when
    the component does not exist.
    """
    name = ref.rsplit("/", 1)[-1]
    schemas = (components or {}).get("schemas") or {}
    resolved = schemas.get(name)
    return resolved if isinstance(resolved, dict) else None


def body_schema(operation: dict[str, Any], components: dict[str, Any] | None) -> dict[str, Any] | None:
    """Return the (dereferenced) JSON request body schema of an operation, if any."""
    request_body = operation.get("requestBody")
    if not isinstance(request_body, dict):
        return None
    content = request_body.get("content")
    if not isinstance(content, dict):
        return None
    media = content.get(JSON_MEDIA_TYPE)
    if not isinstance(media, dict):
        return None
    schema = media.get("schema")
    if not isinstance(schema, dict):
        return None
    if "$ref" in schema:
        return resolve_reference(str(schema["$ref"]), components)
    return schema


def resolve_argument_schema(
    operation: dict[str, Any],
    components: dict[str, Any] | None = None,
) -> dict[str, Any]:
    """
    Build the tool argument schema for one operation.

    Path and query parameters are added first, then the request body's
    properties are merged on top (a body property replaces a parameter with
    the same name). `required` is the ordered union of both sources.

    Args:
        operation: The OpenAPI operation object (the value under a verb key)
        components: The document's `components` object, for `$ref` lookups

    Returns:
        A new object schema; the inputs are never modified.
    """
    schema = empty_schema()
    properties: dict[str, Any] = schema["properties"]
    required: list[str] = schema["required"]

    for param in operation.get("parameters") or []:
        if not isinstance(param, dict) or param.get("in") not in ARGUMENT_LOCATIONS:
            continue
        name = param.get("name")
        if not isinstance(name, str) or not name:
            continue
        param_schema = param.get("schema") if isinstance(param.get("schema"), dict) else {}
        properties[name] = {
            "type": param_schema.get("type") or "string",
            "description": param.get("description") or name,
        }
        if param.get("required"):
            _merge_required(required, [name])

    body = body_schema(operation, components)
    if body is not None:
        body_properties = body.get("properties")
        if isinstance(body_properties, dict):
            properties.update(body_properties)
        _merge_required(required, body.get("required"))

    return schema
