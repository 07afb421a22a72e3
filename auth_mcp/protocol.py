"""
JSON-RPC 2.0 envelopes for the newline-delimited stdio transport.

One request object per input line, at most one response object per output
line. Payload types (Tool, CallToolResult, InitializeResult, ...) come from
`mcp.types`; the envelopes are modelled here because a parse-error response
must carry `"id": null`, which the SDK's response models do not allow.
"""

import json
from typing import Any

from pydantic import BaseModel, ValidationError

from auth_mcp.errors import AuthMCPError, ProtocolDecodeFailure

RequestId = int | str


class RpcRequest(BaseModel):
    """An incoming request or notification."""

    jsonrpc: str = "2.0"
    id: RequestId | None = None
    method: str
    params: dict[str, Any] | None = None

    model_config = {"extra": "ignore"}

    @property
    def is_notification(self) -> bool:
        """No response is expected: no id was sent, or a notifications/* method."""
        return "id" not in self.model_fields_set or self.method.startswith("notifications/")


class RpcError(BaseModel):
    code: int
    message: str


class RpcResponse(BaseModel):
    jsonrpc: str = "2.0"
    id: RequestId | None
    result: dict[str, Any] | None = None
    error: RpcError | None = None

    def to_line(self) -> str:
        payload: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            payload["error"] = self.error.model_dump()
        else:
            payload["result"] = self.result if self.result is not None else {}
        return json.dumps(payload, separators=(",", ":"), default=str)


def decode_request(line: str) -> RpcRequest:
    """
    Parse one input line.

    Raises:
        ProtocolDecodeFailure: Invalid JSON, not an object, or not a request
    """
    try:
        data = json.loads(line)
    except json.JSONDecodeError as exc:
        raise ProtocolDecodeFailure(str(exc)) from exc
    if not isinstance(data, dict):
        raise ProtocolDecodeFailure("request is not a JSON object")
    try:
        return RpcRequest.model_validate(data)
    except ValidationError as exc:
        raise ProtocolDecodeFailure(str(exc)) from exc


def success(request_id: RequestId | None, result: BaseModel | dict[str, Any]) -> RpcResponse:
    if isinstance(result, BaseModel):
        result = result.model_dump(by_alias=True, exclude_none=True, mode="json")
    return RpcResponse(id=request_id, result=result)


def failure(request_id: RequestId | None, error: AuthMCPError) -> RpcResponse:
    return RpcResponse(id=request_id, error=RpcError(code=error.code, message=error.message))
