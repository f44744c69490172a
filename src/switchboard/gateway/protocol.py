"""Envelope codec using JSON-RPC 2.0 field names."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from switchboard.errors import FailureReason, ProtocolError

JSONRPC_VERSION = "2.0"


# JSON-RPC 2.0 error codes, plus the server-error range for mediator failures
class ErrorCode:
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603
    TARGET_UNAVAILABLE = -32001
    REJECTED = -32002
    REQUEST_TIMED_OUT = -32003
    TRANSPORT_LOST = -32004
    CONFIRMATION_TIMED_OUT = -32005


_REASON_CODES: dict[FailureReason, int] = {
    FailureReason.INVALID_REGISTRATION: ErrorCode.INVALID_PARAMS,
    FailureReason.TARGET_UNAVAILABLE: ErrorCode.TARGET_UNAVAILABLE,
    FailureReason.NO_PROVIDER: ErrorCode.METHOD_NOT_FOUND,
    FailureReason.REQUEST_TIMED_OUT: ErrorCode.REQUEST_TIMED_OUT,
    FailureReason.TRANSPORT_UNAVAILABLE: ErrorCode.TRANSPORT_LOST,
    FailureReason.TRANSPORT_LOST: ErrorCode.TRANSPORT_LOST,
    FailureReason.HANDLER_FAILURE: ErrorCode.INTERNAL_ERROR,
    FailureReason.REJECTED: ErrorCode.REJECTED,
    FailureReason.REMOTE_ERROR: ErrorCode.INTERNAL_ERROR,
    FailureReason.CONFIRMATION_TIMED_OUT: ErrorCode.CONFIRMATION_TIMED_OUT,
}


def error_code_for(reason: FailureReason | None) -> int:
    if reason is None:
        return ErrorCode.INTERNAL_ERROR
    return _REASON_CODES.get(reason, ErrorCode.INTERNAL_ERROR)


@dataclass
class RPCError:
    """Error body of a response envelope."""

    code: int
    message: str
    data: Any = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            d["data"] = self.data
        return d

    @classmethod
    def for_reason(cls, reason: FailureReason | None, message: str) -> RPCError:
        return cls(
            code=error_code_for(reason),
            message=message,
            data={"reason": reason.value} if reason else None,
        )


@dataclass
class RPCRequest:
    """Outbound request; the id links it to its eventual response."""

    id: str
    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jsonrpc": JSONRPC_VERSION,
            "id": self.id,
            "method": self.method,
            "params": self.params,
        }


@dataclass
class RPCNotification:
    """Fire-and-forget message in either direction."""

    method: str
    params: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "jsonrpc": JSONRPC_VERSION,
            "method": self.method,
            "params": self.params,
        }


@dataclass
class RPCResponse:
    """Response envelope, carrying either a result or an error."""

    id: str
    result: Any = None
    error: RPCError | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": self.id}
        if self.error is not None:
            d["error"] = self.error.to_dict()
        else:
            d["result"] = self.result
        return d

    @classmethod
    def success(cls, id: str, result: Any) -> RPCResponse:
        return cls(id=id, result=result)

    @classmethod
    def error_response(
        cls, id: str, code: int, message: str, data: Any = None
    ) -> RPCResponse:
        return cls(id=id, error=RPCError(code=code, message=message, data=data))


InboundEnvelope = RPCResponse | RPCNotification


def encode(envelope: RPCRequest | RPCNotification | RPCResponse) -> bytes:
    return json.dumps(envelope.to_dict()).encode()


def decode(raw: dict[str, Any] | str | bytes) -> InboundEnvelope:
    """Decode an inbound envelope.

    Accepts a parsed dict or JSON text. ``jsonrpc`` is optional on inbound
    envelopes; when present it must be "2.0".

    Raises:
        ProtocolError: If the envelope is malformed or of an unsupported kind.
    """
    if isinstance(raw, (str, bytes, bytearray)):
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(f"Parse error: {e}") from e
    else:
        data = raw

    if not isinstance(data, dict):
        raise ProtocolError("envelope must be a JSON object")

    version = data.get("jsonrpc", JSONRPC_VERSION)
    if version != JSONRPC_VERSION:
        raise ProtocolError(f"Invalid JSON-RPC version: {version!r}")

    has_id = data.get("id") is not None
    method = data.get("method")

    if has_id and method is not None:
        raise ProtocolError("inbound requests are not supported; expected a response")

    if has_id:
        correlation_id = data["id"]
        if not isinstance(correlation_id, (str, int)) or isinstance(
            correlation_id, bool
        ):
            raise ProtocolError("response id must be a string or integer")
        if "error" in data and data["error"] is not None:
            return RPCResponse(id=str(correlation_id), error=_decode_error(data["error"]))
        if "result" not in data:
            raise ProtocolError("response must carry either result or error")
        return RPCResponse(id=str(correlation_id), result=data["result"])

    if not isinstance(method, str) or not method.strip():
        raise ProtocolError("notification must name a method")
    params = data.get("params")
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise ProtocolError("notification params must be an object")
    return RPCNotification(method=method.strip(), params=params)


def _decode_error(err: Any) -> RPCError:
    if not isinstance(err, dict):
        return RPCError(code=ErrorCode.INTERNAL_ERROR, message=str(err))
    code = err.get("code", ErrorCode.INTERNAL_ERROR)
    if not isinstance(code, int) or isinstance(code, bool):
        code = ErrorCode.INTERNAL_ERROR
    return RPCError(
        code=code,
        message=str(err.get("message", "Unknown error")),
        data=err.get("data"),
    )
