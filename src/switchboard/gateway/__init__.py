"""Gateway between the mediator and the remote agent's transport.

Public API:
- CommunicationGateway: request/notification sending and inbound matching
- Transport, MemoryTransport: delivery boundary

Protocol:
- RPCRequest, RPCNotification, RPCResponse, RPCError: envelope types
- decode, encode: envelope codec
"""

from switchboard.gateway.gateway import (
    CommunicationGateway,
    DisconnectPolicy,
    EventDispatcher,
    InboundEvent,
    PushEvent,
    RequestFailedEvent,
    ResponseEvent,
)
from switchboard.gateway.protocol import (
    ErrorCode,
    RPCError,
    RPCNotification,
    RPCRequest,
    RPCResponse,
    decode,
    encode,
    error_code_for,
)
from switchboard.gateway.transport import MemoryTransport, Transport

__all__ = [
    # Gateway
    "CommunicationGateway",
    "DisconnectPolicy",
    "EventDispatcher",
    "InboundEvent",
    "PushEvent",
    "RequestFailedEvent",
    "ResponseEvent",
    # Transport
    "MemoryTransport",
    "Transport",
    # Protocol
    "ErrorCode",
    "RPCError",
    "RPCNotification",
    "RPCRequest",
    "RPCResponse",
    "decode",
    "encode",
    "error_code_for",
]
