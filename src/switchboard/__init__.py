"""Switchboard: routes a remote agent's instructions to UI component capabilities.

Public API:
- Mediator: Main entry point
- create_mediator: Factory function

Types:
- ComponentRegistration, CapabilityDescriptor
- CapabilityManifest, ProviderEntry
- CommandExecution, ExecutionState
- CorrelationEntry, CorrelationState
- MediatorError, FailureReason
"""

from switchboard.errors import FailureReason, MediatorError, ProtocolError
from switchboard.gateway import MemoryTransport, Transport
from switchboard.mediator import Mediator, MediatorStats, create_mediator
from switchboard.types import (
    CapabilityDescriptor,
    CapabilityManifest,
    CommandExecution,
    ComponentRegistration,
    ConnectionState,
    CorrelationEntry,
    CorrelationState,
    ExecutionState,
    Handler,
    ProviderEntry,
)

__all__ = [
    "CapabilityDescriptor",
    "CapabilityManifest",
    "CommandExecution",
    "ComponentRegistration",
    "ConnectionState",
    "CorrelationEntry",
    "CorrelationState",
    "ExecutionState",
    "FailureReason",
    "Handler",
    "Mediator",
    "MediatorError",
    "MediatorStats",
    "MemoryTransport",
    "ProtocolError",
    "ProviderEntry",
    "Transport",
    "create_mediator",
]
