"""Switchboard public types."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any

from switchboard.errors import FailureReason

# Handlers take the routed payload and return a result (or an awaitable one).
Handler = Callable[[dict[str, Any]], Any | Awaitable[Any]]


class CorrelationState(StrEnum):
    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    ORPHANED = "orphaned"


class ExecutionState(StrEnum):
    RECEIVED = "received"
    AWAITING_CONFIRMATION = "awaiting_confirmation"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_EXECUTION_STATES


_TERMINAL_EXECUTION_STATES = frozenset(
    {ExecutionState.COMPLETED, ExecutionState.FAILED, ExecutionState.REJECTED}
)


class ConnectionState(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    RECONNECTING = "reconnecting"


@dataclass(slots=True)
class CapabilityDescriptor:
    """One action a component offers to the remote agent."""

    method: str
    description: str
    parameter_schema: dict[str, Any] = field(default_factory=dict)
    handler: Handler | None = field(default=None, repr=False, compare=False)
    requires_confirmation: bool = False


@dataclass(slots=True)
class ComponentRegistration:
    """A component and the capabilities it announces.

    ``instance_token`` and ``registered_at`` are assigned by the registry on
    the copy it stores; callers leave them unset.
    """

    id: str
    capabilities: dict[str, CapabilityDescriptor] = field(default_factory=dict)
    display_name: str = ""
    purpose: str = ""
    instance_token: str | None = None
    registered_at: int = 0


@dataclass(slots=True, frozen=True)
class ProviderEntry:
    """A live registration offering one method, as shown in the manifest."""

    component_id: str
    instance_token: str
    description: str
    requires_confirmation: bool = False
    parameter_schema: dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "component_id": self.component_id,
            "instance_token": self.instance_token,
            "description": self.description,
            "requires_confirmation": self.requires_confirmation,
            "parameters": dict(self.parameter_schema),
        }


@dataclass(slots=True, frozen=True)
class CapabilityManifest:
    """Deduplicated snapshot of every capability currently on offer."""

    version: int
    methods: tuple[str, ...] = ()
    providers: dict[str, tuple[ProviderEntry, ...]] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.methods

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "methods": list(self.methods),
            "providers": {
                method: [entry.to_dict() for entry in self.providers[method]]
                for method in self.methods
            },
        }


@dataclass(slots=True)
class CorrelationEntry:
    """One outstanding request awaiting its response."""

    correlation_id: str
    method: str
    created_at: float
    timeout_at: float
    state: CorrelationState = CorrelationState.PENDING
    target_tokens: tuple[str, ...] = ()
    result: Any = None
    error: dict[str, Any] | None = None
    reason: FailureReason | None = None

    @property
    def is_pending(self) -> bool:
        return self.state == CorrelationState.PENDING


@dataclass(slots=True)
class CommandExecution:
    """Lifecycle of acting on one routed instruction."""

    id: str
    method: str
    payload: dict[str, Any]
    target_instance_token: str | None
    component_id: str | None = None
    correlation_id: str | None = None
    state: ExecutionState = ExecutionState.RECEIVED
    requires_confirmation: bool = False
    reason: FailureReason | None = None
    result: Any = None
    error_detail: str | None = None
    created_at: float = 0.0
    settled_at: float | None = None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "method": self.method,
            "target_instance_token": self.target_instance_token,
            "component_id": self.component_id,
            "correlation_id": self.correlation_id,
            "state": self.state.value,
            "reason": self.reason.value if self.reason else None,
            "error_detail": self.error_detail,
        }
