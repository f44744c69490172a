"""Transport boundary.

The gateway only needs to hand envelopes to something that can deliver
them. Connection establishment, framing, and reconnects belong to the
transport implementation.
"""

from __future__ import annotations

from typing import Any, Protocol

from switchboard.errors import FailureReason, MediatorError


class Transport(Protocol):
    """Interface for outbound delivery."""

    @property
    def is_connected(self) -> bool:
        """Whether envelopes can currently be delivered."""

    async def send(self, envelope: dict[str, Any]) -> None:
        """Deliver one envelope."""


class MemoryTransport:
    """In-process transport that records what it is asked to send."""

    def __init__(self, *, connected: bool = True) -> None:
        self.sent: list[dict[str, Any]] = []
        self._connected = connected

    @property
    def is_connected(self) -> bool:
        return self._connected

    def set_connected(self, connected: bool) -> None:
        self._connected = connected

    async def send(self, envelope: dict[str, Any]) -> None:
        if not self._connected:
            raise MediatorError(
                FailureReason.TRANSPORT_UNAVAILABLE, "transport is not connected"
            )
        self.sent.append(envelope)

    def requests(self) -> list[dict[str, Any]]:
        return [e for e in self.sent if "method" in e and "id" in e]

    def notifications(self, method: str | None = None) -> list[dict[str, Any]]:
        return [
            e
            for e in self.sent
            if "method" in e and "id" not in e and (method is None or e["method"] == method)
        ]

    def responses(self) -> list[dict[str, Any]]:
        return [e for e in self.sent if "method" not in e]
