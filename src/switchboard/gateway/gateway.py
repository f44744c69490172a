"""Communication gateway between the mediator and its transport."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any, Literal

from switchboard.correlation import CorrelationTable
from switchboard.errors import FailureReason, MediatorError, ProtocolError
from switchboard.gateway.protocol import (
    RPCError,
    RPCNotification,
    RPCRequest,
    RPCResponse,
    decode,
)
from switchboard.gateway.transport import Transport
from switchboard.types import ConnectionState, CorrelationEntry

logger = logging.getLogger(__name__)

DisconnectPolicy = Literal["fail", "durable"]

DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0


@dataclass(slots=True, frozen=True)
class ResponseEvent:
    """A correlated response arrived and settled its entry."""

    entry: CorrelationEntry
    error: RPCError | None = None


@dataclass(slots=True, frozen=True)
class PushEvent:
    """Unsolicited notification from the backend."""

    method: str
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class RequestFailedEvent:
    """A request settled without a response (timeout or lost transport)."""

    entry: CorrelationEntry


InboundEvent = ResponseEvent | PushEvent | RequestFailedEvent

EventDispatcher = Callable[[InboundEvent], Awaitable[list[Any]]]
ConnectionListener = Callable[[ConnectionState, ConnectionState], None]


class CommunicationGateway:
    """Turns outbound intents into envelopes and inbound envelopes into events.

    Every request gets a pending correlation entry and a deadline timer.
    Responses are matched by id only, so out-of-order delivery is fine.
    Timeouts and disconnects settle entries and are dispatched like any
    other inbound event so dependent work fails visibly.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        table: CorrelationTable | None = None,
        request_timeout_seconds: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        disconnect_policy: DisconnectPolicy = "fail",
        dispatcher: EventDispatcher | None = None,
    ) -> None:
        self._transport = transport
        self._table = table or CorrelationTable()
        self._request_timeout = request_timeout_seconds
        self._disconnect_policy = disconnect_policy
        self._dispatcher = dispatcher
        self._state = (
            ConnectionState.CONNECTED
            if transport.is_connected
            else ConnectionState.DISCONNECTED
        )
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        self._connection_listeners: list[ConnectionListener] = []

    @property
    def table(self) -> CorrelationTable:
        return self._table

    @property
    def connection_state(self) -> ConnectionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED and self._transport.is_connected

    def set_dispatcher(self, dispatcher: EventDispatcher) -> None:
        self._dispatcher = dispatcher

    def add_connection_listener(self, listener: ConnectionListener) -> None:
        self._connection_listeners.append(listener)

    async def send_request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        target_tokens: tuple[str, ...] | list[str] = (),
        timeout: float | None = None,
    ) -> str:
        """Send a request and return its correlation id.

        Raises:
            MediatorError: ``transport_unavailable`` when there is no live
                connection, ``transport_lost`` when delivery fails.
        """
        self._require_connection()
        entry = self._table.create(
            method,
            timeout=self._request_timeout if timeout is None else timeout,
            target_tokens=target_tokens,
        )
        correlation_id = entry.correlation_id
        delay = max(0.0, entry.timeout_at - entry.created_at)
        self._timers[correlation_id] = asyncio.get_running_loop().call_later(
            delay, self._on_deadline, correlation_id
        )

        request = RPCRequest(id=correlation_id, method=method, params=dict(params or {}))
        try:
            await self._transport.send(request.to_dict())
        except MediatorError as e:
            self._cancel_timer(correlation_id)
            self._table.fail(
                correlation_id, reason=e.reason or FailureReason.TRANSPORT_LOST
            )
            raise
        except Exception as e:
            self._cancel_timer(correlation_id)
            self._table.fail(correlation_id, reason=FailureReason.TRANSPORT_LOST)
            logger.warning(
                "request_send_failed",
                extra={"correlation_id": correlation_id, "method": method},
                exc_info=True,
            )
            raise MediatorError(
                FailureReason.TRANSPORT_LOST, f"failed to deliver request: {e}"
            ) from e

        logger.debug(
            "request_sent",
            extra={
                "correlation_id": correlation_id,
                "method": method,
                "targets": list(entry.target_tokens),
            },
        )
        return correlation_id

    async def send_notification(
        self, method: str, params: dict[str, Any] | None = None
    ) -> None:
        self._require_connection()
        notification = RPCNotification(method=method, params=dict(params or {}))
        await self._deliver(notification.to_dict())
        logger.debug("notification_sent", extra={"method": method})

    async def send_response(
        self,
        correlation_id: str,
        *,
        result: Any = None,
        error: RPCError | None = None,
    ) -> None:
        self._require_connection()
        response = RPCResponse(id=correlation_id, result=result, error=error)
        await self._deliver(response.to_dict())

    async def on_envelope_received(
        self, raw: dict[str, Any] | str | bytes
    ) -> list[Any]:
        """Inbound hook for the transport.

        Malformed envelopes and responses for unknown or settled ids are
        logged and dropped.
        """
        try:
            envelope = decode(raw)
        except ProtocolError as e:
            logger.warning("envelope_invalid", extra={"error.message": str(e)})
            return []

        if isinstance(envelope, RPCNotification):
            return await self._dispatch(
                PushEvent(method=envelope.method, params=envelope.params)
            )

        correlation_id = envelope.id
        if not self._table.is_pending(correlation_id):
            if self._table.was_settled(correlation_id):
                logger.info(
                    "response_for_settled_request",
                    extra={"correlation_id": correlation_id},
                )
            else:
                logger.warning(
                    "response_for_unknown_request",
                    extra={"correlation_id": correlation_id},
                )
            return []

        self._cancel_timer(correlation_id)
        if envelope.error is not None:
            entry = self._table.fail(
                correlation_id,
                reason=FailureReason.REMOTE_ERROR,
                error=envelope.error.to_dict(),
            )
        else:
            entry = self._table.resolve(correlation_id, envelope.result)
        if entry is None:
            return []
        return await self._dispatch(ResponseEvent(entry=entry, error=envelope.error))

    async def on_connection_state_changed(
        self, state: ConnectionState | str
    ) -> list[CorrelationEntry]:
        """React to a transport connection change.

        Returns the entries failed because of it (only on a disconnect under
        the ``fail`` policy).
        """
        new_state = ConnectionState(state)
        previous = self._state
        self._state = new_state
        if new_state != previous:
            logger.info(
                "connection_state_changed",
                extra={"from": previous.value, "to": new_state.value},
            )
            for listener in list(self._connection_listeners):
                try:
                    listener(previous, new_state)
                except Exception:
                    logger.warning("connection_listener_failed", exc_info=True)

        if new_state != ConnectionState.DISCONNECTED:
            return []
        if self._disconnect_policy == "durable":
            return []

        failed = self._table.fail_all(reason=FailureReason.TRANSPORT_LOST)
        for entry in failed:
            self._cancel_timer(entry.correlation_id)
        if failed:
            logger.warning(
                "requests_failed_on_disconnect", extra={"count": len(failed)}
            )
        for entry in failed:
            await self._dispatch(RequestFailedEvent(entry=entry))
        return failed

    async def expire_overdue(self) -> list[CorrelationEntry]:
        """Time out overdue requests now instead of waiting for their timers."""
        expired = self._table.expire_due()
        for entry in expired:
            self._cancel_timer(entry.correlation_id)
            self._log_timeout(entry)
            await self._dispatch(RequestFailedEvent(entry=entry))
        return expired

    async def close(self) -> None:
        for correlation_id in list(self._timers):
            self._cancel_timer(correlation_id)
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        orphaned = self._table.orphan_all()
        if orphaned:
            logger.info("requests_orphaned", extra={"count": len(orphaned)})

    def _require_connection(self) -> None:
        if not self.connected:
            raise MediatorError(
                FailureReason.TRANSPORT_UNAVAILABLE,
                f"no live connection (state: {self._state.value})",
            )

    async def _deliver(self, envelope: dict[str, Any]) -> None:
        try:
            await self._transport.send(envelope)
        except MediatorError:
            raise
        except Exception as e:
            raise MediatorError(
                FailureReason.TRANSPORT_LOST, f"failed to deliver envelope: {e}"
            ) from e

    def _on_deadline(self, correlation_id: str) -> None:
        self._timers.pop(correlation_id, None)
        entry = self._table.expire(correlation_id)
        if entry is None:
            return
        self._log_timeout(entry)
        self._spawn(self._dispatch(RequestFailedEvent(entry=entry)))

    def _log_timeout(self, entry: CorrelationEntry) -> None:
        logger.warning(
            "request_timed_out",
            extra={"correlation_id": entry.correlation_id, "method": entry.method},
        )

    def _cancel_timer(self, correlation_id: str) -> None:
        timer = self._timers.pop(correlation_id, None)
        if timer is not None:
            timer.cancel()

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _dispatch(self, event: InboundEvent) -> list[Any]:
        if self._dispatcher is None:
            logger.debug("event_without_dispatcher", extra={"event": type(event).__name__})
            return []
        try:
            return await self._dispatcher(event)
        except Exception:
            logger.exception("event_dispatch_failed")
            return []
