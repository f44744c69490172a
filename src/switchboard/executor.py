"""Command execution with optional human confirmation."""

from __future__ import annotations

import asyncio
import inspect
import logging
import secrets
import time
from collections import deque
from collections.abc import Callable, Coroutine
from typing import TYPE_CHECKING, Any

from switchboard.errors import FailureReason, MediatorError
from switchboard.gateway.protocol import RPCError
from switchboard.registry import ChangeKind, Registry, RegistryChange
from switchboard.types import CommandExecution, ExecutionState

if TYPE_CHECKING:
    from switchboard.gateway import CommunicationGateway

logger = logging.getLogger(__name__)

ExecutionListener = Callable[[CommandExecution], None]

_TRANSITIONS: dict[ExecutionState, frozenset[ExecutionState]] = {
    ExecutionState.RECEIVED: frozenset(
        {
            ExecutionState.AWAITING_CONFIRMATION,
            ExecutionState.EXECUTING,
            ExecutionState.FAILED,
        }
    ),
    ExecutionState.AWAITING_CONFIRMATION: frozenset(
        {ExecutionState.CONFIRMED, ExecutionState.REJECTED, ExecutionState.FAILED}
    ),
    ExecutionState.CONFIRMED: frozenset(
        {ExecutionState.EXECUTING, ExecutionState.FAILED}
    ),
    ExecutionState.EXECUTING: frozenset(
        {ExecutionState.COMPLETED, ExecutionState.FAILED}
    ),
}

# Failures where the backend never answered; there is nothing to reply to.
_UNREPORTED_REASONS = frozenset(
    {
        FailureReason.REMOTE_ERROR,
        FailureReason.REQUEST_TIMED_OUT,
        FailureReason.TRANSPORT_LOST,
        FailureReason.TRANSPORT_UNAVAILABLE,
    }
)

# Unregistering a target cancels these; running handlers are checked on return.
_CANCELLABLE_STATES = frozenset(
    {
        ExecutionState.RECEIVED,
        ExecutionState.AWAITING_CONFIRMATION,
        ExecutionState.CONFIRMED,
    }
)

DEFAULT_HISTORY_SIZE = 100


class CommandExecutor:
    """Runs the confirm -> invoke -> report state machine.

    The executor is the only place handlers are called. Handler errors are
    caught here and turned into a terminal ``failed`` state; they never
    propagate to the router or the transport.
    """

    def __init__(
        self,
        registry: Registry,
        *,
        gateway: CommunicationGateway | None = None,
        clock: Callable[[], float] = time.monotonic,
        confirmation_timeout_seconds: float | None = None,
        report_results: bool = True,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ) -> None:
        self._registry = registry
        self._gateway = gateway
        self._clock = clock
        self._confirmation_timeout = confirmation_timeout_seconds
        self._report_results = report_results
        self._live: dict[str, CommandExecution] = {}
        self._recent: deque[CommandExecution] = deque(maxlen=max(1, history_size))
        self._listeners: list[ExecutionListener] = []
        self._confirmation_timers: dict[str, asyncio.TimerHandle] = {}
        self._tasks: set[asyncio.Task[Any]] = set()
        registry.add_listener(self._on_registry_change)

    def add_listener(self, listener: ExecutionListener) -> None:
        """Call ``listener`` with every execution once it settles."""
        self._listeners.append(listener)

    def create(
        self,
        method: str,
        payload: dict[str, Any] | None = None,
        *,
        target_instance_token: str | None,
        component_id: str | None = None,
        correlation_id: str | None = None,
    ) -> CommandExecution:
        return CommandExecution(
            id=f"cmd_{secrets.token_hex(8)}",
            method=method,
            payload=dict(payload or {}),
            target_instance_token=target_instance_token,
            component_id=component_id,
            correlation_id=correlation_id,
            created_at=self._clock(),
        )

    def get(self, execution_id: str) -> CommandExecution | None:
        live = self._live.get(execution_id)
        if live is not None:
            return live
        for execution in self._recent:
            if execution.id == execution_id:
                return execution
        return None

    def live(self) -> list[CommandExecution]:
        return list(self._live.values())

    def awaiting_confirmation(self) -> list[CommandExecution]:
        return [
            execution
            for execution in self._live.values()
            if execution.state == ExecutionState.AWAITING_CONFIRMATION
        ]

    def recent(self) -> list[CommandExecution]:
        return list(self._recent)

    async def submit(self, execution: CommandExecution) -> CommandExecution:
        """Start an execution routed to one target.

        Gated capabilities park in ``awaiting_confirmation``; the rest run
        their handler before this returns. An execution that already failed
        (for example with ``no_provider``) is settled as is.
        """
        if execution.state == ExecutionState.FAILED and execution.settled_at is None:
            await self._finalize(execution)
            return execution
        if execution.state != ExecutionState.RECEIVED:
            raise MediatorError(
                "invalid_transition",
                f"execution {execution.id} was already submitted ({execution.state})",
            )

        token = execution.target_instance_token
        registration = self._registry.lookup(token) if token else None
        descriptor = (
            registration.capabilities.get(execution.method) if registration else None
        )
        if registration is None or descriptor is None:
            await self.fail(
                execution,
                FailureReason.TARGET_UNAVAILABLE,
                f"no live provider {token} for {execution.method}",
            )
            return execution

        execution.component_id = registration.id
        execution.requires_confirmation = descriptor.requires_confirmation
        self._live[execution.id] = execution

        if descriptor.requires_confirmation:
            self._transition(execution, ExecutionState.AWAITING_CONFIRMATION)
            self._arm_confirmation_timer(execution)
            logger.info(
                "execution_awaiting_confirmation",
                extra={
                    "execution_id": execution.id,
                    "method": execution.method,
                    "component_id": execution.component_id,
                },
            )
            return execution

        await self._run(execution)
        return execution

    async def confirm(self, execution_id: str) -> CommandExecution:
        execution = self._awaiting(execution_id)
        self._cancel_confirmation_timer(execution_id)
        self._transition(execution, ExecutionState.CONFIRMED)
        await self._run(execution)
        return execution

    async def reject(
        self, execution_id: str, detail: str = "declined by user"
    ) -> CommandExecution:
        execution = self._awaiting(execution_id)
        self._cancel_confirmation_timer(execution_id)
        execution.reason = FailureReason.REJECTED
        execution.error_detail = detail
        self._transition(execution, ExecutionState.REJECTED)
        await self._finalize(execution)
        return execution

    async def cancel(self, execution_id: str) -> CommandExecution:
        return await self.reject(execution_id, detail="cancelled")

    async def fail(
        self,
        execution: CommandExecution,
        reason: FailureReason,
        detail: str,
    ) -> CommandExecution:
        """Move an execution straight to ``failed`` and settle it."""
        self._cancel_confirmation_timer(execution.id)
        self._mark_failed(execution, reason, detail)
        await self._finalize(execution)
        return execution

    async def close(self) -> None:
        for execution_id in list(self._confirmation_timers):
            self._cancel_confirmation_timer(execution_id)
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _run(self, execution: CommandExecution) -> None:
        token = execution.target_instance_token or ""
        handler = self._registry.handler_for(token, execution.method)
        if handler is None:
            await self.fail(
                execution,
                FailureReason.TARGET_UNAVAILABLE,
                f"provider {token} no longer offers {execution.method}",
            )
            return

        self._transition(execution, ExecutionState.EXECUTING)
        try:
            result = handler(dict(execution.payload))
            if inspect.isawaitable(result):
                result = await result
        except asyncio.CancelledError:
            self._mark_failed(execution, FailureReason.HANDLER_FAILURE, "cancelled")
            await self._finalize(execution)
            raise
        except Exception as e:
            logger.exception(
                "handler_failed",
                extra={"execution_id": execution.id, "method": execution.method},
            )
            await self.fail(
                execution, FailureReason.HANDLER_FAILURE, f"{type(e).__name__}: {e}"
            )
            return

        if not self._registry.is_live(token):
            await self.fail(
                execution,
                FailureReason.TARGET_UNAVAILABLE,
                "target unregistered while its handler ran; result discarded",
            )
            return

        execution.result = result
        self._transition(execution, ExecutionState.COMPLETED)
        await self._finalize(execution)

    def _awaiting(self, execution_id: str) -> CommandExecution:
        execution = self._live.get(execution_id)
        if execution is None or execution.state != ExecutionState.AWAITING_CONFIRMATION:
            raise MediatorError(
                "execution_not_found",
                f"no execution awaiting confirmation: {execution_id}",
            )
        return execution

    def _transition(self, execution: CommandExecution, state: ExecutionState) -> None:
        allowed = _TRANSITIONS.get(execution.state, frozenset())
        if state not in allowed:
            raise MediatorError(
                "invalid_transition",
                f"execution {execution.id}: {execution.state} -> {state} not allowed",
            )
        execution.state = state

    def _mark_failed(
        self, execution: CommandExecution, reason: FailureReason, detail: str
    ) -> None:
        execution.reason = reason
        execution.error_detail = detail
        self._transition(execution, ExecutionState.FAILED)

    def _settle(self, execution: CommandExecution) -> None:
        self._live.pop(execution.id, None)
        execution.settled_at = self._clock()
        self._recent.append(execution)

        log_extra: dict[str, Any] = {
            "execution_id": execution.id,
            "method": execution.method,
            "component_id": execution.component_id,
            "correlation_id": execution.correlation_id,
            "state": execution.state.value,
            "duration_ms": int((execution.settled_at - execution.created_at) * 1000),
        }
        if execution.state == ExecutionState.FAILED:
            log_extra["reason"] = execution.reason.value if execution.reason else None
            log_extra["error.message"] = (execution.error_detail or "")[:500]
            logger.warning("execution_settled", extra=log_extra)
        else:
            logger.info("execution_settled", extra=log_extra)

        for listener in list(self._listeners):
            try:
                listener(execution)
            except Exception:
                logger.warning("execution_listener_failed", exc_info=True)

    async def _finalize(self, execution: CommandExecution) -> None:
        self._settle(execution)
        await self._report(execution)

    async def _report(self, execution: CommandExecution) -> None:
        if (
            not self._report_results
            or self._gateway is None
            or execution.correlation_id is None
            or execution.reason in _UNREPORTED_REASONS
        ):
            return

        try:
            if execution.state == ExecutionState.COMPLETED:
                await self._gateway.send_response(
                    execution.correlation_id, result=execution.result
                )
            else:
                reason = execution.reason
                await self._gateway.send_response(
                    execution.correlation_id,
                    error=RPCError.for_reason(
                        reason,
                        execution.error_detail or (reason.value if reason else "failed"),
                    ),
                )
        except MediatorError as e:
            logger.warning(
                "execution_report_failed",
                extra={
                    "execution_id": execution.id,
                    "correlation_id": execution.correlation_id,
                    "error.type": e.code,
                },
            )

    def _on_registry_change(self, change: RegistryChange) -> None:
        if change.kind != ChangeKind.UNREGISTERED:
            return
        token = change.registration.instance_token
        affected = [
            execution
            for execution in self._live.values()
            if execution.target_instance_token == token
            and execution.state in _CANCELLABLE_STATES
        ]
        for execution in affected:
            self._cancel_confirmation_timer(execution.id)
            self._mark_failed(
                execution,
                FailureReason.TARGET_UNAVAILABLE,
                f"component {change.registration.id} unregistered",
            )
            self._settle(execution)
            self._spawn(self._report(execution))

    def _arm_confirmation_timer(self, execution: CommandExecution) -> None:
        if self._confirmation_timeout is None:
            return
        self._confirmation_timers[execution.id] = (
            asyncio.get_running_loop().call_later(
                self._confirmation_timeout,
                self._on_confirmation_timeout,
                execution.id,
            )
        )

    def _cancel_confirmation_timer(self, execution_id: str) -> None:
        timer = self._confirmation_timers.pop(execution_id, None)
        if timer is not None:
            timer.cancel()

    def _on_confirmation_timeout(self, execution_id: str) -> None:
        self._confirmation_timers.pop(execution_id, None)
        execution = self._live.get(execution_id)
        if execution is None or execution.state != ExecutionState.AWAITING_CONFIRMATION:
            return
        self._mark_failed(
            execution,
            FailureReason.CONFIRMATION_TIMED_OUT,
            f"not confirmed within {self._confirmation_timeout}s",
        )
        self._settle(execution)
        self._spawn(self._report(execution))

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
