"""Routing of inbound events to command executions."""

from __future__ import annotations

import logging
from typing import Any

from switchboard.errors import FailureReason
from switchboard.executor import CommandExecutor
from switchboard.gateway import (
    InboundEvent,
    PushEvent,
    RequestFailedEvent,
    ResponseEvent,
)
from switchboard.registry import Registry
from switchboard.types import CommandExecution, CorrelationEntry, CorrelationState

logger = logging.getLogger(__name__)

_REQUEST_FAILURE_REASONS: dict[CorrelationState, FailureReason] = {
    CorrelationState.TIMED_OUT: FailureReason.REQUEST_TIMED_OUT,
    CorrelationState.ORPHANED: FailureReason.TRANSPORT_LOST,
}


class Router:
    """Decides where inbound events go; the executor decides how they run.

    Correlated responses go back to the providers recorded when the request
    was sent and are never re-targeted to another provider of the same
    method. Unsolicited pushes are broadcast to every current provider.
    """

    def __init__(self, registry: Registry, executor: CommandExecutor) -> None:
        self._registry = registry
        self._executor = executor

    async def route(self, event: InboundEvent) -> list[CommandExecution]:
        if isinstance(event, PushEvent):
            return await self._route_push(event)
        if isinstance(event, ResponseEvent):
            return await self._route_response(event)
        if isinstance(event, RequestFailedEvent):
            return await self._route_request_failure(event.entry)
        raise TypeError(f"unsupported inbound event: {type(event).__name__}")

    async def _route_push(self, event: PushEvent) -> list[CommandExecution]:
        providers = self._registry.find_providers(event.method)
        if not providers:
            execution = self._executor.create(
                event.method, event.params, target_instance_token=None
            )
            logger.warning("push_without_provider", extra={"method": event.method})
            await self._executor.fail(
                execution,
                FailureReason.NO_PROVIDER,
                f"no component offers {event.method}",
            )
            return [execution]

        logger.debug(
            "push_routed",
            extra={"method": event.method, "providers": len(providers)},
        )
        executions = []
        for registration in providers:
            execution = self._executor.create(
                event.method,
                event.params,
                target_instance_token=registration.instance_token,
                component_id=registration.id,
            )
            executions.append(execution)
            await self._executor.submit(execution)
        return executions

    async def _route_response(self, event: ResponseEvent) -> list[CommandExecution]:
        entry = event.entry
        if not entry.target_tokens:
            logger.debug(
                "response_without_targets",
                extra={"correlation_id": entry.correlation_id},
            )
            return []

        executions = []
        for token in entry.target_tokens:
            execution = self._executor.create(
                entry.method,
                _payload(entry.result),
                target_instance_token=token,
                correlation_id=entry.correlation_id,
            )
            executions.append(execution)
            if event.error is not None:
                await self._executor.fail(
                    execution,
                    FailureReason.REMOTE_ERROR,
                    f"backend error {event.error.code}: {event.error.message}",
                )
            elif not self._registry.is_live(token):
                await self._executor.fail(
                    execution,
                    FailureReason.TARGET_UNAVAILABLE,
                    f"provider {token} unregistered before the response arrived",
                )
            else:
                await self._executor.submit(execution)
        return executions

    async def _route_request_failure(
        self, entry: CorrelationEntry
    ) -> list[CommandExecution]:
        reason = entry.reason or _REQUEST_FAILURE_REASONS.get(
            entry.state, FailureReason.TRANSPORT_LOST
        )
        executions = []
        for token in entry.target_tokens:
            execution = self._executor.create(
                entry.method,
                target_instance_token=token,
                correlation_id=entry.correlation_id,
            )
            executions.append(execution)
            await self._executor.fail(
                execution,
                reason,
                f"request {entry.correlation_id} settled as {entry.state.value}",
            )
        return executions


def _payload(result: Any) -> dict[str, Any]:
    if isinstance(result, dict):
        return result
    return {"result": result}
