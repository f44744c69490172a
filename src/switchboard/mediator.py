"""Mediator facade.

Components register capabilities here; the transport feeds envelopes and
connection changes here. Everything else is internal wiring.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from dataclasses import dataclass
from types import TracebackType
from typing import Any

from switchboard.config import SwitchboardConfig, get_default_config
from switchboard.correlation import CorrelationTable
from switchboard.errors import FailureReason, MediatorError
from switchboard.executor import CommandExecutor, ExecutionListener
from switchboard.gateway import CommunicationGateway, MemoryTransport, Transport
from switchboard.manifest import CapabilityAggregator
from switchboard.registry import Registry, RegistryChange
from switchboard.router import Router
from switchboard.types import (
    CapabilityManifest,
    CommandExecution,
    ComponentRegistration,
    ConnectionState,
    CorrelationState,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class MediatorStats:
    """Read-only counters for diagnostics."""

    live_registrations: int
    pending_requests: int
    live_executions: int
    awaiting_confirmation: int
    registry_version: int
    connection_state: ConnectionState


class Mediator:
    """Connects capability-announcing components to a remote agent."""

    def __init__(
        self,
        transport: Transport,
        *,
        config: SwitchboardConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or get_default_config()
        self._registry = Registry(
            instance_policy=self._config.registry.instance_policy
        )
        self._aggregator = CapabilityAggregator(self._registry)
        self._gateway = CommunicationGateway(
            transport,
            table=CorrelationTable(
                clock=clock, settled_memory=self._config.gateway.settled_memory
            ),
            request_timeout_seconds=self._config.gateway.request_timeout_seconds,
            disconnect_policy=self._config.gateway.disconnect_policy,
        )
        self._executor = CommandExecutor(
            self._registry,
            gateway=self._gateway,
            clock=clock,
            confirmation_timeout_seconds=self._config.executor.confirmation_timeout_seconds,
            report_results=self._config.executor.report_results,
            history_size=self._config.executor.history_size,
        )
        self._router = Router(self._registry, self._executor)
        self._gateway.set_dispatcher(self._router.route)
        self._gateway.add_connection_listener(self._on_connection_change)
        if self._config.manifest.publish_on_change:
            self._registry.add_listener(self._on_registry_change)

        self._published_version: int | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._closed = False

    @property
    def config(self) -> SwitchboardConfig:
        return self._config

    @property
    def registry(self) -> Registry:
        return self._registry

    @property
    def gateway(self) -> CommunicationGateway:
        return self._gateway

    @property
    def executor(self) -> CommandExecutor:
        return self._executor

    @property
    def router(self) -> Router:
        return self._router

    # Component-facing API

    def register(self, registration: ComponentRegistration) -> str:
        """Register a component and return its instance token.

        Raises:
            MediatorError: ``invalid_registration`` for malformed input.
        """
        if self._closed:
            raise MediatorError(
                FailureReason.TARGET_UNAVAILABLE, "mediator has been closed"
            )
        return self._registry.register(registration)

    def unregister(self, instance_token: str) -> None:
        self._registry.unregister(instance_token)

    async def confirm(self, execution_id: str) -> CommandExecution:
        return await self._executor.confirm(execution_id)

    async def reject(self, execution_id: str) -> CommandExecution:
        return await self._executor.reject(execution_id)

    async def cancel(self, execution_id: str) -> CommandExecution:
        return await self._executor.cancel(execution_id)

    def add_execution_listener(self, listener: ExecutionListener) -> None:
        self._executor.add_listener(listener)

    # Outbound

    def manifest(self) -> CapabilityManifest:
        return self._aggregator.build_manifest()

    async def publish_manifest(self) -> CapabilityManifest:
        manifest = self._aggregator.build_manifest()
        await self._gateway.send_notification(
            self._config.manifest.method, manifest.to_dict()
        )
        self._published_version = manifest.version
        logger.debug(
            "manifest_published",
            extra={"version": manifest.version, "methods": len(manifest.methods)},
        )
        return manifest

    async def send_request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        reply_to: str | None = None,
        timeout: float | None = None,
    ) -> str:
        """Send a request and return its correlation id.

        The response is routed to ``reply_to`` when given, otherwise to every
        component offering ``method`` at send time.
        """
        if reply_to is not None:
            registration = self._registry.lookup(reply_to)
            if registration is None or method not in registration.capabilities:
                raise MediatorError(
                    FailureReason.TARGET_UNAVAILABLE,
                    f"{reply_to} is not a live provider of {method}",
                )
            targets: tuple[str, ...] = (reply_to,)
        else:
            targets = tuple(
                registration.instance_token or ""
                for registration in self._registry.find_providers(method)
            )

        if (
            self._config.manifest.publish_before_request
            and self._published_version != self._registry.version
            and self._gateway.connected
        ):
            await self.publish_manifest()

        return await self._gateway.send_request(
            method, params, target_tokens=targets, timeout=timeout
        )

    async def request(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        *,
        reply_to: str | None = None,
        timeout: float | None = None,
    ) -> Any:
        """Send a request and wait for its result.

        Raises:
            MediatorError: If the request fails, times out, or is orphaned.
        """
        correlation_id = await self.send_request(
            method, params, reply_to=reply_to, timeout=timeout
        )
        entry = await self._gateway.table.wait(correlation_id)
        if entry.state == CorrelationState.RESOLVED:
            return entry.result

        reason = entry.reason or FailureReason.TRANSPORT_LOST
        message = f"request {correlation_id} ({method}) {entry.state.value}"
        if entry.error:
            message = f"{message}: {entry.error.get('message', 'unknown error')}"
        raise MediatorError(reason, message)

    async def send_notification(
        self, method: str, params: dict[str, Any] | None = None
    ) -> None:
        await self._gateway.send_notification(method, params)

    # Transport-facing API

    async def on_envelope_received(
        self, envelope: dict[str, Any] | str | bytes
    ) -> list[CommandExecution]:
        return await self._gateway.on_envelope_received(envelope)

    async def on_connection_state_changed(self, state: ConnectionState | str) -> None:
        await self._gateway.on_connection_state_changed(state)

    async def expire_overdue(self) -> None:
        await self._gateway.expire_overdue()

    # Observability

    def stats(self) -> MediatorStats:
        return MediatorStats(
            live_registrations=len(self._registry),
            pending_requests=len(self._gateway.table),
            live_executions=len(self._executor.live()),
            awaiting_confirmation=len(self._executor.awaiting_confirmation()),
            registry_version=self._registry.version,
            connection_state=self._gateway.connection_state,
        )

    def recent_executions(self) -> list[CommandExecution]:
        return self._executor.recent()

    # Teardown

    async def close(self) -> None:
        """Unregister every component and release timers and pending requests."""
        if self._closed:
            return
        self._closed = True
        self._registry.clear()
        await self._executor.close()
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        await self._gateway.close()
        logger.info("mediator_closed")

    async def __aenter__(self) -> Mediator:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.close()

    def _on_connection_change(
        self, previous: ConnectionState, current: ConnectionState
    ) -> None:
        if current != ConnectionState.CONNECTED or previous == current:
            return
        # The remote side may have lost our last manifest
        self._published_version = None
        if self._config.manifest.publish_on_change:
            self._spawn(self._publish_quietly())

    def _on_registry_change(self, change: RegistryChange) -> None:
        if self._closed or not self._gateway.connected:
            return
        self._spawn(self._publish_quietly())

    async def _publish_quietly(self) -> None:
        try:
            await self.publish_manifest()
        except MediatorError as e:
            logger.warning("manifest_publish_failed", extra={"error.type": e.code})

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            return
        task = loop.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)


def create_mediator(
    *,
    config: SwitchboardConfig | None = None,
    transport: Transport | None = None,
) -> Mediator:
    """Create a mediator, defaulting to an in-process transport."""
    return Mediator(transport or MemoryTransport(), config=config)
