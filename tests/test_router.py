"""Tests for inbound event routing."""

from collections.abc import AsyncGenerator

import pytest

from switchboard.errors import FailureReason
from switchboard.executor import CommandExecutor
from switchboard.gateway import PushEvent, RequestFailedEvent, ResponseEvent, RPCError
from switchboard.registry import Registry
from switchboard.router import Router
from switchboard.types import CorrelationEntry, CorrelationState, ExecutionState
from tests.conftest import FakeClock, RecordingHandler, make_registration


@pytest.fixture
def registry() -> Registry:
    return Registry()


@pytest.fixture
async def executor(
    registry: Registry, clock: FakeClock
) -> AsyncGenerator[CommandExecutor, None]:
    ex = CommandExecutor(registry, clock=clock)
    yield ex
    await ex.close()


@pytest.fixture
def router(registry: Registry, executor: CommandExecutor) -> Router:
    return Router(registry, executor)


def _entry(
    *tokens: str,
    method: str = "form.suggest",
    state: CorrelationState = CorrelationState.RESOLVED,
    result: object = None,
    reason: FailureReason | None = None,
) -> CorrelationEntry:
    return CorrelationEntry(
        correlation_id="c1",
        method=method,
        created_at=0.0,
        timeout_at=5.0,
        state=state,
        target_tokens=tokens,
        result=result,
        reason=reason,
    )


class TestPush:
    async def test_without_provider_fails_visibly(self, router: Router):
        executions = await router.route(
            PushEvent(method="form.suggest", params={"text": "x"})
        )

        assert len(executions) == 1
        execution = executions[0]
        assert execution.state == ExecutionState.FAILED
        assert execution.reason == FailureReason.NO_PROVIDER
        assert execution.target_instance_token is None

    async def test_single_provider(self, registry: Registry, router: Router):
        handler = RecordingHandler()
        token = registry.register(make_registration(handler=handler))

        executions = await router.route(
            PushEvent(method="form.suggest", params={"text": "123 Main St"})
        )

        assert [e.target_instance_token for e in executions] == [token]
        assert executions[0].state == ExecutionState.COMPLETED
        assert handler.calls == [{"text": "123 Main St"}]

    async def test_broadcasts_to_every_provider(
        self, registry: Registry, router: Router
    ):
        shipping = RecordingHandler()
        billing = RecordingHandler()
        a = registry.register(make_registration("shipping.AddressForm", handler=shipping))
        b = registry.register(make_registration("billing.AddressForm", handler=billing))

        executions = await router.route(PushEvent(method="form.suggest", params={}))

        assert [e.target_instance_token for e in executions] == [a, b]
        assert shipping.called and billing.called

    async def test_gated_provider_waits(self, registry: Registry, router: Router):
        registry.register(make_registration(requires_confirmation=True))

        executions = await router.route(PushEvent(method="form.suggest"))

        assert executions[0].state == ExecutionState.AWAITING_CONFIRMATION


class TestResponse:
    async def test_routes_to_send_time_target(self, registry: Registry, router: Router):
        handler = RecordingHandler()
        token = registry.register(make_registration("chat.Drawer", ("chat.send",), handler=handler))

        executions = await router.route(
            ResponseEvent(entry=_entry(token, method="chat.send", result={"text": "hello"}))
        )

        assert len(executions) == 1
        assert executions[0].correlation_id == "c1"
        assert executions[0].state == ExecutionState.COMPLETED
        assert handler.calls == [{"text": "hello"}]

    async def test_non_object_result_is_wrapped(self, registry: Registry, router: Router):
        handler = RecordingHandler()
        token = registry.register(make_registration(handler=handler))

        await router.route(ResponseEvent(entry=_entry(token, result="plain text")))

        assert handler.calls == [{"result": "plain text"}]

    async def test_gone_target_is_not_rerouted(self, registry: Registry, router: Router):
        original = registry.register(make_registration("shipping.AddressForm"))
        other_handler = RecordingHandler()
        registry.register(make_registration("billing.AddressForm", handler=other_handler))
        registry.unregister(original)

        executions = await router.route(ResponseEvent(entry=_entry(original, result={})))

        assert len(executions) == 1
        assert executions[0].state == ExecutionState.FAILED
        assert executions[0].reason == FailureReason.TARGET_UNAVAILABLE
        assert not other_handler.called

    async def test_error_response_fails_each_target(
        self, registry: Registry, router: Router
    ):
        handler = RecordingHandler()
        token = registry.register(make_registration(handler=handler))
        entry = _entry(token, state=CorrelationState.FAILED, reason=FailureReason.REMOTE_ERROR)

        executions = await router.route(
            ResponseEvent(entry=entry, error=RPCError(code=-32000, message="overloaded"))
        )

        assert executions[0].reason == FailureReason.REMOTE_ERROR
        assert "overloaded" in (executions[0].error_detail or "")
        assert not handler.called

    async def test_response_without_targets(self, router: Router):
        assert await router.route(ResponseEvent(entry=_entry())) == []


class TestRequestFailure:
    async def test_timeout_fails_targets(self, registry: Registry, router: Router):
        handler = RecordingHandler()
        token = registry.register(make_registration(handler=handler))
        entry = _entry(
            token,
            state=CorrelationState.TIMED_OUT,
            reason=FailureReason.REQUEST_TIMED_OUT,
        )

        executions = await router.route(RequestFailedEvent(entry=entry))

        assert [e.reason for e in executions] == [FailureReason.REQUEST_TIMED_OUT]
        assert executions[0].state == ExecutionState.FAILED
        assert not handler.called

    async def test_transport_loss_fails_targets(self, router: Router):
        entry = _entry(
            "cmp_a",
            "cmp_b",
            state=CorrelationState.FAILED,
            reason=FailureReason.TRANSPORT_LOST,
        )

        executions = await router.route(RequestFailedEvent(entry=entry))

        assert [e.target_instance_token for e in executions] == ["cmp_a", "cmp_b"]
        assert {e.reason for e in executions} == {FailureReason.TRANSPORT_LOST}
