"""Tests for the component registry."""

from __future__ import annotations

import pytest

from switchboard.errors import MediatorError
from switchboard.registry import ChangeKind, Registry, RegistryChange
from switchboard.types import CapabilityDescriptor, ComponentRegistration
from tests.conftest import RecordingHandler, make_registration


class TestRegister:
    def test_lookup_returns_registered_capabilities(self):
        registry = Registry()
        registration = make_registration(methods=("form.suggest", "form.fill"))

        token = registry.register(registration)
        stored = registry.lookup(token)

        assert stored is not None
        assert stored.id == "shipping.AddressForm"
        assert stored.instance_token == token
        assert stored.capabilities == registration.capabilities

    def test_tokens_are_unique(self):
        registry = Registry(instance_policy="concurrent")
        tokens = {registry.register(make_registration()) for _ in range(5)}
        assert len(tokens) == 5
        assert all(token.startswith("cmp_") for token in tokens)

    def test_lookup_never_exposes_handler(self):
        registry = Registry()
        handler = RecordingHandler()
        token = registry.register(make_registration(handler=handler))

        stored = registry.lookup(token)
        assert stored is not None
        assert stored.capabilities["form.suggest"].handler is None
        assert registry.find_providers("form.suggest")[0].capabilities[
            "form.suggest"
        ].handler is None
        assert registry.handler_for(token, "form.suggest") is handler

    def test_stored_copy_is_isolated_from_caller(self):
        registry = Registry()
        registration = make_registration()
        token = registry.register(registration)

        registration.capabilities["form.extra"] = CapabilityDescriptor(
            method="form.extra", description="added later", handler=RecordingHandler()
        )
        stored = registry.lookup(token)
        assert stored is not None
        assert "form.extra" not in stored.capabilities

        stored.capabilities.clear()
        assert registry.find_providers("form.suggest")

    def test_returned_descriptors_are_copies(self):
        registry = Registry()
        token = registry.register(make_registration(requires_confirmation=True))

        stored = registry.lookup(token)
        assert stored is not None
        descriptor = stored.capabilities["form.suggest"]
        descriptor.requires_confirmation = False
        descriptor.description = "edited"
        descriptor.parameter_schema["fields"].append("extra")
        registry.find_providers("form.suggest")[0].capabilities[
            "form.suggest"
        ].description = "edited again"

        _, (fresh,) = registry.snapshot()
        assert fresh.capabilities["form.suggest"].requires_confirmation is True
        assert fresh.capabilities["form.suggest"].description.startswith("form.suggest")
        assert fresh.capabilities["form.suggest"].parameter_schema == {
            "fields": ["text"]
        }

    def test_assigns_increasing_sequence(self):
        registry = Registry(instance_policy="concurrent")
        first = registry.lookup(registry.register(make_registration("a.One")))
        second = registry.lookup(registry.register(make_registration("b.Two")))
        assert first is not None and second is not None
        assert second.registered_at > first.registered_at

    def test_version_bumps_on_each_mutation(self):
        registry = Registry()
        assert registry.version == 0
        token = registry.register(make_registration())
        assert registry.version == 1
        registry.unregister(token)
        assert registry.version == 2


class TestInvalidRegistration:
    @pytest.mark.parametrize(
        "registration",
        [
            make_registration(component_id=""),
            make_registration(component_id="   "),
            make_registration(component_id="shipping Address"),
            ComponentRegistration(id="shipping.AddressForm", capabilities={}),
            make_registration(methods=("suggest",)),
            make_registration(methods=("form.",)),
            ComponentRegistration(
                id="shipping.AddressForm",
                capabilities={
                    "form.suggest": CapabilityDescriptor(
                        method="form.fill",
                        description="mismatched key",
                        handler=RecordingHandler(),
                    )
                },
            ),
            ComponentRegistration(
                id="shipping.AddressForm",
                capabilities={
                    "form.suggest": CapabilityDescriptor(
                        method="form.suggest",
                        description="no handler",
                    )
                },
            ),
            ComponentRegistration(
                id="shipping.AddressForm",
                capabilities=[  # type: ignore[arg-type]
                    CapabilityDescriptor(
                        method="form.suggest",
                        description="listed",
                        handler=RecordingHandler(),
                    )
                ],
            ),
            ComponentRegistration(
                id="shipping.AddressForm",
                capabilities={
                    "form.suggest": CapabilityDescriptor(
                        method="form.suggest",
                        description=None,  # type: ignore[arg-type]
                        handler=RecordingHandler(),
                    )
                },
            ),
            ComponentRegistration(
                id="shipping.AddressForm",
                capabilities={
                    "form.suggest": {  # type: ignore[dict-item]
                        "method": "form.suggest",
                        "description": "plain dict",
                        "handler": RecordingHandler(),
                    }
                },
            ),
            ComponentRegistration(
                id="shipping.AddressForm",
                display_name=None,  # type: ignore[arg-type]
                capabilities=make_registration().capabilities,
            ),
            ComponentRegistration(
                id="shipping.AddressForm",
                capabilities={
                    42: CapabilityDescriptor(  # type: ignore[dict-item]
                        method="form.suggest",
                        description="numeric key",
                        handler=RecordingHandler(),
                    )
                },
            ),
            ComponentRegistration(
                id="shipping.AddressForm",
                capabilities={
                    "form.suggest": CapabilityDescriptor(
                        method=None,  # type: ignore[arg-type]
                        description="no method",
                        handler=RecordingHandler(),
                    )
                },
            ),
            ComponentRegistration(id=None),  # type: ignore[arg-type]
        ],
        ids=[
            "empty-id",
            "blank-id",
            "whitespace-id",
            "no-capabilities",
            "unnamespaced-method",
            "trailing-dot-method",
            "key-mismatch",
            "missing-handler",
            "capabilities-list",
            "description-none",
            "descriptor-dict",
            "display-name-none",
            "non-string-key",
            "method-none",
            "id-none",
        ],
    )
    def test_rejected_synchronously(self, registration):
        registry = Registry()
        with pytest.raises(MediatorError) as exc_info:
            registry.register(registration)

        assert exc_info.value.code == "invalid_registration"
        assert len(registry) == 0
        assert registry.version == 0

    def test_rejection_does_not_disturb_live_registration(self):
        registry = Registry()
        token = registry.register(make_registration())

        with pytest.raises(MediatorError):
            registry.register(make_registration(methods=("bad",)))

        assert registry.lookup(token) is not None

    def test_rejected_supersede_keeps_previous_instance(self):
        registry = Registry()
        changes: list[RegistryChange] = []
        token = registry.register(make_registration())
        registry.add_listener(changes.append)
        bad = make_registration()
        bad.display_name = None  # type: ignore[assignment]

        with pytest.raises(MediatorError) as exc_info:
            registry.register(bad)

        assert exc_info.value.code == "invalid_registration"
        assert registry.lookup(token) is not None
        assert registry.handler_for(token, "form.suggest") is not None
        assert len(registry) == 1
        assert changes == []


class TestUnregister:
    def test_is_idempotent(self):
        registry = Registry()
        token = registry.register(make_registration())

        registry.unregister(token)
        assert registry.lookup(token) is None
        registry.unregister(token)
        assert registry.lookup(token) is None

    def test_unknown_token_is_noop(self):
        registry = Registry()
        registry.register(make_registration())
        version = registry.version

        registry.unregister("cmp_unknown")

        assert registry.version == version
        assert len(registry) == 1

    def test_drops_handlers(self):
        registry = Registry()
        token = registry.register(make_registration())
        registry.unregister(token)
        assert registry.handler_for(token, "form.suggest") is None

    def test_clear_removes_everything(self):
        registry = Registry(instance_policy="concurrent")
        registry.register(make_registration("a.One"))
        registry.register(make_registration("b.Two"))

        registry.clear()

        assert len(registry) == 0
        assert registry.find_providers("form.suggest") == []


class TestInstancePolicy:
    def test_supersede_replaces_same_id(self):
        registry = Registry()
        changes: list[RegistryChange] = []
        registry.add_listener(changes.append)

        first = registry.register(make_registration())
        second = registry.register(make_registration())

        assert registry.lookup(first) is None
        assert registry.lookup(second) is not None
        assert len(registry) == 1
        assert [(c.kind, c.registration.instance_token) for c in changes] == [
            (ChangeKind.REGISTERED, first),
            (ChangeKind.UNREGISTERED, first),
            (ChangeKind.REGISTERED, second),
        ]

    def test_supersede_keeps_other_ids(self):
        registry = Registry()
        other = registry.register(make_registration("billing.CardForm"))
        registry.register(make_registration())
        registry.register(make_registration())

        assert registry.lookup(other) is not None
        assert len(registry) == 2

    def test_concurrent_keeps_both_instances(self):
        registry = Registry(instance_policy="concurrent")
        first = registry.register(make_registration())
        second = registry.register(make_registration())

        providers = registry.find_providers("form.suggest")
        assert [p.instance_token for p in providers] == [first, second]


class TestFindProviders:
    def test_orders_by_registration(self):
        registry = Registry()
        a = registry.register(make_registration("z.Last"))
        b = registry.register(make_registration("a.First"))
        registry.register(make_registration("m.Other", methods=("chat.send",)))

        providers = registry.find_providers("form.suggest")
        assert [p.instance_token for p in providers] == [a, b]

    def test_unknown_method(self):
        registry = Registry()
        registry.register(make_registration())
        assert registry.find_providers("chat.send") == []


class TestListeners:
    def test_failing_listener_does_not_block_mutation(self):
        registry = Registry()

        def _boom(change: RegistryChange) -> None:
            raise RuntimeError("listener failure")

        seen: list[RegistryChange] = []
        registry.add_listener(_boom)
        registry.add_listener(seen.append)

        token = registry.register(make_registration())

        assert token in registry
        assert len(seen) == 1
        assert seen[0].version == registry.version
