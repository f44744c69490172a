"""Registry of live component registrations."""

from __future__ import annotations

import itertools
import logging
import copy
import re
import secrets
from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import Literal, cast

from switchboard.errors import FailureReason, MediatorError
from switchboard.types import (
    CapabilityDescriptor,
    ComponentRegistration,
    Handler,
)

logger = logging.getLogger(__name__)

_METHOD_NAME = re.compile(r"^[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)+$")

InstancePolicy = Literal["supersede", "concurrent"]


class ChangeKind(StrEnum):
    REGISTERED = "registered"
    UNREGISTERED = "unregistered"


@dataclass(slots=True, frozen=True)
class RegistryChange:
    """Notification sent to registry listeners after each mutation."""

    kind: ChangeKind
    registration: ComponentRegistration
    version: int


RegistryListener = Callable[[RegistryChange], None]


class Registry:
    """Single-writer table of live registrations keyed by instance token.

    Handlers live in a separate table and are only handed out through
    ``handler_for``; everything else sees descriptors with ``handler=None``.
    """

    def __init__(self, *, instance_policy: InstancePolicy = "supersede") -> None:
        self._instance_policy = instance_policy
        self._registrations: dict[str, ComponentRegistration] = {}
        self._handlers: dict[tuple[str, str], Handler] = {}
        self._listeners: list[RegistryListener] = []
        self._sequence = itertools.count(1)
        self._version = 0

    @property
    def version(self) -> int:
        return self._version

    @property
    def instance_policy(self) -> InstancePolicy:
        return self._instance_policy

    def add_listener(self, listener: RegistryListener) -> None:
        self._listeners.append(listener)

    def register(self, registration: ComponentRegistration) -> str:
        """Validate and store a registration, returning its instance token.

        Validation finishes before anything is superseded, so a rejected
        registration leaves the registry untouched.
        """
        component_id, display_name, purpose, capabilities = _validate(registration)

        if self._instance_policy == "supersede":
            for existing in self._find_by_id(component_id):
                logger.info(
                    "registration_superseded",
                    extra={
                        "component_id": component_id,
                        "instance_token": existing.instance_token,
                    },
                )
                self.unregister(existing.instance_token or "")

        token = f"cmp_{secrets.token_hex(12)}"
        stored = ComponentRegistration(
            id=component_id,
            capabilities={
                method: replace(descriptor, handler=None)
                for method, descriptor in capabilities.items()
            },
            display_name=display_name,
            purpose=purpose,
            instance_token=token,
            registered_at=next(self._sequence),
        )
        self._registrations[token] = stored
        for method, descriptor in capabilities.items():
            self._handlers[(token, method)] = cast(Handler, descriptor.handler)

        self._version += 1
        logger.debug(
            "component_registered",
            extra={
                "component_id": component_id,
                "instance_token": token,
                "methods": sorted(capabilities),
            },
        )
        self._notify(ChangeKind.REGISTERED, stored)
        return token

    def unregister(self, instance_token: str) -> None:
        """Remove a registration. Unknown or already-removed tokens are ignored."""
        registration = self._registrations.pop(instance_token, None)
        if registration is None:
            return
        for method in registration.capabilities:
            self._handlers.pop((instance_token, method), None)

        self._version += 1
        logger.debug(
            "component_unregistered",
            extra={
                "component_id": registration.id,
                "instance_token": instance_token,
            },
        )
        self._notify(ChangeKind.UNREGISTERED, registration)

    def clear(self) -> None:
        for token in list(self._registrations):
            self.unregister(token)

    def lookup(self, instance_token: str) -> ComponentRegistration | None:
        registration = self._registrations.get(instance_token)
        if registration is None:
            return None
        return _copy(registration)

    def is_live(self, instance_token: str) -> bool:
        return instance_token in self._registrations

    def find_providers(self, method: str) -> list[ComponentRegistration]:
        """Live registrations offering ``method``, oldest first."""
        return [
            _copy(registration)
            for registration in self._ordered()
            if method in registration.capabilities
        ]

    def snapshot(self) -> tuple[int, list[ComponentRegistration]]:
        """Consistent copy of the current contents with the version it reflects."""
        return self._version, [_copy(r) for r in self._ordered()]

    def handler_for(self, instance_token: str, method: str) -> Handler | None:
        """Handler reference for one capability.

        Only the command executor calls this.
        """
        return self._handlers.get((instance_token, method))

    def _ordered(self) -> list[ComponentRegistration]:
        return sorted(self._registrations.values(), key=lambda r: r.registered_at)

    def _find_by_id(self, component_id: str) -> list[ComponentRegistration]:
        return [r for r in self._ordered() if r.id == component_id]

    def _notify(self, kind: ChangeKind, registration: ComponentRegistration) -> None:
        change = RegistryChange(
            kind=kind, registration=_copy(registration), version=self._version
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception:
                logger.warning("registry_listener_failed", exc_info=True)

    def __len__(self) -> int:
        return len(self._registrations)

    def __contains__(self, instance_token: object) -> bool:
        return instance_token in self._registrations


def _copy(registration: ComponentRegistration) -> ComponentRegistration:
    return replace(
        registration,
        capabilities={
            method: replace(
                descriptor, parameter_schema=copy.deepcopy(descriptor.parameter_schema)
            )
            for method, descriptor in registration.capabilities.items()
        },
    )


def _invalid(message: str) -> MediatorError:
    return MediatorError(FailureReason.INVALID_REGISTRATION, message)


def _text(value: object, field_name: str) -> str:
    if not isinstance(value, str):
        raise _invalid(f"{field_name} must be a string, got {type(value).__name__}")
    return value.strip()


def _validate(
    registration: ComponentRegistration,
) -> tuple[str, str, str, dict[str, CapabilityDescriptor]]:
    if not isinstance(registration, ComponentRegistration):
        raise _invalid(
            f"expected a ComponentRegistration, got {type(registration).__name__}"
        )

    component_id = _text(registration.id, "component id")
    if not component_id:
        raise _invalid("component id is required")
    if any(ch.isspace() for ch in component_id):
        raise _invalid(f"component id must not contain whitespace: {component_id!r}")

    display_name = _text(registration.display_name, "display_name")
    purpose = _text(registration.purpose, "purpose")

    if not isinstance(registration.capabilities, Mapping):
        raise _invalid(
            f"component '{component_id}' capabilities must be a mapping of "
            "method to CapabilityDescriptor"
        )
    if not registration.capabilities:
        raise _invalid(f"component '{component_id}' must offer at least one capability")

    capabilities: dict[str, CapabilityDescriptor] = {}
    for key, descriptor in registration.capabilities.items():
        if not isinstance(descriptor, CapabilityDescriptor):
            raise _invalid(
                f"capability {key!r} must be a CapabilityDescriptor, "
                f"got {type(descriptor).__name__}"
            )
        if not isinstance(key, str) or not isinstance(descriptor.method, str):
            raise _invalid(f"capability method must be a string: {key!r}")
        method = key.strip()
        if not _METHOD_NAME.match(method):
            raise _invalid(
                f"capability method must be dot-namespaced (e.g. form.suggest): {key!r}"
            )
        if method != descriptor.method.strip():
            raise _invalid(
                f"capability key '{key}' must match descriptor.method "
                f"'{descriptor.method}'"
            )
        if method in capabilities:
            raise _invalid(f"duplicate capability method: {method}")
        if not callable(descriptor.handler):
            raise _invalid(f"capability '{method}' handler must be callable")
        if not isinstance(descriptor.parameter_schema, Mapping):
            raise _invalid(f"capability '{method}' parameter_schema must be a mapping")
        capabilities[method] = replace(
            descriptor,
            method=method,
            description=_text(
                descriptor.description, f"capability '{method}' description"
            ),
            parameter_schema=copy.deepcopy(dict(descriptor.parameter_schema)),
            requires_confirmation=bool(descriptor.requires_confirmation),
        )
    return component_id, display_name, purpose, capabilities
