"""Capability manifest aggregation."""

from __future__ import annotations

from switchboard.registry import Registry
from switchboard.types import CapabilityManifest, ProviderEntry


class CapabilityAggregator:
    """Builds manifests from registry snapshots on demand."""

    def __init__(self, registry: Registry) -> None:
        self._registry = registry

    def build_manifest(self) -> CapabilityManifest:
        """Snapshot the registry into a deduplicated manifest.

        Methods are sorted; providers of each method keep registration order
        so the same registry state always yields the same manifest.
        """
        version, registrations = self._registry.snapshot()
        providers: dict[str, list[ProviderEntry]] = {}
        for registration in registrations:
            token = registration.instance_token or ""
            for method in sorted(registration.capabilities):
                descriptor = registration.capabilities[method]
                providers.setdefault(method, []).append(
                    ProviderEntry(
                        component_id=registration.id,
                        instance_token=token,
                        description=descriptor.description,
                        requires_confirmation=descriptor.requires_confirmation,
                        parameter_schema=dict(descriptor.parameter_schema),
                    )
                )

        methods = tuple(sorted(providers))
        return CapabilityManifest(
            version=version,
            methods=methods,
            providers={method: tuple(providers[method]) for method in methods},
        )
