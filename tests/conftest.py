"""Shared test fixtures and factories."""

from collections.abc import AsyncGenerator, Iterable
from pathlib import Path
from typing import Any

import pytest

from switchboard.config import SwitchboardConfig
from switchboard.gateway import MemoryTransport
from switchboard.mediator import Mediator
from switchboard.types import CapabilityDescriptor, ComponentRegistration

# =============================================================================
# Helpers
# =============================================================================


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingHandler:
    """Capability handler that records payloads and returns a canned result."""

    def __init__(self, result: Any = None, error: Exception | None = None) -> None:
        self.calls: list[dict[str, Any]] = []
        self.result = {"ok": True} if result is None else result
        self.error = error

    def __call__(self, payload: dict[str, Any]) -> Any:
        self.calls.append(payload)
        if self.error is not None:
            raise self.error
        return self.result

    @property
    def called(self) -> bool:
        return bool(self.calls)


def make_registration(
    component_id: str = "shipping.AddressForm",
    methods: Iterable[str] = ("form.suggest",),
    *,
    handler: Any = None,
    requires_confirmation: bool = False,
    description: str | None = None,
) -> ComponentRegistration:
    handler = handler or RecordingHandler()
    return ComponentRegistration(
        id=component_id,
        display_name=component_id.rsplit(".", 1)[-1],
        purpose="test component",
        capabilities={
            method: CapabilityDescriptor(
                method=method,
                description=description or f"{method} on {component_id}",
                parameter_schema={"fields": ["text"]},
                handler=handler,
                requires_confirmation=requires_confirmation,
            )
            for method in methods
        },
    )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def transport() -> MemoryTransport:
    return MemoryTransport()


@pytest.fixture
def config() -> SwitchboardConfig:
    return SwitchboardConfig()


@pytest.fixture
async def mediator(
    transport: MemoryTransport, config: SwitchboardConfig
) -> AsyncGenerator[Mediator, None]:
    m = Mediator(transport, config=config)
    yield m
    await m.close()


@pytest.fixture
def config_toml_content() -> str:
    """Valid TOML config content."""
    return """
[registry]
instance_policy = "concurrent"

[gateway]
request_timeout_seconds = 5
disconnect_policy = "durable"

[executor]
confirmation_timeout_seconds = 120
"""


@pytest.fixture
def config_file(tmp_path: Path, config_toml_content: str) -> Path:
    """Create a temporary config file."""
    config_path = tmp_path / "config.toml"
    config_path.write_text(config_toml_content)
    return config_path


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner with colors disabled."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})
