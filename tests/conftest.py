"""
Shared pytest fixtures for bless-fleet tests.

Fixtures are function-scoped so every test gets a fresh registry, clock and
fake client; nothing here touches the network.
"""

from typing import Callable

import pytest

from bless_fleet.config import FleetConfig
from bless_fleet.registry import NodeRegistry
from bless_fleet.supervisor import NodeSupervisor
from tests.fakes import FakeClient, FakeClock, make_node


@pytest.fixture
def registry() -> NodeRegistry:
    return NodeRegistry()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def node():
    return make_node("N1", hardware_id="hw-N1")


@pytest.fixture
def fast_config() -> FleetConfig:
    """Config with the production timings, driven by the fake clock in tests."""
    return FleetConfig(ping_interval=120.0, restart_delay=240.0, max_ping_errors=3)


@pytest.fixture
def make_supervisor(registry, clock, fast_config) -> Callable[..., NodeSupervisor]:
    """Factory for supervisors wired to the shared registry and fake clock."""

    def _make(node, client: FakeClient, **overrides) -> NodeSupervisor:
        kwargs = {
            "ping_interval": fast_config.ping_interval,
            "restart_delay": fast_config.restart_delay,
            "max_ping_errors": fast_config.max_ping_errors,
            "sleep": clock.sleep,
        }
        kwargs.update(overrides)
        return NodeSupervisor(node, client, registry, **kwargs)

    return _make
