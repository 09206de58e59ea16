"""bless-fleet: keeps a fleet of Bless network nodes registered and pinging.

Usage:
    from bless_fleet import FleetCoordinator, FleetConfig, load_accounts

    coordinator = FleetCoordinator(load_accounts("config.json"), FleetConfig.from_env())
    await coordinator.run()
"""

__version__ = "0.2.0"

from bless_fleet.config import FleetConfig, load_accounts
from bless_fleet.coordinator import FleetCoordinator, ShutdownReport
from bless_fleet.network import BlessClient
from bless_fleet.registry import NodeRegistry
from bless_fleet.supervisor import NodeSupervisor, SupervisorState

__all__ = [
    "BlessClient",
    "FleetConfig",
    "FleetCoordinator",
    "NodeRegistry",
    "NodeSupervisor",
    "ShutdownReport",
    "SupervisorState",
    "__version__",
    "load_accounts",
]
