from steadyhost.core.drivers.base import Driver, DriverResult, InstalledApp
from steadyhost.core.drivers.registry import DriverRegistry, Inventory, discover_drivers, snapshot_inventory

__all__ = [
    "Driver",
    "DriverResult",
    "InstalledApp",
    "DriverRegistry",
    "Inventory",
    "discover_drivers",
    "snapshot_inventory",
]
