from __future__ import annotations

from importlib.metadata import entry_points
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

from steadyhost.core.drivers.base import Driver
from steadyhost.core.errors import DriverUnavailable

DRIVER_ENTRY_POINT_GROUP = "steadyhost.drivers"

# driver name -> ref -> version ("" when the driver does not report one)
Inventory = Dict[str, Dict[str, str]]


class DriverRegistry:
    """Immutable name -> Driver mapping, built once per process and passed explicitly."""

    def __init__(self, drivers: Iterable[Driver], *, primary: Optional[str] = None):
        by_name: Dict[str, Driver] = {}
        for d in drivers:
            by_name[str(d.name)] = d
        self._drivers: Mapping[str, Driver] = MappingProxyType(by_name)
        if primary is None:
            primary = next(iter(by_name), "")
        self.primary = primary

    def names(self) -> List[str]:
        return list(self._drivers)

    def get(self, name: Optional[str]) -> Driver:
        key = name or self.primary
        d = self._drivers.get(key)
        if d is None:
            raise DriverUnavailable(detail=f"no driver registered as {key!r}", driver=key)
        return d

    def require_available(self, names: Iterable[str]) -> None:
        for n in sorted(set(names)):
            d = self.get(n)
            try:
                ok = bool(d.is_available())
            except Exception as e:  # noqa: BLE001
                raise DriverUnavailable(detail=f"{n}: {e}", driver=n) from e
            if not ok:
                raise DriverUnavailable(detail=f"{n} is not available on this host", driver=n)

    def supports_upgrade(self) -> Dict[str, bool]:
        return {n: bool(d.supports_upgrade()) for n, d in self._drivers.items()}


def snapshot_inventory(registry: DriverRegistry, driver_names: Iterable[str], *, logger=None) -> Inventory:
    """Query list_installed() once per driver. A driver that cannot list is fatal."""
    inv: Inventory = {}
    for name in sorted(set(driver_names)):
        registry.require_available([name])
        d = registry.get(name)
        try:
            items = d.list_installed()
        except Exception as e:  # noqa: BLE001
            raise DriverUnavailable("Installer driver could not list installed apps.", detail=f"{name}: {e}", driver=name) from e
        inv[name] = {str(i.id): str(i.version or "") for i in items}
        if logger:
            logger.info("Inventory %s: %d installed", name, len(inv[name]))
    return inv


def discover_drivers(*, group: str = DRIVER_ENTRY_POINT_GROUP, logger=None) -> List[Driver]:
    """Instantiate drivers published by installed plugins under the `steadyhost.drivers` entry-point group."""
    out: List[Driver] = []
    for ep in entry_points(group=group):
        try:
            out.append(ep.load()())
        except Exception as e:  # noqa: BLE001
            if logger:
                logger.warning("Driver plugin %s failed to load: %s", ep.name, e)
    return out
