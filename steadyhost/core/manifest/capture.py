from __future__ import annotations

import json
import os
from typing import Iterable, List, Optional

import yaml

from steadyhost.core.config.paths import ensure_dirs
from steadyhost.core.drivers.registry import DriverRegistry
from steadyhost.core.manifest.catalog import ConfigModuleCatalog
from steadyhost.core.manifest.loader import is_yaml_path
from steadyhost.core.manifest.models import SUPPORTED_MANIFEST_VERSION, AppEntry, Manifest
from steadyhost.core.plan.generator import current_platform
from steadyhost.core.runid import utc_now_iso


def capture_manifest(
    registry: DriverRegistry,
    *,
    driver: Optional[str] = None,
    name: str = "captured",
    platform: Optional[str] = None,
    catalog: Optional[ConfigModuleCatalog] = None,
    exclude: Iterable[str] = (),
    captured_at: Optional[str] = None,
    logger=None,
) -> Manifest:
    """
    Snapshot a driver's installed inventory as a manifest. Apps are sorted by
    id; when a catalog is given, matching config modules are referenced.
    """
    platform = platform or current_platform()
    d = registry.get(driver)
    registry.require_available([d.name])
    skip = {x.lower() for x in exclude}
    apps: List[AppEntry] = []
    for item in sorted(d.list_installed(), key=lambda i: str(i.id).lower()):
        if str(item.id).lower() in skip:
            continue
        entry = {"id": item.id, "refs": {platform: item.id}}
        if d.name != registry.primary:
            entry["driver"] = d.name
        if item.display_name:
            entry["displayName"] = item.display_name
        apps.append(AppEntry.model_validate(entry))

    modules: List[str] = []
    if catalog is not None:
        for app in apps:
            for m in catalog.match_app(app, platform=platform):
                if m.id not in modules:
                    modules.append(m.id)

    if logger:
        logger.info("Captured %d apps from %s (%d config modules)", len(apps), d.name, len(modules))
    return Manifest(
        version=SUPPORTED_MANIFEST_VERSION,
        name=name,
        captured=captured_at or utc_now_iso(),
        apps=apps,
        config_modules=modules,
    )


def write_manifest(manifest: Manifest, path: str) -> str:
    """JSON, or YAML when the path says so; key order is deterministic."""
    data = manifest.to_wire()
    ensure_dirs(os.path.dirname(os.path.abspath(path)))
    if is_yaml_path(path):
        text = yaml.safe_dump(data, sort_keys=True, allow_unicode=True, default_flow_style=False)
    else:
        text = json.dumps(data, indent=2, ensure_ascii=False, sort_keys=True) + "\n"
    with open(path, "w", encoding="utf-8") as f:
        f.write(text)
    return path
