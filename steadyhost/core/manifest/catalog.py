from __future__ import annotations

import os
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Optional

from pydantic import ValidationError

from steadyhost.core.errors import ManifestValidationError
from steadyhost.core.manifest.loader import MANIFEST_EXTENSIONS, load_manifest_dict
from steadyhost.core.manifest.models import AppEntry, ConfigModule


def _norm(s: str) -> str:
    return str(s or "").strip().lower()


class ConfigModuleCatalog:
    """
    Read-only registry of config modules, built once and passed explicitly.

    On disk a module is either `<catalog>/<id>.jsonc|json|yaml` or
    `<catalog>/<id>/module.jsonc|json|yaml`.
    """

    def __init__(self, modules: Iterable[ConfigModule] = ()):
        by_id: Dict[str, ConfigModule] = {}
        for m in modules:
            if m.id in by_id:
                raise ManifestValidationError("Duplicate config module id.", detail=m.id)
            by_id[m.id] = m
        self._modules: Mapping[str, ConfigModule] = MappingProxyType(by_id)

    @classmethod
    def from_dir(cls, catalog_dir: Optional[str]) -> "ConfigModuleCatalog":
        if not catalog_dir or not os.path.isdir(catalog_dir):
            return cls()
        modules: List[ConfigModule] = []
        for name in sorted(os.listdir(catalog_dir)):
            p = os.path.join(catalog_dir, name)
            if os.path.isdir(p):
                for ext in MANIFEST_EXTENSIONS:
                    candidate = os.path.join(p, f"module{ext}")
                    if os.path.isfile(candidate):
                        modules.append(_load_module(candidate))
                        break
            elif name.lower().endswith(MANIFEST_EXTENSIONS):
                modules.append(_load_module(p))
        return cls(modules)

    def __len__(self) -> int:
        return len(self._modules)

    def __contains__(self, module_id: str) -> bool:
        return module_id in self._modules

    def get(self, module_id: str) -> Optional[ConfigModule]:
        return self._modules.get(module_id)

    def ids(self) -> List[str]:
        return sorted(self._modules)

    def match(
        self,
        *,
        driver_ref: Optional[str] = None,
        exe_names: Iterable[str] = (),
        display_names: Iterable[str] = (),
    ) -> List[ConfigModule]:
        ref = _norm(driver_ref or "")
        exes = {_norm(x) for x in exe_names if x}
        names = {_norm(x) for x in display_names if x}
        out: List[ConfigModule] = []
        for mid in sorted(self._modules):
            m = self._modules[mid]
            mm = m.matches
            if ref and ref in {_norm(x) for x in mm.driver_refs}:
                out.append(m)
            elif exes and exes & {_norm(x) for x in mm.exe_names}:
                out.append(m)
            elif names and any(n.startswith(_norm(d)) for n in names for d in mm.uninstall_display_names if d):
                out.append(m)
        return out

    def match_app(self, app: AppEntry, *, platform: str, exe_names: Iterable[str] = (), display_names: Iterable[str] = ()) -> List[ConfigModule]:
        names = list(display_names)
        if app.display_name:
            names.append(app.display_name)
        return self.match(driver_ref=app.ref_for(platform), exe_names=exe_names, display_names=names)


def _load_module(path: str) -> ConfigModule:
    data = load_manifest_dict(path)
    try:
        return ConfigModule.model_validate(data)
    except ValidationError as e:
        raise ManifestValidationError("Config module is invalid.", detail=str(e), path=path) from e
