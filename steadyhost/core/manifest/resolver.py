from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from steadyhost.core.errors import ManifestNotFound, ManifestValidationError
from steadyhost.core.manifest.bundle import expanded_bundle, is_bundle_path
from steadyhost.core.manifest.catalog import ConfigModuleCatalog
from steadyhost.core.manifest.loader import MANIFEST_EXTENSIONS, load_manifest_dict, read_manifest_bytes
from steadyhost.core.manifest.models import SUPPORTED_MANIFEST_VERSION, AppEntry, Manifest
from steadyhost.core.state.hashing import manifest_hash_bytes

MAX_INCLUDE_DEPTH = 16


@dataclass
class _Layer:
    origin: str
    manifest: Manifest
    base_dir: str
    from_bundle: bool
    is_root: bool


@dataclass(frozen=True)
class ResolvedManifest:
    manifest: Manifest
    path: str
    manifest_dir: str
    manifest_hash: str
    sources: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def serialize(self) -> str:
        return serialize_manifest(self.manifest)


def serialize_manifest(manifest: Manifest) -> str:
    return json.dumps(manifest.to_wire(), indent=2, ensure_ascii=False, sort_keys=True) + "\n"


def validate_manifest_dict(data: Dict[str, Any], *, path: str, require_apps: bool = True) -> Manifest:
    if "version" not in data:
        raise ManifestValidationError("Manifest is missing `version`.", path=path)
    try:
        version = int(data.get("version"))
    except (TypeError, ValueError):
        raise ManifestValidationError("Manifest `version` must be an integer.", detail=repr(data.get("version")), path=path) from None
    if version != SUPPORTED_MANIFEST_VERSION:
        raise ManifestValidationError(
            "Manifest version is not supported.",
            detail=f"found {version}, supported {SUPPORTED_MANIFEST_VERSION}",
            path=path,
        )
    if require_apps and "apps" not in data and not data.get("includes"):
        raise ManifestValidationError("Manifest is missing `apps`.", path=path)
    try:
        return Manifest.model_validate(data)
    except ValidationError as e:
        raise ManifestValidationError(detail=str(e), path=path) from e


class ManifestResolver:
    def __init__(
        self,
        *,
        manifests_root: Optional[str] = None,
        catalog: Optional[ConfigModuleCatalog] = None,
        logger=None,
    ):
        self.manifests_root = manifests_root
        self.catalog = catalog or ConfigModuleCatalog()
        self.logger = logger

    # ---------- public API ----------
    def resolve(self, ref: str, *, base_dir: Optional[str] = None) -> ResolvedManifest:
        path = self.locate(ref, base_dir=base_dir or os.getcwd())
        if is_bundle_path(path):
            # restore sources of a root bundle resolve next to the archive (or the export root)
            with expanded_bundle(path) as (_bundle_dir, inner):
                resolved = self._resolve_file(inner, origin=path, manifest_dir=os.path.dirname(path))
            relative = [r.source for r in resolved.manifest.restore if not os.path.isabs(os.path.expanduser(r.source))]
            if relative:
                resolved.warnings.append(
                    f"bundle {os.path.basename(path)}: {len(relative)} restore source(s) resolve next to the archive, not inside it"
                )
            return resolved
        return self._resolve_file(path, origin=path, manifest_dir=os.path.dirname(path))

    def locate(self, ref: str, *, base_dir: str) -> str:
        """Profile name (looked up under manifests_root) or explicit path."""
        ref = str(ref or "").strip()
        if not ref:
            raise ManifestNotFound("Empty manifest reference.")
        expanded = os.path.expandvars(os.path.expanduser(ref))
        candidate = expanded if os.path.isabs(expanded) else os.path.join(base_dir, expanded)
        if os.path.isfile(candidate):
            return os.path.abspath(candidate)
        if self._looks_like_profile(ref):
            for p in self._profile_candidates(ref):
                if os.path.isfile(p):
                    return os.path.abspath(p)
        raise ManifestNotFound(detail=ref, ref=ref)

    # ---------- internals ----------
    def _looks_like_profile(self, ref: str) -> bool:
        if "/" in ref or "\\" in ref:
            return False
        return not ref.lower().endswith(MANIFEST_EXTENSIONS + (".zip",))

    def _profile_candidates(self, name: str) -> List[str]:
        if not self.manifests_root:
            return []
        out = []
        for sub in ("", "profiles"):
            for ext in MANIFEST_EXTENSIONS + (".zip",):
                out.append(os.path.join(self.manifests_root, sub, f"{name}{ext}"))
        return out

    def _resolve_file(self, path: str, *, origin: str, manifest_dir: str) -> ResolvedManifest:
        raw = read_manifest_bytes(path)
        mhash = manifest_hash_bytes(raw)
        layers: List[_Layer] = []
        warnings: List[str] = []
        self._collect(path, layers=layers, warnings=warnings, stack=[], from_bundle=False, is_root=True)
        merged = self._merge(layers, warnings)
        if self.logger:
            self.logger.info(
                "Resolved manifest %s: %d apps, %d restore, %d verify (%d layers)",
                origin,
                len(merged.apps),
                len(merged.restore),
                len(merged.verify),
                len(layers),
            )
            for w in warnings:
                self.logger.warning("manifest: %s", w)
        return ResolvedManifest(
            manifest=merged,
            path=os.path.abspath(origin),
            manifest_dir=os.path.abspath(manifest_dir),
            manifest_hash=mhash,
            sources=[layer.origin for layer in layers],
            warnings=warnings,
        )

    def _collect(self, path: str, *, layers: List[_Layer], warnings: List[str], stack: List[str], from_bundle: bool, is_root: bool) -> None:
        real = os.path.realpath(path)
        if real in stack:
            raise ManifestValidationError("Manifest include cycle.", detail=" -> ".join(stack + [real]))
        if len(stack) >= MAX_INCLUDE_DEPTH:
            raise ManifestValidationError("Manifest includes nest too deeply.", detail=path)

        data = load_manifest_dict(path)
        manifest = validate_manifest_dict(data, path=path, require_apps=is_root)
        base_dir = os.path.dirname(os.path.abspath(path))

        for inc in manifest.includes:
            inc_path = self.locate(inc, base_dir=base_dir)
            if is_bundle_path(inc_path):
                with expanded_bundle(inc_path) as (_bundle_dir, inner):
                    self._collect(inner, layers=layers, warnings=warnings, stack=stack + [real], from_bundle=True, is_root=False)
                    layers[-1].origin = inc_path
            else:
                self._collect(inc_path, layers=layers, warnings=warnings, stack=stack + [real], from_bundle=from_bundle, is_root=False)

        layers.append(_Layer(origin=path, manifest=manifest, base_dir=base_dir, from_bundle=from_bundle, is_root=is_root))

    def _merge(self, layers: List[_Layer], warnings: List[str]) -> Manifest:
        """
        Layers arrive lowest priority first: includes in listed order (depth
        first), the root manifest last. A later layer's app replaces an earlier
        one with the same id but keeps the first-seen position.
        """
        apps: Dict[str, AppEntry] = {}
        restore: List[Any] = []
        verify: List[Any] = []
        modules: List[str] = []
        exclude: List[str] = []
        exclude_configs: List[str] = []
        root = layers[-1]

        for layer in layers:
            seen_here: set = set()
            for app in layer.manifest.apps:
                if app.id in seen_here:
                    warnings.append(f"duplicate app id {app.id!r} in {layer.origin}; last entry wins")
                seen_here.add(app.id)
                apps[app.id] = app

            if layer.from_bundle and not layer.is_root and layer.manifest.restore:
                warnings.append(f"restore entries from bundle include {layer.origin} ignored")
            else:
                for r in layer.manifest.restore:
                    if not layer.is_root and not layer.from_bundle:
                        r = _rebase_source(r, layer.base_dir)
                    if r not in restore:
                        restore.append(r)

            for v in layer.manifest.verify:
                if v not in verify:
                    verify.append(v)
            for m in layer.manifest.config_modules:
                if m not in modules:
                    modules.append(m)
            for x in layer.manifest.exclude:
                if x not in exclude:
                    exclude.append(x)
            for x in layer.manifest.exclude_configs:
                if x not in exclude_configs:
                    exclude_configs.append(x)

        # filtering strictly after merge
        excluded = set(exclude)
        kept_apps = [a for a in apps.values() if a.id not in excluded]
        kept_modules = [m for m in modules if m not in set(exclude_configs)]

        for mid in kept_modules:
            module = self.catalog.get(mid)
            if module is None:
                warnings.append(f"config module {mid!r} not found in catalog")
                continue
            for r in module.restore:
                r = r.model_copy(update={"module_id": module.id, "sensitivity": module.sensitivity, "restorer": module.restorer})
                if r not in restore:
                    restore.append(r)
            for v in module.verify:
                if v not in verify:
                    verify.append(v)

        restore = [r for r in restore if r.module_id is None or r.module_id not in set(exclude_configs)]

        return Manifest(
            version=SUPPORTED_MANIFEST_VERSION,
            name=root.manifest.name,
            captured=root.manifest.captured,
            apps=kept_apps,
            restore=restore,
            verify=verify,
            includes=[],
            exclude=exclude,
            exclude_configs=exclude_configs,
            config_modules=kept_modules,
        )


def _rebase_source(r: Any, base_dir: str) -> Any:
    src = os.path.expandvars(os.path.expanduser(r.source))
    if os.path.isabs(src):
        return r
    return r.model_copy(update={"source": os.path.normpath(os.path.join(base_dir, src))})
