"""
Manifest data model.

User-authored input tolerates unknown keys (extra="ignore") so manifests
written for newer engines still load; engine-owned records elsewhere use
extra="forbid". Wire names are camelCase; attributes are snake_case.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from steadyhost.core.plan.versions import parse_constraint

SUPPORTED_MANIFEST_VERSION = 1


class ConflictPolicy(str, Enum):
    skip = "skip"
    backup_and_overwrite = "backup-and-overwrite"
    overwrite = "overwrite"


class Sensitivity(str, Enum):
    low = "low"
    medium = "medium"
    high = "high"


class RestorerPolicy(str, Enum):
    warn_only = "warn-only"
    block = "block"


_INPUT = ConfigDict(extra="ignore", populate_by_name=True)


class AppEntry(BaseModel):
    model_config = _INPUT

    id: str = Field(min_length=1)
    driver: Optional[str] = None
    refs: Dict[str, str] = Field(default_factory=dict)
    version: Optional[str] = None
    display_name: Optional[str] = Field(default=None, alias="displayName")

    @field_validator("id")
    @classmethod
    def _id_stripped(cls, v: str) -> str:
        v = str(v or "").strip()
        if not v:
            raise ValueError("app id required")
        return v

    @field_validator("version")
    @classmethod
    def _constraint_parses(cls, v: Optional[str]) -> Optional[str]:
        if v is None or str(v).strip() == "":
            return None
        parse_constraint(v)
        return str(v).strip()

    def driver_name(self, primary: str) -> str:
        return self.driver or primary

    def ref_for(self, platform: str) -> str:
        return self.refs.get(platform) or self.id


# ---- restore ----
class _RestoreBase(BaseModel):
    model_config = _INPUT

    source: str = Field(min_length=1)
    target: str = Field(min_length=1)
    backup: bool = True
    optional: bool = False
    on_conflict: ConflictPolicy = Field(default=ConflictPolicy.skip, alias="onConflict")

    # set by config-module expansion
    module_id: Optional[str] = Field(default=None, alias="moduleId")
    sensitivity: Sensitivity = Sensitivity.low
    restorer: Optional[RestorerPolicy] = None


class CopyRestore(_RestoreBase):
    type: Literal["copy"] = "copy"


class MergeJsonRestore(_RestoreBase):
    type: Literal["merge-json"] = "merge-json"


class MergeIniRestore(_RestoreBase):
    type: Literal["merge-ini"] = "merge-ini"


class AppendRestore(_RestoreBase):
    type: Literal["append"] = "append"


RestoreAction = Annotated[
    Union[CopyRestore, MergeJsonRestore, MergeIniRestore, AppendRestore],
    Field(discriminator="type"),
]


# ---- verify ----
class FileExistsCheck(BaseModel):
    model_config = _INPUT
    type: Literal["file-exists"] = "file-exists"
    path: str = Field(min_length=1)


class CommandExistsCheck(BaseModel):
    model_config = _INPUT
    type: Literal["command-exists"] = "command-exists"
    command: str = Field(min_length=1)


class RegistryKeyExistsCheck(BaseModel):
    model_config = _INPUT
    type: Literal["registry-key-exists"] = "registry-key-exists"
    path: str = Field(min_length=1)
    value_name: Optional[str] = Field(default=None, alias="valueName")


class VersionCheck(BaseModel):
    model_config = _INPUT
    type: Literal["version"] = "version"
    constraint: str = Field(min_length=1)
    app: Optional[str] = None
    command: Optional[str] = None
    args: List[str] = Field(default_factory=lambda: ["--version"])

    @field_validator("constraint")
    @classmethod
    def _constraint_parses(cls, v: str) -> str:
        parse_constraint(v)
        return v

    @model_validator(mode="after")
    def _needs_subject(self) -> "VersionCheck":
        if not self.app and not self.command:
            raise ValueError("version check needs `app` or `command`")
        return self


VerifyCheck = Annotated[
    Union[FileExistsCheck, CommandExistsCheck, RegistryKeyExistsCheck, VersionCheck],
    Field(discriminator="type"),
]


def _default_restore_type(v: Any) -> Any:
    if isinstance(v, list):
        out = []
        for item in v:
            if isinstance(item, dict) and "type" not in item:
                item = dict(item, type="copy")
            out.append(item)
        return out
    return v


class Manifest(BaseModel):
    model_config = _INPUT

    version: int
    name: str = ""
    captured: Optional[str] = None
    apps: List[AppEntry] = Field(default_factory=list)
    restore: List[RestoreAction] = Field(default_factory=list)
    verify: List[VerifyCheck] = Field(default_factory=list)
    includes: List[str] = Field(default_factory=list)
    exclude: List[str] = Field(default_factory=list)
    exclude_configs: List[str] = Field(default_factory=list, alias="excludeConfigs")
    config_modules: List[str] = Field(default_factory=list, alias="configModules")

    @field_validator("version")
    @classmethod
    def _supported_version(cls, v: int) -> int:
        if int(v) != SUPPORTED_MANIFEST_VERSION:
            raise ValueError(f"unsupported manifest version {v}; supported: {SUPPORTED_MANIFEST_VERSION}")
        return int(v)

    @field_validator("restore", mode="before")
    @classmethod
    def _restore_type_default(cls, v: Any) -> Any:
        return _default_restore_type(v)

    def app_ids(self) -> List[str]:
        return [a.id for a in self.apps]

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


# ---- config modules (catalog entries) ----
class ModuleMatch(BaseModel):
    model_config = _INPUT
    driver_refs: List[str] = Field(default_factory=list, alias="driverRefs")
    exe_names: List[str] = Field(default_factory=list, alias="exeNames")
    uninstall_display_names: List[str] = Field(default_factory=list, alias="uninstallDisplayNames")


class ConfigModule(BaseModel):
    model_config = _INPUT

    id: str = Field(min_length=1)
    display_name: str = Field(default="", alias="displayName")
    sensitivity: Sensitivity = Sensitivity.low
    restorer: RestorerPolicy = RestorerPolicy.warn_only
    matches: ModuleMatch = Field(default_factory=ModuleMatch)
    restore: List[RestoreAction] = Field(default_factory=list)
    verify: List[VerifyCheck] = Field(default_factory=list)

    @field_validator("restore", mode="before")
    @classmethod
    def _restore_type_default(cls, v: Any) -> Any:
        return _default_restore_type(v)
