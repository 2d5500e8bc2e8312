from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_UNSAFE_PARALLEL_PATTERNS: List[str] = [
    # installers that share a machine-wide lock or registry hive
    "Microsoft.VisualStudio*",
    "Microsoft.Office*",
    "Microsoft.VCRedist*",
    "Microsoft.DotNet*",
    "Microsoft.WindowsSDK*",
    "Docker.DockerDesktop",
    "*.msi",
    "apt:*",
    "dpkg:*",
]

DEFAULT_SENSITIVE_PATHS: List[str] = [
    "~/.ssh/*",
    "~/.ssh",
    "~/.gnupg/*",
    "~/.aws/credentials",
    "~/.aws/*",
    "~/.azure/*",
    "~/.config/gcloud/*",
    "~/.kube/config",
    "~/.docker/config.json",
    "~/.netrc",
    "~/.git-credentials",
    "%APPDATA%/Microsoft/Credentials/*",
    "%LOCALAPPDATA%/Microsoft/Credentials/*",
    "%APPDATA%/Microsoft/Protect/*",
]


class EngineConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    schema_version: int = Field(default=1, ge=1, le=1)
    state_root: str = "."
    manifests_root: str = "manifests"
    catalog_dir: Optional[str] = None
    primary_driver: str = "winget"
    max_parallel: int = Field(default=4, ge=1, le=32)
    unsafe_parallel_patterns: List[str] = Field(default_factory=lambda: list(DEFAULT_UNSAFE_PARALLEL_PATTERNS))
    sensitive_paths: List[str] = Field(default_factory=lambda: list(DEFAULT_SENSITIVE_PATHS))
    host_qualified_run_ids: bool = False
    log_dir: Optional[str] = None
    backup_keep: int = Field(default=10, ge=1, le=200)

    @field_validator("unsafe_parallel_patterns", "sensitive_paths", mode="before")
    @classmethod
    def _norm_patterns(cls, v):  # noqa: ANN001
        if v is None:
            return []
        if isinstance(v, str):
            return [v]
        return [str(x) for x in v if str(x or "").strip()]
