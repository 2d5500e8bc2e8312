from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from steadyhost.core.events.redaction import redact


class Severity(str, Enum):
    INFO = "INFO"
    WARN = "WARN"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


@dataclass
class SteadyError(Exception):
    code: str
    user_message: str
    stage: str = "engine"
    severity: Severity = Severity.ERROR
    fatal: bool = True
    detail: Optional[str] = None
    remediation: Optional[str] = None
    docs_key: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        super().__init__(self.code)

    def __str__(self) -> str:
        if self.detail:
            return f"{self.code}: {self.user_message} ({self.detail})"
        return f"{self.code}: {self.user_message}"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"code": self.code, "message": self.user_message}
        if self.detail:
            out["detail"] = self.detail
        if self.remediation:
            out["remediation"] = self.remediation
        if self.docs_key:
            out["docsKey"] = self.docs_key
        return out

    def to_log_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "stage": self.stage,
            "severity": self.severity.value,
            "fatal": bool(self.fatal),
            "user_message": self.user_message,
            "detail": self.detail,
            "context": redact(self.context or {}),
        }


# ---- manifest ----
class ManifestNotFound(SteadyError):
    def __init__(self, user_message: str = "Manifest not found.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__(
            "MANIFEST_NOT_FOUND",
            user_message,
            stage="resolve",
            severity=Severity.CRITICAL,
            detail=detail,
            remediation="Check the manifest path or profile name.",
            docs_key="errors/manifest-not-found",
            context=ctx,
        )


class ManifestParseError(SteadyError):
    def __init__(self, user_message: str = "Manifest could not be parsed.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__(
            "MANIFEST_PARSE_ERROR",
            user_message,
            stage="resolve",
            severity=Severity.CRITICAL,
            detail=detail,
            remediation="Fix the JSONC/YAML syntax at the reported location.",
            docs_key="errors/manifest-parse",
            context=ctx,
        )


class ManifestValidationError(SteadyError):
    def __init__(self, user_message: str = "Manifest is invalid.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__(
            "MANIFEST_VALIDATION_ERROR",
            user_message,
            stage="resolve",
            severity=Severity.CRITICAL,
            detail=detail,
            docs_key="errors/manifest-validation",
            context=ctx,
        )


# ---- plan ----
class PlanNotFound(SteadyError):
    def __init__(self, user_message: str = "Plan file not found.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__("PLAN_NOT_FOUND", user_message, stage="plan", severity=Severity.CRITICAL, detail=detail, context=ctx)


class PlanParseError(SteadyError):
    def __init__(self, user_message: str = "Plan file is corrupt.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__(
            "PLAN_PARSE_ERROR",
            user_message,
            stage="plan",
            severity=Severity.CRITICAL,
            detail=detail,
            remediation="Regenerate the plan with `steadyhost plan`.",
            context=ctx,
        )


class SchemaIncompatible(SteadyError):
    def __init__(self, user_message: str = "Unsupported schema version.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__(
            "SCHEMA_INCOMPATIBLE",
            user_message,
            stage="engine",
            severity=Severity.CRITICAL,
            detail=detail,
            remediation="Upgrade steadyhost to a version that understands this file.",
            context=ctx,
        )


# ---- drivers / apply ----
class DriverUnavailable(SteadyError):
    def __init__(self, user_message: str = "Installer driver is not available.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__(
            "DRIVER_UNAVAILABLE",
            user_message,
            stage="driver",
            severity=Severity.CRITICAL,
            detail=detail,
            remediation="Install the package manager or pick another driver.",
            docs_key="errors/driver-unavailable",
            context=ctx,
        )


class InstallFailed(SteadyError):
    def __init__(self, user_message: str = "Install failed.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__("INSTALL_FAILED", user_message, stage="apply", severity=Severity.ERROR, fatal=False, detail=detail, context=ctx)


# ---- restore ----
class RestoreFailed(SteadyError):
    def __init__(self, user_message: str = "Restore failed.", *, detail: Optional[str] = None, code: str = "RESTORE_FAILED", **ctx: Any):
        super().__init__(code, user_message, stage="restore", severity=Severity.ERROR, fatal=False, detail=detail, context=ctx)


class RequiredSourceNotFound(RestoreFailed):
    def __init__(self, user_message: str = "Required restore source not found.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__(user_message, detail=detail, code="REQUIRED_SOURCE_NOT_FOUND", **ctx)


class JournalNotFound(SteadyError):
    def __init__(self, user_message: str = "Restore journal not found.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__("JOURNAL_NOT_FOUND", user_message, stage="revert", severity=Severity.CRITICAL, detail=detail, context=ctx)


class JournalParseError(SteadyError):
    def __init__(self, user_message: str = "Restore journal is corrupt.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__("JOURNAL_PARSE_ERROR", user_message, stage="revert", severity=Severity.CRITICAL, detail=detail, context=ctx)


# ---- verify ----
class VerifyFailed(SteadyError):
    def __init__(self, user_message: str = "One or more verify checks failed.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__("VERIFY_FAILED", user_message, stage="verify", severity=Severity.WARN, fatal=False, detail=detail, context=ctx)


# ---- generic ----
class PermissionDenied(SteadyError):
    def __init__(self, user_message: str = "Permission denied.", *, detail: Optional[str] = None, stage: str = "engine", **ctx: Any):
        super().__init__(
            "PERMISSION_DENIED",
            user_message,
            stage=stage,
            severity=Severity.ERROR,
            detail=detail,
            remediation="Re-run with sufficient privileges.",
            context=ctx,
        )


class ConfigError(SteadyError):
    def __init__(self, user_message: str = "Configuration error.", *, detail: Optional[str] = None, **ctx: Any):
        super().__init__("CONFIG_ERROR", user_message, stage="config", severity=Severity.CRITICAL, detail=detail, context=ctx)


class InternalError(SteadyError):
    def __init__(self, user_message: str = "Internal error.", *, detail: Optional[str] = None, stage: str = "engine", **ctx: Any):
        super().__init__("INTERNAL_ERROR", user_message, stage=stage, severity=Severity.CRITICAL, detail=detail, context=ctx)


def normalize_exception(exc: BaseException, *, stage: str = "engine") -> SteadyError:
    if isinstance(exc, SteadyError):
        return exc
    if isinstance(exc, PermissionError):
        return PermissionDenied(detail=str(exc), stage=stage)
    return InternalError(detail=f"{type(exc).__name__}: {exc}", stage=stage)
